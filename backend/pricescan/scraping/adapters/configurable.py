"""Selector-driven search adapters.

A source's settings blob describes how to query it and where the listing
fields live on the result page:

    {
        "searchUrl": "https://shop.example/search?q={query}",
        "selectors": {
            "productItem": ".product-card",
            "productTitle": ".product-title",
            "price": ".price",
            "link": "a",
            "availability": ".stock",      # optional
            "shipping": ".delivery",       # optional
            "merchant": ".seller"          # optional
        },
        "currency": "EUR",
        "merchant": "Example Shop",
        "maxResults": 10,
        "priceInclVat": true,
        "useHeadless": false,
        "headers": {}
    }
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup, Tag

from pricescan.core.exceptions import AdapterError
from pricescan.scraping.base import BaseBrowserAdapter, BaseHTTPAdapter
from pricescan.scraping.types import ScrapedListing, SourceConfiguration
from pricescan.scraping.utils.browser_manager import BrowserManager
from pricescan.scraping.utils.normalizer import (
    PriceNormalizer,
    is_available,
    normalize_url,
    resolve_url,
)

REQUIRED_SELECTORS = ("productItem", "productTitle", "price")


def build_search_url(template: str, search_term: str) -> str:
    """Substitute the URL-encoded search term into a searchUrl template."""
    return template.replace("{query}", quote_plus(search_term))


class ListingParser:
    """Parses a search result page into ScrapedListing objects."""

    def __init__(
        self,
        selectors: Dict[str, str],
        base_url: str,
        currency: str = "EUR",
        merchant: str = "",
        price_includes_tax: bool = True,
        max_results: int = 10,
    ):
        missing = [key for key in REQUIRED_SELECTORS if not selectors.get(key)]
        if missing:
            raise ValueError(f"Missing selectors: {', '.join(missing)}")
        self.selectors = selectors
        self.base_url = base_url
        self.currency = currency
        self.merchant = merchant
        self.price_includes_tax = price_includes_tax
        self.max_results = max_results

    def parse(self, html: str) -> List[ScrapedListing]:
        soup = BeautifulSoup(html, "html.parser")
        listings: List[ScrapedListing] = []
        seen_urls = set()

        for item in soup.select(self.selectors["productItem"]):
            if len(listings) >= self.max_results:
                break
            listing = self._parse_item(item)
            if listing is None:
                continue
            key = listing.url or listing.title
            if key in seen_urls:
                continue
            seen_urls.add(key)
            listings.append(listing)

        return listings

    def _text(self, item: Tag, key: str) -> Optional[str]:
        selector = self.selectors.get(key)
        if not selector:
            return None
        element = item.select_one(selector)
        if element is None:
            return None
        # Structured data (itemprop="price" content="79.95") beats display text
        content = element.get("content")
        if key == "price" and content:
            return str(content)
        return element.get_text(" ", strip=True)

    def _href(self, item: Tag) -> str:
        selector = self.selectors.get("link")
        element = item.select_one(selector) if selector else None
        if element is None:
            title_selector = self.selectors["productTitle"]
            title = item.select_one(title_selector)
            element = title if title is not None and title.name == "a" else None
        if element is None and item.name == "a":
            element = item
        if element is None:
            element = item.find("a")
        href = element.get("href") if element is not None else None
        return normalize_url(resolve_url(href, self.base_url)) if href else ""

    def _parse_item(self, item: Tag) -> Optional[ScrapedListing]:
        title = self._text(item, "productTitle")
        if not title:
            return None

        price_text = self._text(item, "price")
        price = PriceNormalizer.clean_price_string(price_text)
        if price is None or price <= 0:
            return None

        return ScrapedListing(
            title=title,
            price=price,
            url=self._href(item),
            merchant=self._text(item, "merchant") or self.merchant,
            currency=PriceNormalizer.detect_currency(price_text, self.currency),
            availability=is_available(self._text(item, "availability")),
            shipping_cost=PriceNormalizer.parse_shipping_cost(self._text(item, "shipping")),
            price_includes_tax=self.price_includes_tax,
        )


def _parser_for(source: SourceConfiguration, options: Dict[str, Any]) -> ListingParser:
    return ListingParser(
        selectors=options.get("selectors") or {},
        base_url=source.base_url,
        currency=options.get("currency", "EUR"),
        merchant=options.get("merchant") or source.name,
        price_includes_tax=bool(options.get("priceInclVat", True)),
        max_results=int(options.get("maxResults", 10)),
    )


class ConfigurableSearchAdapter(BaseHTTPAdapter):
    """Fetches the search page over HTTP and parses it with selectors."""

    adapter_name = "configurable"

    def __init__(self, source: SourceConfiguration, client: Optional[httpx.AsyncClient] = None):
        super().__init__(source, client=client)
        self.search_url = self.options.get("searchUrl")
        if not self.search_url or "{query}" not in self.search_url:
            raise ValueError(f"Source {source.name} needs a searchUrl containing {{query}}")
        self.parser = _parser_for(source, self.options)

    async def search_products(self, search_term: str) -> List[ScrapedListing]:
        url = build_search_url(self.search_url, search_term)
        self.logger.debug("searching_source", url=url)
        html = await self._fetch(url)
        try:
            listings = self.parser.parse(html)
        except (ValueError, AttributeError) as e:
            raise AdapterError(self.source.name, f"could not parse results: {e}") from e
        self.logger.debug("listings_parsed", count=len(listings), search_term=search_term)
        return listings


class BrowserSearchAdapter(BaseBrowserAdapter):
    """Renders the search page with Playwright, then parses it with selectors."""

    adapter_name = "configurable-browser"

    def __init__(self, source: SourceConfiguration, browser_manager: Optional[BrowserManager] = None):
        super().__init__(source, browser_manager=browser_manager)
        self.search_url = self.options.get("searchUrl")
        if not self.search_url or "{query}" not in self.search_url:
            raise ValueError(f"Source {source.name} needs a searchUrl containing {{query}}")
        self.parser = _parser_for(source, self.options)

    async def search_products(self, search_term: str) -> List[ScrapedListing]:
        url = build_search_url(self.search_url, search_term)
        html = await self._render(url, wait_selector=self.parser.selectors["productItem"])
        try:
            listings = self.parser.parse(html)
        except (ValueError, AttributeError) as e:
            raise AdapterError(self.source.name, f"could not parse results: {e}") from e
        self.logger.debug("listings_parsed", count=len(listings), search_term=search_term)
        return listings
