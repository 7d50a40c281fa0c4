"""Tests for the selector-driven adapters and the adapter factory."""

from decimal import Decimal

import httpx
import pytest

from pricescan.core.exceptions import AdapterError, RateLimitError
from pricescan.scraping.adapters import (
    BOL_COM,
    BrowserSearchAdapter,
    ConfigurableSearchAdapter,
    ListingParser,
    build_search_url,
    create_search_adapter,
    merge_options,
)
from pricescan.scraping.base import SourceAdapter
from pricescan.scraping.factory import AdapterFactory
from pricescan.scraping.register_adapters import register_all_adapters
from pricescan.scraping.utils.browser_manager import BrowserManager

SEARCH_PAGE = """
<html><body>
  <div class="product-card">
    <a class="title" href="/nl/p/dior-sauvage/123/?utm_source=feed">Dior Sauvage Eau de Parfum 100ml</a>
    <span class="price">&euro; 79,95</span>
    <span class="stock">Op voorraad</span>
    <span class="delivery">Gratis verzending</span>
  </div>
  <div class="product-card">
    <a class="title" href="https://www.shop.example/nl/p/sauvage-60/456/">Dior Sauvage 60ml</a>
    <span class="price">64,50</span>
    <span class="stock">Tijdelijk uitverkocht</span>
    <span class="delivery">Verzendkosten 4,95</span>
  </div>
  <div class="product-card">
    <a class="title" href="/nl/p/no-price/789/">Dior Sauvage Refill</a>
  </div>
  <div class="product-card">
    <a class="title" href="/nl/p/dior-sauvage/123/">Dior Sauvage Eau de Parfum 100ml</a>
    <span class="price">&euro; 79,95</span>
  </div>
</body></html>
"""

OPTIONS = {
    "searchUrl": "https://www.shop.example/search?q={query}",
    "selectors": {
        "productItem": ".product-card",
        "productTitle": ".title",
        "price": ".price",
        "link": "a.title",
        "availability": ".stock",
        "shipping": ".delivery",
    },
    "merchant": "Example Shop",
}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ============================================================================
# TESTS: PARSING
# ============================================================================

class TestListingParser:

    def test_parses_listings(self):
        parser = ListingParser(OPTIONS["selectors"], "https://www.shop.example", merchant="Example Shop")

        listings = parser.parse(SEARCH_PAGE)

        assert len(listings) == 2
        first, second = listings
        assert first.title == "Dior Sauvage Eau de Parfum 100ml"
        assert first.price == Decimal("79.95")
        assert first.currency == "EUR"
        assert first.url == "https://www.shop.example/nl/p/dior-sauvage/123/"
        assert first.merchant == "Example Shop"
        assert first.availability is True
        assert first.shipping_cost == Decimal("0")
        assert second.availability is False
        assert second.shipping_cost == Decimal("4.95")

    def test_structured_price_attribute_wins(self):
        html = (
            '<div class="p"><h3 class="t">Dior Sauvage</h3>'
            '<meta itemprop="price" content="82.50"><a href="/x">x</a></div>'
        )
        parser = ListingParser(
            {"productItem": ".p", "productTitle": ".t", "price": "meta[itemprop=price]"},
            "https://www.shop.example",
        )

        (listing,) = parser.parse(html)

        assert listing.price == Decimal("82.50")
        assert listing.url == "https://www.shop.example/x"

    def test_max_results(self):
        parser = ListingParser(OPTIONS["selectors"], "https://www.shop.example", max_results=1)
        assert len(parser.parse(SEARCH_PAGE)) == 1

    def test_required_selectors(self):
        with pytest.raises(ValueError, match="price"):
            ListingParser({"productItem": ".p", "productTitle": ".t"}, "https://www.shop.example")

    def test_build_search_url(self):
        url = build_search_url("https://www.bol.com/nl/nl/s/?searchtext={query}", "Dior Sauvage 100ml")
        assert url == "https://www.bol.com/nl/nl/s/?searchtext=Dior+Sauvage+100ml"


# ============================================================================
# TESTS: HTTP ADAPTER
# ============================================================================

class TestConfigurableSearchAdapter:

    async def test_scrape_product_returns_first_listing(self, make_source):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=SEARCH_PAGE)

        source = make_source("shop", base_url="https://www.shop.example", config=OPTIONS)
        async with mock_client(handler) as client:
            adapter = ConfigurableSearchAdapter(source, client=client)
            listing = await adapter.scrape_product("Dior Sauvage 100ml")

        assert listing.price == Decimal("79.95")
        assert seen[0].url.params["q"] == "Dior Sauvage 100ml"
        assert isinstance(adapter, SourceAdapter)
        assert adapter.get_source_config() is source

    async def test_no_results_is_none(self, make_source):
        source = make_source("shop", config=OPTIONS)
        async with mock_client(lambda request: httpx.Response(200, text="<html></html>")) as client:
            adapter = ConfigurableSearchAdapter(source, client=client)
            assert await adapter.scrape_product("Unknown Brand") is None
            assert await adapter.scrape_product("   ") is None

    async def test_error_status_raises_adapter_error(self, make_source):
        source = make_source("shop", config=OPTIONS)
        async with mock_client(lambda request: httpx.Response(500)) as client:
            adapter = ConfigurableSearchAdapter(source, client=client)
            with pytest.raises(AdapterError):
                await adapter.scrape_product("Dior")

    async def test_throttling_raises_rate_limit_error(self, make_source):
        source = make_source("shop", config=OPTIONS)
        async with mock_client(lambda request: httpx.Response(429)) as client:
            adapter = ConfigurableSearchAdapter(source, client=client)
            with pytest.raises(RateLimitError):
                await adapter.scrape_product("Dior")

    async def test_transport_error_is_raised_without_retrying(self, make_source):
        requests = []

        def refuse(request):
            requests.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        source = make_source("shop", config=OPTIONS)
        async with mock_client(refuse) as client:
            adapter = ConfigurableSearchAdapter(source, client=client)
            with pytest.raises(httpx.ConnectError):
                await adapter.scrape_product("Dior")

        assert len(requests) == 1

    async def test_health_check(self, make_source):
        source = make_source("shop", config=OPTIONS)
        async with mock_client(lambda request: httpx.Response(200)) as client:
            assert await ConfigurableSearchAdapter(source, client=client).health_check() is True
        async with mock_client(lambda request: httpx.Response(503)) as client:
            assert await ConfigurableSearchAdapter(source, client=client).health_check() is False

    def test_search_url_needs_query_placeholder(self, make_source):
        source = make_source("shop", config={**OPTIONS, "searchUrl": "https://www.shop.example/search"})
        with pytest.raises(ValueError):
            ConfigurableSearchAdapter(source)


# ============================================================================
# TESTS: PRESETS AND FACTORY
# ============================================================================

class TestPresets:

    def test_merge_options_layers_selectors(self):
        merged = merge_options(BOL_COM, {"maxResults": 3, "selectors": {"price": ".new-price"}})

        assert merged["maxResults"] == 3
        assert merged["selectors"]["price"] == ".new-price"
        assert merged["selectors"]["productItem"] == BOL_COM["selectors"]["productItem"]
        assert BOL_COM["selectors"]["price"] != ".new-price"

    def test_headless_flag_selects_browser_adapter(self, make_source):
        source = make_source("shop", config={**OPTIONS, "useHeadless": True})
        assert isinstance(create_search_adapter(source), BrowserSearchAdapter)


class TestAdapterFactory:

    @pytest.fixture
    def factory(self) -> AdapterFactory:
        return register_all_adapters(AdapterFactory())

    def test_builtin_names_and_aliases(self, factory):
        for name in ("bol.com", "Bol", "AMAZON NL", "amazon  netherlands", "House of Niche", "configurable"):
            assert factory.has_adapter(name), name
        assert {"bol.com", "amazon nl", "house of niche", "configurable"} <= set(factory.get_registered_names())

    def test_creates_preset_adapters(self, factory, make_source):
        bol = factory.create_adapter(make_source("s1", name="bol.com", base_url="https://www.bol.com"))
        amazon = factory.create_adapter(make_source("s2", name="Amazon NL", base_url="https://www.amazon.nl"))

        assert isinstance(bol, ConfigurableSearchAdapter)
        assert bol.search_url == BOL_COM["searchUrl"]
        assert isinstance(amazon, BrowserSearchAdapter)

    def test_explicit_adapter_key(self, factory, make_source):
        source = make_source("s3", name="Parfumdreams", config={"adapter": "configurable", **OPTIONS})
        assert isinstance(factory.create_adapter(source), ConfigurableSearchAdapter)

    def test_unknown_or_misconfigured_sources_are_skipped(self, factory, make_source):
        assert factory.create_adapter(make_source("s4", name="Unknown Shop")) is None
        assert factory.create_adapter(make_source("s5", name="configurable")) is None

    def test_builder_must_return_an_adapter(self, make_source):
        factory = AdapterFactory()
        factory.register_adapter("broken", lambda source: object())

        with pytest.raises(TypeError):
            factory.create_adapter(make_source("s6", name="broken"))

    def test_build_adapters_skips_inactive_and_keeps_order(self, factory, make_source):
        sources = [
            make_source("hon", name="House of Niche"),
            make_source("off", name="bol.com", is_active=False),
            make_source("bol", name="bol.com"),
        ]

        adapters = factory.build_adapters(sources)

        assert list(adapters) == ["hon", "bol"]


class TestBrowserManager:

    async def test_stop_without_start_is_safe(self):
        manager = BrowserManager(headless=True)

        assert not manager.is_started
        await manager.stop()
        assert not manager.is_started
