"""Default search settings for the retailers supported out of the box.

A source's own settings blob is layered over these, so selectors can be
corrected from configuration without a code change.
"""

from dataclasses import replace
from typing import Any, Dict, Optional

import httpx

from pricescan.scraping.adapters.configurable import BrowserSearchAdapter, ConfigurableSearchAdapter
from pricescan.scraping.base import BaseSourceAdapter
from pricescan.scraping.types import SourceConfiguration
from pricescan.scraping.utils.browser_manager import BrowserManager


BOL_COM: Dict[str, Any] = {
    "searchUrl": "https://www.bol.com/nl/nl/s/?searchtext={query}",
    "selectors": {
        "productItem": '[data-testid="product-item"], [data-test="product-item"], li.product-item--row',
        "productTitle": '[data-testid="product-title"], a[data-test="product-title"], a[data-test="title"]',
        "price": '[data-testid="price"], [data-test="price"], meta[itemprop="price"]',
        "link": 'a[data-testid="product-title"], a[data-test="product-title"], a[data-test="title"]',
        "availability": '[data-testid="availability"], .availability, .stock-status',
        "merchant": '[data-testid="seller"], .seller, .merchant',
        "shipping": '[data-testid="delivery"], .delivery-info',
    },
    "currency": "EUR",
    "merchant": "bol.com",
    "maxResults": 10,
    "useHeadless": False,
}

AMAZON_NL: Dict[str, Any] = {
    "searchUrl": "https://www.amazon.nl/s?k={query}",
    "selectors": {
        "productItem": 'div[data-component-type="s-search-result"]',
        "productTitle": "h2 span, h2 a span",
        "price": ".a-price .a-offscreen",
        "link": "h2 a, a.a-link-normal.s-no-outline",
        "availability": ".a-color-price, .a-color-success",
        "shipping": "[data-cy='delivery-recipe']",
    },
    "currency": "EUR",
    "merchant": "Amazon.nl",
    "maxResults": 10,
    "useHeadless": True,
}

HOUSE_OF_NICHE: Dict[str, Any] = {
    "searchUrl": "https://www.houseofniche.com/search?q={query}",
    "selectors": {
        "productItem": ".product-item, .product-card, .search-result-item",
        "productTitle": "h3, h4, .product-title, .product-name",
        "price": ".price, .product-price, .current-price",
        "link": "a",
        "availability": ".availability, .stock-status, .in-stock",
        "shipping": ".shipping-info, .delivery-info",
    },
    "currency": "EUR",
    "merchant": "House of Niche",
    "maxResults": 10,
    "useHeadless": False,
}


def merge_options(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Layer a source's settings blob over preset defaults (selectors merge per key)."""
    merged = {**defaults, **(overrides or {})}
    merged["selectors"] = {**defaults.get("selectors", {}), **((overrides or {}).get("selectors") or {})}
    return merged


def create_search_adapter(
    source: SourceConfiguration,
    defaults: Optional[Dict[str, Any]] = None,
    client: Optional[httpx.AsyncClient] = None,
    browser_manager: Optional[BrowserManager] = None,
) -> BaseSourceAdapter:
    """Build an HTTP or Playwright search adapter for a source.

    The rendering mode follows the merged "useHeadless" flag.

    Raises:
        ValueError: If the merged settings lack a searchUrl or selectors
    """
    options = merge_options(defaults or {}, source.config)
    configured = replace(source, config=options)
    if options.get("useHeadless"):
        return BrowserSearchAdapter(configured, browser_manager=browser_manager)
    return ConfigurableSearchAdapter(configured, client=client)
