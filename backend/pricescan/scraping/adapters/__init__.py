"""Source adapter implementations.

Adapters either implement the SourceAdapter protocol directly or build on
the search-page base classes in pricescan.scraping.base.
"""

from .configurable import (
    BrowserSearchAdapter,
    ConfigurableSearchAdapter,
    ListingParser,
    build_search_url,
)
from .presets import (
    AMAZON_NL,
    BOL_COM,
    HOUSE_OF_NICHE,
    create_search_adapter,
    merge_options,
)

__all__ = [
    "BrowserSearchAdapter",
    "ConfigurableSearchAdapter",
    "ListingParser",
    "build_search_url",
    "AMAZON_NL",
    "BOL_COM",
    "HOUSE_OF_NICHE",
    "create_search_adapter",
    "merge_options",
]
