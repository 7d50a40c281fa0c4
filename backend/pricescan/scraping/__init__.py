"""Competitor price-scraping and matching engine.

This package provides:
- The SourceAdapter contract and base classes for search-page adapters
- The adapter factory and the built-in adapter registrations
- The product matcher and result ranking
- The ScrapingManager job orchestrator (pricescan.scraping.manager)
"""

from .base import BaseBrowserAdapter, BaseHTTPAdapter, BaseSourceAdapter, SourceAdapter
from .factory import AdapterFactory, adapter_factory, get_adapter_factory
from .types import (
    JobStatus,
    NormalizedProduct,
    PriceScrapingResult,
    ProductMatch,
    ScrapedListing,
    ScrapingJob,
    ScrapingJobConfig,
    SourceConfiguration,
)

__all__ = [
    # Adapter contract
    "SourceAdapter",
    "BaseSourceAdapter",
    "BaseHTTPAdapter",
    "BaseBrowserAdapter",
    # Data structures
    "JobStatus",
    "NormalizedProduct",
    "PriceScrapingResult",
    "ProductMatch",
    "ScrapedListing",
    "ScrapingJob",
    "ScrapingJobConfig",
    "SourceConfiguration",
    # Factory
    "AdapterFactory",
    "adapter_factory",
    "get_adapter_factory",
]
