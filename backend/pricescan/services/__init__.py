"""Service layer: the job store and the price-scan service."""

from pricescan.services.job_store import ScrapingJobStore
from pricescan.services.price_scan_service import PriceScanService, SupplierCatalog

__all__ = [
    "ScrapingJobStore",
    "PriceScanService",
    "SupplierCatalog",
]
