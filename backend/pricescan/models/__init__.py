"""SQLAlchemy models for the job and result store.

All models are imported here so metadata.create_all() sees every table.
"""

from pricescan.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from pricescan.models.scraping_job import ScrapingJobRecord
from pricescan.models.price_result import PriceResultRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "ScrapingJobRecord",
    "PriceResultRecord",
]
