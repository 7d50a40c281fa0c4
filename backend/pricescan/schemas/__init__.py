"""Pydantic schemas for the scraping engine boundary."""

from pricescan.schemas.scraping import (
    JobConfigIn,
    JobDescriptor,
    JobProgress,
    NormalizedProductIn,
    PriceResultOut,
    ProductResultsPayload,
    SourceConfigIn,
)

__all__ = [
    "JobConfigIn",
    "JobDescriptor",
    "JobProgress",
    "NormalizedProductIn",
    "PriceResultOut",
    "ProductResultsPayload",
    "SourceConfigIn",
]
