"""Pydantic schemas for the scraping engine's in-process boundary.

Inbound payloads (job descriptor, source configurations, products) are
camelCase JSON as supplied by the surrounding admin system; they are
validated here and converted to the immutable domain dataclasses.
Outbound payloads (progress, per-product results) are serialised back to
camelCase with model_dump(by_alias=True).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pricescan.config import settings
from pricescan.scraping.types import (
    JobStatus,
    NormalizedProduct,
    PriceScrapingResult,
    ScrapingJob,
    ScrapingJobConfig,
    SourceConfiguration,
)


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Inbound schemas
# ---------------------------------------------------------------------------


class SourceConfigIn(CamelModel):
    """One external retail source as configured by an administrator."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, examples=["bol.com"])
    base_url: str = Field(..., min_length=1, examples=["https://www.bol.com"])
    country: str = "NL"
    is_active: bool = True
    priority: int = 1
    rate_limit: Optional[int] = Field(
        None,
        ge=0,
        description="Requests per minute; missing or 0 falls back to DEFAULT_SOURCE_RPM",
    )
    config: Dict[str, Any] = Field(
        default_factory=dict,
        description="Adapter-private settings (searchUrl, selectors, headers, ...)",
    )
    allow_domains: List[str] = Field(default_factory=list)
    deny_domains: List[str] = Field(default_factory=list)

    def to_domain(self) -> SourceConfiguration:
        return SourceConfiguration(
            id=self.id,
            name=self.name,
            base_url=self.base_url,
            country=self.country,
            is_active=self.is_active,
            priority=self.priority,
            rate_limit=self.rate_limit,
            config=dict(self.config),
            allow_domains=tuple(self.allow_domains),
            deny_domains=tuple(self.deny_domains),
        )


class JobConfigIn(CamelModel):
    """Per-job configuration; omitted fields take the configured defaults."""

    sources: List[str] = Field(default_factory=list, description="Selected source ids")
    batch_size: int = Field(default_factory=lambda: settings.DEFAULT_BATCH_SIZE, ge=1)
    delay_between_batches: int = Field(
        default_factory=lambda: settings.DEFAULT_BATCH_DELAY_MS,
        ge=0,
        description="Pause between batches in milliseconds",
    )
    max_retries: int = Field(default_factory=lambda: settings.DEFAULT_MAX_RETRIES, ge=0)
    confidence_threshold: float = Field(
        default_factory=lambda: settings.DEFAULT_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0
    )
    timeout: Optional[int] = Field(None, gt=0, description="Per adapter call, milliseconds")

    def to_domain(self) -> ScrapingJobConfig:
        return ScrapingJobConfig(
            sources=tuple(self.sources),
            batch_size=self.batch_size,
            delay_between_batches=self.delay_between_batches,
            max_retries=self.max_retries,
            confidence_threshold=self.confidence_threshold,
            timeout=self.timeout,
        )


class JobDescriptor(CamelModel):
    """Inbound job descriptor: what to run and how."""

    name: str = Field(..., min_length=1, examples=["Nightly scan - Supplier A"])
    supplier_id: Optional[str] = None
    total_products: Optional[int] = Field(
        None, ge=0, description="Informational; the product list length is authoritative"
    )
    config: JobConfigIn = Field(default_factory=JobConfigIn)


class NormalizedProductIn(CamelModel):
    """A catalog product to price against the market."""

    id: str = Field(..., min_length=1)
    brand: str = ""
    product_name: str = ""
    variant_size: Optional[str] = Field(None, examples=["100ml"])
    ean: Optional[str] = None
    wholesale_price: Decimal = Field(..., ge=0)
    currency: str = "EUR"
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    pack_size: int = Field(1, ge=1)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper() or "EUR"

    def to_domain(self) -> NormalizedProduct:
        return NormalizedProduct(
            id=self.id,
            brand=self.brand,
            product_name=self.product_name,
            wholesale_price=self.wholesale_price,
            currency=self.currency,
            variant_size=self.variant_size,
            ean=self.ean,
            supplier_id=self.supplier_id,
            supplier_name=self.supplier_name,
            pack_size=self.pack_size,
        )


# ---------------------------------------------------------------------------
# Outbound schemas
# ---------------------------------------------------------------------------


class JobProgress(CamelModel):
    """Progress payload passed to the job-status callback."""

    job_id: str
    status: JobStatus
    total_products: int
    processed_products: int
    successful_products: int
    failed_products: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_job(cls, job: ScrapingJob) -> "JobProgress":
        return cls(
            job_id=job.id,
            status=job.status,
            total_products=job.total_products,
            processed_products=job.processed_products,
            successful_products=job.successful_products,
            failed_products=job.failed_products,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
        )


class PriceResultOut(CamelModel):
    """One persisted price observation."""

    id: str
    normalized_product_id: str
    source_id: str
    product_title: str
    merchant: str
    url: str
    price: Decimal
    currency: str
    price_incl_vat: bool
    shipping_cost: Optional[Decimal] = None
    availability: bool
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    is_lowest_price: bool
    scraped_at: datetime
    job_id: Optional[str] = None
    source_price: Optional[Decimal] = None
    source_currency: Optional[str] = None

    @classmethod
    def from_result(cls, result: PriceScrapingResult) -> "PriceResultOut":
        return cls(
            id=result.id,
            normalized_product_id=result.normalized_product_id,
            source_id=result.source_id,
            product_title=result.product_title,
            merchant=result.merchant,
            url=result.url,
            price=result.price,
            currency=result.currency,
            price_incl_vat=result.price_incl_vat,
            shipping_cost=result.shipping_cost,
            availability=result.availability,
            confidence_score=result.confidence_score,
            is_lowest_price=result.is_lowest_price,
            scraped_at=result.scraped_at,
            job_id=result.job_id,
            source_price=result.source_price,
            source_currency=result.source_currency,
        )


class ProductResultsPayload(CamelModel):
    """Result-callback payload for one successfully matched product."""

    product_id: str
    results: List[PriceResultOut] = Field(..., max_length=3)

    @classmethod
    def build(cls, product_id: str, results: List[PriceScrapingResult]) -> "ProductResultsPayload":
        return cls(product_id=product_id, results=[PriceResultOut.from_result(r) for r in results])
