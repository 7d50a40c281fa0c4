"""Core data structures for the price-scraping engine.

Everything here is immutable: jobs are advanced through
pricescan.scraping.job_state.advance() and results are an append-only
observation log, so new values are produced with dataclasses.replace().
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    """Scraping job lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED | STOPPED."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED)


@dataclass(frozen=True)
class SourceConfiguration:
    """An external retail source, immutable for the duration of a job."""

    id: str
    name: str
    base_url: str
    country: str = "NL"
    is_active: bool = True
    priority: int = 1
    rate_limit: Optional[int] = None  # requests per minute hint
    config: Dict[str, Any] = field(default_factory=dict)  # adapter-private settings blob
    allow_domains: Tuple[str, ...] = ()
    deny_domains: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("id is required")
        if not self.name:
            raise ValueError("name is required")


@dataclass(frozen=True)
class NormalizedProduct:
    """The internal catalog item being priced against the market."""

    id: str
    brand: str
    product_name: str
    wholesale_price: Decimal
    currency: str = "EUR"
    variant_size: Optional[str] = None
    ean: Optional[str] = None
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    pack_size: int = 1

    def __post_init__(self):
        if not self.id:
            raise ValueError("id is required")
        if self.wholesale_price is None or self.wholesale_price < 0:
            raise ValueError("wholesale_price must be a non-negative Decimal")

    @property
    def search_term(self) -> str:
        """Brand, product name and variant size joined, skipping absent parts."""
        parts = [p.strip() for p in (self.brand, self.product_name, self.variant_size) if p and p.strip()]
        return " ".join(parts).strip()


@dataclass(frozen=True)
class ScrapingJobConfig:
    """Per-job configuration chosen by the caller."""

    sources: Tuple[str, ...] = ()
    batch_size: int = 10
    delay_between_batches: int = 5000  # milliseconds
    max_retries: int = 3
    confidence_threshold: float = 0.5
    timeout: Optional[int] = None  # per adapter call, milliseconds

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        if self.delay_between_batches < 0:
            raise ValueError("delay_between_batches must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass(frozen=True)
class ScrapingJob:
    """Snapshot of a scraping job.

    Only the orchestrator produces new snapshots, one per state
    transition, through job_state.advance().
    """

    id: str
    name: str
    config: ScrapingJobConfig = field(default_factory=ScrapingJobConfig)
    status: JobStatus = JobStatus.PENDING
    supplier_id: Optional[str] = None
    total_products: int = 0
    processed_products: int = 0
    successful_products: int = 0
    failed_products: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class ScrapedListing:
    """A single listing returned by an adapter for one search term."""

    title: str
    price: Decimal
    url: str
    merchant: str
    currency: str = "EUR"
    availability: bool = True
    shipping_cost: Optional[Decimal] = None
    price_includes_tax: bool = True
    scraped_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.title:
            raise ValueError("title is required")
        if self.price is None or self.price < 0:
            raise ValueError("price must be a non-negative Decimal")


@dataclass(frozen=True)
class PriceScrapingResult:
    """One price observation of a retail listing for a catalog product."""

    id: str
    normalized_product_id: str
    source_id: str
    product_title: str
    merchant: str
    url: str
    price: Decimal
    currency: str = "EUR"
    price_incl_vat: bool = True
    shipping_cost: Optional[Decimal] = None
    availability: bool = True
    confidence_score: float = 0.0
    is_lowest_price: bool = False
    scraped_at: datetime = field(default_factory=utcnow)
    job_id: Optional[str] = None
    # Set only when the listing was converted from another currency
    source_price: Optional[Decimal] = None
    source_currency: Optional[str] = None


@dataclass(frozen=True)
class ProductMatch:
    """Matcher output for one product."""

    normalized_product: NormalizedProduct
    scraped_results: Tuple[PriceScrapingResult, ...]  # best first
    best_match: Optional[PriceScrapingResult] = None
    confidence_score: float = 0.0
    margin_opportunity: Optional[float] = None  # % markup of best match over wholesale
