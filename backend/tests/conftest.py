"""Pytest configuration and shared fixtures."""

import asyncio
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pricescan.models import Base
from pricescan.scraping.factory import AdapterFactory
from pricescan.scraping.manager import ScrapingManager
from pricescan.scraping.types import (
    NormalizedProduct,
    ScrapedListing,
    ScrapingJob,
    ScrapingJobConfig,
    SourceConfiguration,
)
from pricescan.scraping.utils.rate_limiter import SourceRateLimiter


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# FAKE ADAPTER
# ============================================================================

class FakeAdapter:
    """Adapter satisfying the SourceAdapter protocol with canned outcomes.

    `listings` maps a search term to a ScrapedListing, None, or an
    exception instance to raise; unknown terms fall back to `default`.
    """

    def __init__(
        self,
        source: SourceConfiguration,
        listings: Optional[Dict[str, object]] = None,
        default: object = None,
        healthy: object = True,
        delay: float = 0.0,
    ):
        self.source = source
        self.listings = listings or {}
        self.default = default
        self.healthy = healthy
        self.delay = delay
        self.calls: List[str] = []
        self.closed = False

    async def scrape_product(self, search_term: str) -> Optional[ScrapedListing]:
        self.calls.append(search_term)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.listings.get(search_term, self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def health_check(self) -> bool:
        if isinstance(self.healthy, BaseException):
            raise self.healthy
        return bool(self.healthy)

    def get_source_config(self) -> SourceConfiguration:
        return self.source

    async def close(self) -> None:
        self.closed = True


class Recorder:
    """Collects what the orchestrator hands to its callbacks."""

    def __init__(self):
        self.progress = []
        self.results: Dict[str, list] = {}

    async def on_update_job(self, progress) -> None:
        self.progress.append(progress)

    async def on_save_results(self, payload) -> None:
        self.results[payload.product_id] = list(payload.results)


# ============================================================================
# FACTORIES
# ============================================================================

@pytest.fixture
def make_source():
    def _make(source_id: str = "bol", name: Optional[str] = None, **kwargs) -> SourceConfiguration:
        kwargs.setdefault("base_url", f"https://www.{source_id}.example")
        kwargs.setdefault("rate_limit", 6000)
        return SourceConfiguration(id=source_id, name=name or source_id, **kwargs)

    return _make


@pytest.fixture
def make_product():
    def _make(product_id: str = "p-1", **kwargs) -> NormalizedProduct:
        kwargs.setdefault("brand", "Dior")
        kwargs.setdefault("product_name", "Sauvage Eau de Parfum")
        kwargs.setdefault("variant_size", "100ml")
        kwargs.setdefault("wholesale_price", Decimal("45.00"))
        return NormalizedProduct(id=product_id, **kwargs)

    return _make


@pytest.fixture
def make_listing():
    def _make(
        price: str = "79.95",
        title: str = "Dior Sauvage Eau de Parfum 100ml",
        url: str = "https://www.bol.com/nl/p/dior-sauvage/9200000012345/",
        merchant: str = "bol.com",
        **kwargs,
    ) -> ScrapedListing:
        return ScrapedListing(title=title, price=Decimal(price), url=url, merchant=merchant, **kwargs)

    return _make


@pytest.fixture
def make_job():
    def _make(**config) -> ScrapingJob:
        config.setdefault("delay_between_batches", 0)
        config.setdefault("max_retries", 0)
        return ScrapingJob(
            id=str(uuid.uuid4()),
            name="Test scan",
            config=ScrapingJobConfig(**config),
        )

    return _make


@pytest.fixture
def fake_adapter():
    return FakeAdapter


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def build_manager(recorder):
    """Build a ScrapingManager over fake adapters, with all delays disabled."""

    async def _build(adapters: List[FakeAdapter], **kwargs) -> ScrapingManager:
        factory = AdapterFactory()
        for adapter in adapters:
            factory.register_adapter(adapter.source.name, lambda source, a=adapter: a)
        kwargs.setdefault("on_update_job", recorder.on_update_job)
        kwargs.setdefault("on_save_results", recorder.on_save_results)
        kwargs.setdefault("politeness_delay", 0)
        kwargs.setdefault("adapter_timeout", 5.0)
        kwargs.setdefault("retry_backoff", 0)
        manager = ScrapingManager(
            adapter_factory=factory,
            rate_limiter=SourceRateLimiter(default_rpm=6000),
            **kwargs,
        )
        await manager.initialize_scrapers([a.source for a in adapters])
        return manager

    return _build


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite session factory with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
