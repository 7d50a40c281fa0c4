"""Tests for PriceScanService wired to the SQLAlchemy store."""

from decimal import Decimal

import pytest

from pricescan.config import settings
from pricescan.core.exceptions import InvalidJobError
from pricescan.schemas import JobConfigIn, JobDescriptor
from pricescan.scraping.types import JobStatus
from pricescan.services import PriceScanService, ScrapingJobStore, SupplierCatalog


@pytest.fixture
def store(session_factory) -> ScrapingJobStore:
    return ScrapingJobStore(session_factory)


@pytest.fixture
def build_service(build_manager, store):
    """Service over fake adapters whose callbacks write to the store."""

    async def _build(adapters) -> PriceScanService:
        manager = await build_manager(adapters, on_update_job=None, on_save_results=None)
        return PriceScanService(store, manager)

    return _build


def quick_descriptor(*sources: str) -> JobDescriptor:
    return JobDescriptor(
        name="Test scan",
        config=JobConfigIn(sources=list(sources), delay_between_batches=0, max_retries=0),
    )


# ============================================================================
# START PRICE SCAN
# ============================================================================

class TestStartPriceScan:

    async def test_results_and_progress_are_stored(
        self, build_service, store, fake_adapter, make_source, make_product, make_listing
    ):
        bol = fake_adapter(make_source("bol"), default=make_listing(price="79.95"))
        amazon = fake_adapter(
            make_source("amazon"),
            default=make_listing(price="74.50", url="https://www.amazon.nl/dp/B000", merchant="Amazon"),
        )
        service = await build_service([bol, amazon])
        product = make_product("p-1")

        job = await service.start_price_scan(
            quick_descriptor("bol", "amazon"), [bol.source, amazon.source], [product]
        )

        assert job.status is JobStatus.COMPLETED
        record = await store.get_job(job.id)
        assert record.status == "COMPLETED"
        assert (record.processed_products, record.successful_products) == (1, 1)
        assert record.completed_at is not None

        results = await store.latest_results("p-1")
        assert [r.price for r in results] == [Decimal("74.50"), Decimal("79.95")]
        assert [r.is_lowest_price for r in results] == [True, False]
        assert all(r.job_id == job.id for r in results)

    async def test_unmatched_product_is_counted_as_failed(
        self, build_service, store, fake_adapter, make_source, make_product
    ):
        bol = fake_adapter(make_source("bol"), default=None)
        service = await build_service([bol])

        job = await service.start_price_scan(quick_descriptor("bol"), [bol.source], [make_product()])

        assert job.status is JobStatus.COMPLETED
        record = await store.get_job(job.id)
        assert (record.successful_products, record.failed_products) == (0, 1)
        assert await store.latest_results("p-1") == []

    async def test_no_products(self, build_service, fake_adapter, make_source):
        bol = fake_adapter(make_source("bol"))
        service = await build_service([bol])

        with pytest.raises(InvalidJobError):
            await service.start_price_scan(quick_descriptor("bol"), [bol.source], [])

    async def test_inactive_sources_are_skipped(self, build_service, fake_adapter, make_source, make_product):
        bol = fake_adapter(make_source("bol"))
        service = await build_service([bol])

        with pytest.raises(InvalidJobError, match="No active sources"):
            await service.start_price_scan(
                quick_descriptor("bol"), [make_source("bol", is_active=False)], [make_product()]
            )

    async def test_source_without_adapter(self, build_service, fake_adapter, make_source, make_product):
        bol = fake_adapter(make_source("bol"))
        service = await build_service([bol])

        with pytest.raises(InvalidJobError, match="registered adapter"):
            await service.start_price_scan(
                quick_descriptor("unknown"), [make_source("unknown")], [make_product()]
            )

    def test_estimate_duration(self):
        assert PriceScanService.estimate_duration(10, 3) == 60
        assert PriceScanService.estimate_duration(0, 3) == 0


# ============================================================================
# NIGHTLY SCAN
# ============================================================================

class TestNightlyScan:

    async def test_one_job_per_supplier(
        self, build_service, store, fake_adapter, make_source, make_product, make_listing, monkeypatch
    ):
        monkeypatch.setattr(settings, "NIGHTLY_SCAN_PRODUCT_LIMIT", 2)
        bol = fake_adapter(make_source("bol"), default=make_listing())
        service = await build_service([bol])
        catalogs = [
            SupplierCatalog("sup-a", "Supplier A", [make_product(f"a-{i}") for i in range(3)]),
            SupplierCatalog("sup-empty", "Empty Supplier", []),
            SupplierCatalog("sup-b", "Supplier B", [make_product("b-0")]),
        ]

        jobs = await service.run_nightly_scan([bol.source], catalogs)

        assert len(jobs) == 2
        assert [job.total_products for job in jobs] == [2, 1]
        assert all(job.status is JobStatus.COMPLETED for job in jobs)
        assert jobs[0].name.startswith("Nightly Scan - Supplier A - ")
        assert jobs[0].supplier_id == "sup-a"
        assert jobs[0].config.max_retries == 2
        assert jobs[0].config.confidence_threshold == 0.7
        assert await store.latest_results("a-2") == []

    async def test_failing_supplier_does_not_stop_the_scan(
        self, build_service, fake_adapter, make_source, make_product, make_listing
    ):
        bol = fake_adapter(make_source("bol"), default=make_listing())
        service = await build_service([bol])
        catalogs = [
            # Blank search term: the product fails, the job still completes
            SupplierCatalog("sup-a", "Supplier A", [make_product("a-0", brand="", product_name="", variant_size=None)]),
            SupplierCatalog("sup-b", "Supplier B", [make_product("b-0")]),
        ]

        jobs = await service.run_nightly_scan([bol.source], catalogs)

        assert [job.failed_products for job in jobs] == [1, 0]
        assert [job.successful_products for job in jobs] == [0, 1]

    async def test_no_active_sources(self, build_service, fake_adapter, make_source, make_product):
        bol = fake_adapter(make_source("bol"))
        service = await build_service([bol])

        jobs = await service.run_nightly_scan(
            [make_source("bol", is_active=False)],
            [SupplierCatalog("sup-a", "Supplier A", [make_product()])],
        )

        assert jobs == []
