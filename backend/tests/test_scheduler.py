"""Tests for the APScheduler price-scan scheduler."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pricescan.scraping.scheduler import (
    EXCHANGE_RATE_JOB_ID,
    HEALTH_JOB_ID,
    NIGHTLY_JOB_ID,
    PriceScanScheduler,
)
from pricescan.services import SupplierCatalog


class TestPriceScanScheduler:

    async def test_start_registers_jobs(self):
        scheduler = PriceScanScheduler(MagicMock(), AsyncMock(return_value=([], [])))

        scheduler.start()
        try:
            assert scheduler.is_running()
            status = scheduler.get_jobs_status()
            assert set(status) == {NIGHTLY_JOB_ID, HEALTH_JOB_ID, EXCHANGE_RATE_JOB_ID}
            assert status[NIGHTLY_JOB_ID]["next_run"] is not None
            assert "cron" in status[NIGHTLY_JOB_ID]["trigger"]
        finally:
            scheduler.stop()

    async def test_nightly_scan_uses_loaded_catalog(self, make_source, make_product):
        sources = [make_source("bol")]
        catalogs = [SupplierCatalog("sup-a", "Supplier A", [make_product()])]
        service = MagicMock()
        service.run_nightly_scan = AsyncMock(return_value=[])
        loader = AsyncMock(return_value=(sources, catalogs))
        scheduler = PriceScanScheduler(service, loader)

        await scheduler.run_nightly_scan()

        loader.assert_awaited_once()
        service.run_nightly_scan.assert_awaited_once_with(sources, catalogs)

    async def test_nightly_failure_is_logged_not_raised(self):
        loader = AsyncMock(side_effect=RuntimeError("catalog unavailable"))
        scheduler = PriceScanScheduler(MagicMock(), loader)

        await scheduler._run_nightly_wrapper()

        loader.assert_awaited_once()

    async def test_health_refresh_builds_adapters_when_missing(self, build_manager, fake_adapter, make_source):
        bol = fake_adapter(make_source("bol"))
        flaky = fake_adapter(make_source("flaky"), healthy=False)
        manager = await build_manager([bol, flaky])
        await manager.initialize_scrapers([])
        service = MagicMock()
        service.manager = manager
        loader = AsyncMock(return_value=([bol.source, flaky.source], []))
        scheduler = PriceScanScheduler(service, loader)

        health = await scheduler.refresh_health()

        assert health == {"bol": True, "flaky": False}
        assert manager.get_scraper_health() == health

    async def test_health_refresh_reuses_existing_adapters(self, build_manager, fake_adapter, make_source):
        manager = await build_manager([fake_adapter(make_source("bol"))])
        service = MagicMock()
        service.manager = manager
        loader = AsyncMock()
        scheduler = PriceScanScheduler(service, loader)

        assert await scheduler.refresh_health() == {"bol": True}
        loader.assert_not_awaited()

    async def test_exchange_rate_job_refreshes_the_manager_converter(self):
        service = MagicMock()
        service.manager.currency_converter.refresh_rates = AsyncMock(return_value=True)
        scheduler = PriceScanScheduler(service, AsyncMock())

        scheduler.add_exchange_rate_job(interval_minutes=30)
        job = scheduler.scheduler.get_job(EXCHANGE_RATE_JOB_ID)
        await job.func()

        service.manager.currency_converter.refresh_rates.assert_awaited_once()
        assert "0:30:00" in scheduler.get_jobs_status()[EXCHANGE_RATE_JOB_ID]["trigger"]

    async def test_exchange_rate_failure_is_logged_not_raised(self):
        service = MagicMock()
        service.manager.currency_converter.refresh_rates = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = PriceScanScheduler(service, AsyncMock())

        await scheduler._refresh_exchange_rates_wrapper()

        service.manager.currency_converter.refresh_rates.assert_awaited_once()
