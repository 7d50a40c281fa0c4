"""APScheduler-based price-scan scheduler.

Runs the nightly price scan (one job per supplier) and periodically
refreshes the cached adapter health map and the live exchange rates.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from pricescan.config import settings
from pricescan.scraping.types import ScrapingJob, SourceConfiguration
from pricescan.services.price_scan_service import PriceScanService, SupplierCatalog

logger = structlog.get_logger(__name__)

CatalogLoader = Callable[[], Awaitable[Tuple[Sequence[SourceConfiguration], Sequence[SupplierCatalog]]]]

NIGHTLY_JOB_ID = "nightly_price_scan"
HEALTH_JOB_ID = "scraper_health_refresh"
EXCHANGE_RATE_JOB_ID = "exchange_rate_refresh"


class PriceScanScheduler:
    """Schedules the nightly price scan and the periodic refresh jobs.

    Job failures are logged and never stop the scheduler.
    """

    def __init__(self, service: PriceScanService, catalog_loader: CatalogLoader):
        """Initialize the scheduler.

        Args:
            service: Price-scan service used to run the jobs
            catalog_loader: Coroutine returning the source configurations
                and per-supplier product lists to scan
        """
        self.service = service
        self.catalog_loader = catalog_loader
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="price_scan_scheduler")

    def start(self) -> None:
        """Register the jobs and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return
        self.add_nightly_job()
        self.add_health_job()
        self.add_exchange_rate_job()
        self.scheduler.start()
        self.logger.info("scheduler_started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def add_nightly_job(
        self,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
    ) -> Job:
        """Schedule the nightly scan, defaulting to NIGHTLY_SCAN_HOUR:NIGHTLY_SCAN_MINUTE UTC."""
        hour = settings.NIGHTLY_SCAN_HOUR if hour is None else hour
        minute = settings.NIGHTLY_SCAN_MINUTE if minute is None else minute
        job = self.scheduler.add_job(
            func=self._run_nightly_wrapper,
            trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
            id=NIGHTLY_JOB_ID,
            name="Nightly price scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("nightly_job_added", hour=hour, minute=minute)
        return job

    def add_health_job(self, interval_minutes: Optional[int] = None) -> Job:
        interval_minutes = interval_minutes or settings.HEALTH_CHECK_INTERVAL_MINUTES
        job = self.scheduler.add_job(
            func=self._refresh_health_wrapper,
            trigger=IntervalTrigger(
                minutes=interval_minutes,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id=HEALTH_JOB_ID,
            name="Scraper health refresh",
            replace_existing=True,
            max_instances=1,
        )
        self.logger.info("health_job_added", interval_minutes=interval_minutes)
        return job

    def add_exchange_rate_job(self, interval_minutes: Optional[int] = None) -> Job:
        """Refresh the live exchange rates now and then every interval_minutes."""
        interval_minutes = interval_minutes or settings.EXCHANGE_RATE_REFRESH_MINUTES
        job = self.scheduler.add_job(
            func=self._refresh_exchange_rates_wrapper,
            trigger=IntervalTrigger(
                minutes=interval_minutes,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id=EXCHANGE_RATE_JOB_ID,
            name="Exchange rate refresh",
            replace_existing=True,
            max_instances=1,
        )
        self.logger.info("exchange_rate_job_added", interval_minutes=interval_minutes)
        return job

    async def run_nightly_scan(self) -> List[ScrapingJob]:
        """Load the catalog and run one job per supplier."""
        self.logger.info("nightly_scan_starting")
        sources, catalogs = await self.catalog_loader()
        return await self.service.run_nightly_scan(sources, catalogs)

    async def refresh_health(self) -> Dict[str, bool]:
        """Probe the adapters, building them from the catalog sources if none exist yet."""
        manager = self.service.manager
        if not manager.get_available_scrapers() and not manager.is_job_running():
            sources, _ = await self.catalog_loader()
            await manager.initialize_scrapers([s for s in sources if s.is_active])
        return await manager.refresh_scraper_health()

    async def refresh_exchange_rates(self) -> bool:
        """Fetch live rates for the converter used by the orchestrator."""
        return await self.service.manager.currency_converter.refresh_rates()

    async def _run_nightly_wrapper(self) -> None:
        try:
            await self.run_nightly_scan()
        except Exception as e:
            self.logger.error("nightly_scan_failed", error=str(e), exc_info=True)

    async def _refresh_health_wrapper(self) -> None:
        try:
            await self.refresh_health()
        except Exception as e:
            self.logger.error("health_refresh_failed", error=str(e), exc_info=True)

    async def _refresh_exchange_rates_wrapper(self) -> None:
        try:
            if not await self.refresh_exchange_rates():
                self.logger.warning("exchange_rate_refresh_unsuccessful")
        except Exception as e:
            self.logger.error("exchange_rate_refresh_failed", error=str(e), exc_info=True)

    def get_jobs_status(self) -> dict:
        """Status of the scheduled jobs keyed by job id."""
        jobs = {}
        for job in self.scheduler.get_jobs():
            # Jobs added before start() have no next_run_time yet
            next_run = getattr(job, "next_run_time", None)
            jobs[job.id] = {
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
