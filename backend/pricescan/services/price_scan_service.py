"""Price-scan orchestration service.

This service connects the scraping engine with the job store. It handles
the end-to-end flow: validate inputs -> create the job record -> build the
adapters -> run the job with the store wired in as the progress and
result callbacks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import structlog

from pricescan.config import settings
from pricescan.core.exceptions import InvalidJobError, JobAlreadyRunningError, PriceScanError
from pricescan.schemas.scraping import JobConfigIn, JobDescriptor
from pricescan.scraping.manager import ScrapingManager
from pricescan.scraping.types import NormalizedProduct, ScrapingJob, SourceConfiguration
from pricescan.services.job_store import ScrapingJobStore

logger = structlog.get_logger(__name__)

SECONDS_PER_LOOKUP = 2

# Nightly scans are unattended, so they ask for a stricter match
NIGHTLY_MAX_RETRIES = 2
NIGHTLY_CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class SupplierCatalog:
    """A supplier's products for the nightly scan."""

    supplier_id: str
    supplier_name: str
    products: Sequence[NormalizedProduct] = field(default_factory=tuple)


class PriceScanService:
    """Runs price scans against the configured sources.

    Jobs run one at a time; the underlying ScrapingManager rejects a
    second start while a job is active.
    """

    def __init__(self, store: ScrapingJobStore, manager: Optional[ScrapingManager] = None):
        """Initialize the service.

        Args:
            store: Job and result store
            manager: Orchestrator; its callbacks default to the store's
        """
        self.store = store
        self.manager = manager or ScrapingManager()
        if self.manager.on_update_job is None:
            self.manager.on_update_job = store.record_progress
        if self.manager.on_save_results is None:
            self.manager.on_save_results = store.save_results
        self.logger = logger.bind(service="price_scan_service")

    @staticmethod
    def estimate_duration(product_count: int, source_count: int) -> int:
        """Rough job duration in seconds (about two seconds per lookup)."""
        return product_count * source_count * SECONDS_PER_LOOKUP

    async def start_price_scan(
        self,
        descriptor: JobDescriptor,
        sources: Sequence[SourceConfiguration],
        products: Sequence[NormalizedProduct],
    ) -> ScrapingJob:
        """Create a job record and run it to completion.

        Args:
            descriptor: Job name, supplier and configuration
            sources: Known source configurations
            products: Products to price

        Returns:
            Final job snapshot

        Raises:
            JobAlreadyRunningError: If a job is already running
            InvalidJobError: If there are no products or no usable sources
        """
        if self.manager.is_job_running():
            current = self.manager.get_current_job()
            raise JobAlreadyRunningError(current.id if current else "unknown")
        if not products:
            raise InvalidJobError("No products selected for the price scan")

        wanted = set(descriptor.config.sources)
        selected = [
            source for source in sources
            if source.is_active and (not wanted or source.id in wanted)
        ]
        if not selected:
            raise InvalidJobError("No active sources selected for the price scan")

        available = await self.manager.initialize_scrapers(selected)
        if not available:
            raise InvalidJobError("None of the selected sources has a registered adapter")

        job = await self.store.create_job(descriptor, total_products=len(products))
        self.logger.info(
            "price_scan_starting",
            job_id=job.id,
            name=job.name,
            products=len(products),
            sources=available,
            estimated_seconds=self.estimate_duration(len(products), len(available)),
        )
        return await self.manager.start(job, products)

    async def run_nightly_scan(
        self,
        sources: Sequence[SourceConfiguration],
        catalogs: Iterable[SupplierCatalog],
    ) -> List[ScrapingJob]:
        """Run one job per supplier against every active source.

        Suppliers are processed sequentially; each job prices at most
        NIGHTLY_SCAN_PRODUCT_LIMIT products. A failing supplier job is
        logged and the next supplier still runs.

        Returns:
            Final snapshots of the jobs that ran
        """
        active_ids = [source.id for source in sources if source.is_active]
        if not active_ids:
            self.logger.warning("nightly_scan_no_active_sources")
            return []

        today = datetime.now(timezone.utc).date().isoformat()
        jobs: List[ScrapingJob] = []
        for catalog in catalogs:
            products = list(catalog.products)[: settings.NIGHTLY_SCAN_PRODUCT_LIMIT]
            if not products:
                continue

            descriptor = JobDescriptor(
                name=f"Nightly Scan - {catalog.supplier_name} - {today}",
                supplier_id=catalog.supplier_id,
                total_products=len(products),
                config=JobConfigIn(
                    sources=active_ids,
                    max_retries=NIGHTLY_MAX_RETRIES,
                    confidence_threshold=NIGHTLY_CONFIDENCE_THRESHOLD,
                ),
            )
            try:
                jobs.append(await self.start_price_scan(descriptor, sources, products))
            except PriceScanError as e:
                self.logger.error(
                    "nightly_supplier_scan_failed",
                    supplier_id=catalog.supplier_id,
                    error=e.message,
                )
            except Exception as e:
                self.logger.error(
                    "nightly_supplier_scan_crashed",
                    supplier_id=catalog.supplier_id,
                    error=str(e),
                    exc_info=True,
                )

        self.logger.info("nightly_scan_finished", jobs=len(jobs))
        return jobs

    async def close(self) -> None:
        await self.manager.close()
