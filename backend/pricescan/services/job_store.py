"""Persistence boundary for scraping jobs and price results.

ScrapingJobStore implements the two callbacks the orchestrator expects
(record_progress and save_results) on top of an async SQLAlchemy session
factory, plus the reads the admin system needs.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricescan.models.price_result import PriceResultRecord
from pricescan.models.scraping_job import ScrapingJobRecord
from pricescan.schemas.scraping import JobDescriptor, JobProgress, ProductResultsPayload
from pricescan.scraping.types import JobStatus, ScrapingJob

logger = structlog.get_logger(__name__)


class ScrapingJobStore:
    """Stores job progress and the append-only price observation log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize the store.

        Args:
            session_factory: Async session factory for database access
        """
        self.session_factory = session_factory
        self.logger = logger.bind(service="job_store")

    async def create_job(self, descriptor: JobDescriptor, total_products: int) -> ScrapingJob:
        """Insert a PENDING job record and return its snapshot."""
        config = descriptor.config.to_domain()
        async with self.session_factory() as db:
            record = ScrapingJobRecord(
                name=descriptor.name,
                supplier_id=descriptor.supplier_id,
                status=JobStatus.PENDING.value,
                config=descriptor.config.model_dump(by_alias=True),
                total_products=total_products,
            )
            db.add(record)
            await db.commit()
            job_id = record.id

        self.logger.info("job_created", job_id=job_id, name=descriptor.name, total_products=total_products)
        return ScrapingJob(
            id=job_id,
            name=descriptor.name,
            config=config,
            supplier_id=descriptor.supplier_id,
            total_products=total_products,
        )

    async def record_progress(self, progress: JobProgress) -> None:
        """Apply a progress payload to the job record."""
        async with self.session_factory() as db:
            record = await db.get(ScrapingJobRecord, progress.job_id)
            if record is None:
                self.logger.warning("job_record_missing", job_id=progress.job_id)
                return

            record.status = progress.status.value
            record.total_products = progress.total_products
            record.processed_products = progress.processed_products
            record.successful_products = progress.successful_products
            record.failed_products = progress.failed_products
            record.started_at = progress.started_at
            record.completed_at = progress.completed_at
            record.error_message = progress.error_message
            await db.commit()

        self.logger.debug(
            "job_progress_recorded",
            job_id=progress.job_id,
            status=progress.status.value,
            processed=progress.processed_products,
        )

    async def save_results(self, payload: ProductResultsPayload) -> None:
        """Append the ranked results for one product."""
        async with self.session_factory() as db:
            for result in payload.results:
                db.add(
                    PriceResultRecord(
                        id=result.id,
                        job_id=result.job_id,
                        normalized_product_id=payload.product_id,
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
                        source_price=result.source_price,
                        source_currency=result.source_currency,
                    )
                )
            await db.commit()

        self.logger.debug("results_saved", product_id=payload.product_id, count=len(payload.results))

    async def get_job(self, job_id: str) -> Optional[ScrapingJobRecord]:
        async with self.session_factory() as db:
            return await db.get(ScrapingJobRecord, job_id)

    async def list_jobs(self, limit: int = 20) -> List[ScrapingJobRecord]:
        """Most recently created jobs first."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(ScrapingJobRecord)
                .order_by(ScrapingJobRecord.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def latest_results(self, product_id: str) -> List[PriceResultRecord]:
        """Results of the most recent job that priced a product, cheapest first."""
        async with self.session_factory() as db:
            latest = await db.execute(
                select(PriceResultRecord.job_id)
                .where(PriceResultRecord.normalized_product_id == product_id)
                .order_by(PriceResultRecord.scraped_at.desc())
                .limit(1)
            )
            row = latest.first()
            if row is None:
                return []

            result = await db.execute(
                select(PriceResultRecord)
                .where(
                    PriceResultRecord.normalized_product_id == product_id,
                    PriceResultRecord.job_id == row.job_id,
                )
                .order_by(PriceResultRecord.price.asc(), PriceResultRecord.confidence_score.desc())
            )
            return list(result.scalars().all())
