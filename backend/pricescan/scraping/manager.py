"""Scraping job orchestration.

The ScrapingManager runs one job at a time: it splits the product list
into batches, queries every selected source adapter for each product,
filters and matches the candidates, and hands the ranked results and the
job progress to the injected callbacks.

Error tiers:
1. An adapter call that fails, times out or returns nothing is logged and
   skipped; the next adapter is queried.
2. A product without admissible candidates (or whose results could not be
   persisted) is counted as failed; the job continues.
3. Anything else is an orchestration fault: the job is marked FAILED and
   the exception propagates out of start().
"""

import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import structlog

from pricescan.config import settings
from pricescan.core.exceptions import (
    InvalidJobError,
    JobAlreadyRunningError,
    NoJobRunningError,
    PersistenceError,
)
from pricescan.schemas.scraping import JobProgress, ProductResultsPayload
from pricescan.scraping.base import SourceAdapter
from pricescan.scraping.domain_filter import source_admits
from pricescan.scraping.factory import AdapterFactory, get_adapter_factory
from pricescan.scraping.job_state import (
    JobCompleted,
    JobFailed,
    JobStarted,
    JobStopped,
    ProductProcessed,
    advance,
)
from pricescan.scraping.matching import ProductMatcher
from pricescan.scraping.ranking import select_top_results
from pricescan.scraping.types import (
    JobStatus,
    NormalizedProduct,
    PriceScrapingResult,
    ScrapedListing,
    ScrapingJob,
    ScrapingJobConfig,
    SourceConfiguration,
    utcnow,
)
from pricescan.scraping.utils.normalizer import CurrencyConverter
from pricescan.scraping.utils.rate_limiter import SourceRateLimiter
from pricescan.scraping.utils.retry import adapter_call_retrying

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[JobProgress], Union[None, Awaitable[None]]]
ResultCallback = Callable[[ProductResultsPayload], Union[None, Awaitable[None]]]


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class _JobRun:
    """State of one start() call: the current snapshot and its stop signal."""

    def __init__(self, job: ScrapingJob):
        self.job = job
        self.stop_event = asyncio.Event()
        # Product whose results are being handed to the result callback
        self.persisting: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.stop_event.is_set()

    async def pause(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True if the job was stopped meanwhile."""
        if seconds <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


class ScrapingManager:
    """Coordinates scraping jobs across the configured source adapters.

    Only one job runs at a time. Batches, products within a batch and
    adapters for a product are processed sequentially; every adapter call
    first takes a token from the source's rate limiter and runs under a
    timeout and retry policy.
    """

    def __init__(
        self,
        adapter_factory: Optional[AdapterFactory] = None,
        matcher: Optional[ProductMatcher] = None,
        rate_limiter: Optional[SourceRateLimiter] = None,
        currency_converter: Optional[CurrencyConverter] = None,
        on_update_job: Optional[ProgressCallback] = None,
        on_save_results: Optional[ResultCallback] = None,
        politeness_delay: Optional[float] = None,
        adapter_timeout: Optional[float] = None,
        retry_backoff: Optional[float] = None,
    ):
        """Initialize the manager.

        Args:
            adapter_factory: Registry used to build adapters, defaults to the global one
            matcher: Product matcher
            rate_limiter: Per-source token buckets
            currency_converter: Converts candidate prices to the product currency
            on_update_job: Called with a JobProgress at start, after each batch and at the end
            on_save_results: Called with a ProductResultsPayload per matched product
            politeness_delay: Seconds between adapter calls for one product,
                defaults to settings.POLITENESS_DELAY_MS
            adapter_timeout: Seconds per adapter call when the job sets no timeout
            retry_backoff: Backoff multiplier for adapter retries
        """
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.matcher = matcher or ProductMatcher()
        self.rate_limiter = rate_limiter or SourceRateLimiter()
        self.currency_converter = currency_converter or CurrencyConverter()
        self.on_update_job = on_update_job
        self.on_save_results = on_save_results
        self.politeness_delay = (
            settings.politeness_delay_seconds if politeness_delay is None else politeness_delay
        )
        self.adapter_timeout = settings.ADAPTER_TIMEOUT_SECONDS if adapter_timeout is None else adapter_timeout
        self.retry_backoff = retry_backoff

        self._scrapers: Dict[str, SourceAdapter] = {}
        self._health: Dict[str, bool] = {}
        self._run: Optional[_JobRun] = None
        self.logger = logger.bind(service="scraping_manager")

    # ------------------------------------------------------------------
    # Adapter table
    # ------------------------------------------------------------------

    async def initialize_scrapers(self, sources: Iterable[SourceConfiguration]) -> List[str]:
        """Build the id-keyed adapter table from source configurations.

        Previously held adapters are closed. Unknown or inactive sources
        are skipped with a warning.

        Returns:
            Ids of the sources with an adapter
        """
        if self._run is not None:
            raise JobAlreadyRunningError(self._run.job.id)

        await self.close()
        sources = list(sources)
        self._scrapers = self.adapter_factory.build_adapters(sources)
        self._health = {}

        for source in sources:
            if source.id in self._scrapers:
                self.rate_limiter.configure(source.id, source.rate_limit)

        self.logger.info(
            "scrapers_initialized",
            requested=len(sources),
            initialized=len(self._scrapers),
            source_ids=list(self._scrapers),
        )
        return list(self._scrapers)

    def _select_adapters(self, config: ScrapingJobConfig) -> List[Tuple[SourceConfiguration, SourceAdapter]]:
        """Adapters for the job's sources, highest priority first.

        An empty source list selects every configured adapter. Equal
        priorities keep the adapter table's insertion order.
        """
        wanted = set(config.sources)
        selected = [
            (adapter.get_source_config(), adapter)
            for source_id, adapter in self._scrapers.items()
            if not wanted or source_id in wanted
        ]
        missing = wanted.difference(self._scrapers)
        if missing:
            self.logger.warning("job_sources_unavailable", source_ids=sorted(missing))
        return sorted(selected, key=lambda pair: -pair[0].priority)

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    async def start(self, job: ScrapingJob, products: Sequence[NormalizedProduct]) -> ScrapingJob:
        """Run a job to completion.

        Args:
            job: PENDING job snapshot
            products: Products to price, in processing order

        Returns:
            The final job snapshot (COMPLETED or STOPPED)

        Raises:
            JobAlreadyRunningError: If another job is active
            InvalidJobError: If products is empty or the job is not PENDING
        """
        if self._run is not None:
            raise JobAlreadyRunningError(self._run.job.id)
        products = list(products)
        if not products:
            raise InvalidJobError("Cannot start a job without products")
        if job.status is not JobStatus.PENDING:
            raise InvalidJobError(f"Job {job.id} is {job.status.value}, expected PENDING")

        run = _JobRun(job)
        self._run = run
        log = self.logger.bind(job_id=job.id, job_name=job.name)

        try:
            run.job = advance(run.job, JobStarted(total_products=len(products), started_at=utcnow()))
            await self._report(run.job)

            adapters = self._select_adapters(job.config)
            batches = create_batches(products, job.config.batch_size)
            log.info(
                "job_started",
                total_products=len(products),
                batches=len(batches),
                source_ids=[source.id for source, _ in adapters],
            )

            for batch_number, batch in enumerate(batches, start=1):
                if run.cancelled:
                    break
                log.info("batch_started", batch=batch_number, of=len(batches), size=len(batch))

                for product in batch:
                    if run.cancelled:
                        break
                    succeeded = await self._process_product(run, product, adapters)
                    if run.cancelled:
                        # stop() already finalised the snapshot
                        break
                    run.job = advance(run.job, ProductProcessed(product_id=product.id, succeeded=succeeded))

                if run.cancelled:
                    break

                await self._report(run.job)
                log.info(
                    "batch_completed",
                    batch=batch_number,
                    processed=run.job.processed_products,
                    successful=run.job.successful_products,
                    failed=run.job.failed_products,
                )

                if batch_number < len(batches):
                    if await run.pause(job.config.delay_between_batches / 1000.0):
                        break

            if run.cancelled:
                log.info("job_loop_exited_after_stop", processed=run.job.processed_products)
                return run.job

            run.job = advance(run.job, JobCompleted(completed_at=utcnow()))
            await self._report(run.job)
            log.info(
                "job_completed",
                processed=run.job.processed_products,
                successful=run.job.successful_products,
                failed=run.job.failed_products,
            )
            return run.job

        except asyncio.CancelledError:
            if run.job.status is JobStatus.RUNNING:
                run.job = advance(run.job, JobStopped(completed_at=utcnow()))
                await self._report(run.job)
            log.warning("job_task_cancelled")
            raise

        except Exception as e:
            log.error("job_failed", error=str(e), exc_info=True)
            if not run.job.status.is_terminal:
                run.job = advance(run.job, JobFailed(error_message=str(e), completed_at=utcnow()))
                await self._report(run.job)
            raise

        finally:
            if self._run is run:
                self._run = None

    async def stop(self) -> ScrapingJob:
        """Stop the running job.

        The job becomes STOPPED immediately and the running lock is
        released; the batch loop exits at its next product boundary.
        A product whose results are already being saved is counted as
        successful, so the counters agree with the stored results.

        Raises:
            NoJobRunningError: If no job is active
        """
        run = self._run
        if run is None or run.job.status.is_terminal:
            raise NoJobRunningError()

        if run.persisting is not None:
            run.job = advance(run.job, ProductProcessed(product_id=run.persisting, succeeded=True))
            run.persisting = None
        run.job = advance(run.job, JobStopped(completed_at=utcnow()))
        run.stop_event.set()
        self._run = None

        self.logger.info(
            "job_stopped",
            job_id=run.job.id,
            processed=run.job.processed_products,
            total=run.job.total_products,
        )
        await self._report(run.job)
        return run.job

    async def _report(self, job: ScrapingJob) -> None:
        """Send a progress snapshot; callback failures never affect the job."""
        try:
            await _invoke(self.on_update_job, JobProgress.from_job(job))
        except Exception as e:
            self.logger.warning(
                "progress_callback_failed",
                job_id=job.id,
                status=job.status.value,
                error=str(e),
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Per-product processing
    # ------------------------------------------------------------------

    async def _process_product(
        self,
        run: _JobRun,
        product: NormalizedProduct,
        adapters: List[Tuple[SourceConfiguration, SourceAdapter]],
    ) -> bool:
        """Query all adapters for one product, match and persist the results.

        Returns:
            True if ranked results were persisted for the product
        """
        log = self.logger.bind(job_id=run.job.id, product_id=product.id)
        search_term = product.search_term
        if not search_term:
            log.warning("product_without_search_term")
            return False

        pool: List[PriceScrapingResult] = []
        for index, (source, adapter) in enumerate(adapters):
            if index and await run.pause(self.politeness_delay):
                return False
            if run.cancelled:
                return False

            listing = await self._call_adapter(source, adapter, search_term, run.job.config)
            if listing is None:
                continue

            candidate = self._to_result(listing, product, source, run.job.id)
            if candidate is None:
                continue

            if not source_admits(source, candidate.url):
                log.warning("candidate_domain_filtered", source_id=source.id, url=candidate.url)
                continue
            pool.append(candidate)

        if not pool:
            log.info("product_no_candidates", search_term=search_term)
            return False

        match = self.matcher.find_matches(
            product, pool, threshold=run.job.config.confidence_threshold
        )
        if not match.scraped_results:
            log.info(
                "product_no_match",
                candidates=len(pool),
                threshold=run.job.config.confidence_threshold,
            )
            return False

        results = select_top_results(match)
        if run.cancelled:
            return False

        run.persisting = product.id
        try:
            await self._persist(product.id, results)
        except PersistenceError as e:
            log.warning("product_results_not_saved", error=e.message)
            return False
        finally:
            run.persisting = None

        log.debug(
            "product_matched",
            candidates=len(pool),
            retained=len(results),
            best_score=match.confidence_score,
            lowest_price=str(results[0].price),
        )
        return True

    async def _call_adapter(
        self,
        source: SourceConfiguration,
        adapter: SourceAdapter,
        search_term: str,
        config: ScrapingJobConfig,
    ) -> Optional[ScrapedListing]:
        """One rate-limited, timed-out and retried adapter call.

        Every fault is logged and reported as "no candidate".
        """
        timeout = config.timeout / 1000.0 if config.timeout else self.adapter_timeout
        try:
            async for attempt in adapter_call_retrying(config.max_retries, backoff=self.retry_backoff):
                with attempt:
                    await self.rate_limiter.acquire(source.id)
                    return await asyncio.wait_for(adapter.scrape_product(search_term), timeout=timeout)
        except Exception as e:
            self.logger.warning(
                "adapter_call_failed",
                source_id=source.id,
                search_term=search_term,
                error_type=type(e).__name__,
                error=str(e),
            )
        return None

    def _to_result(
        self,
        listing: ScrapedListing,
        product: NormalizedProduct,
        source: SourceConfiguration,
        job_id: str,
    ) -> Optional[PriceScrapingResult]:
        """Convert a listing into an unscored candidate in the product's currency."""
        price = listing.price
        shipping = listing.shipping_cost
        source_price = None
        source_currency = None

        if listing.currency.upper() != product.currency.upper():
            try:
                price = self.currency_converter.convert(listing.price, listing.currency, product.currency)
                if shipping is not None:
                    shipping = self.currency_converter.convert(shipping, listing.currency, product.currency)
            except ValueError as e:
                self.logger.warning(
                    "candidate_currency_unsupported",
                    source_id=source.id,
                    currency=listing.currency,
                    error=str(e),
                )
                return None
            source_price = listing.price
            source_currency = listing.currency.upper()

        return PriceScrapingResult(
            id=str(uuid.uuid4()),
            normalized_product_id=product.id,
            source_id=source.id,
            product_title=listing.title,
            merchant=listing.merchant or source.name,
            url=listing.url,
            price=price,
            currency=product.currency,
            price_incl_vat=listing.price_includes_tax,
            shipping_cost=shipping,
            availability=listing.availability,
            confidence_score=0.0,
            is_lowest_price=False,
            scraped_at=listing.scraped_at,
            job_id=job_id,
            source_price=source_price,
            source_currency=source_currency,
        )

    async def _persist(self, product_id: str, results: List[PriceScrapingResult]) -> None:
        try:
            payload = ProductResultsPayload.build(product_id, results)
            await _invoke(self.on_save_results, payload)
        except Exception as e:
            raise PersistenceError(product_id, str(e)) from e

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_job_running(self) -> bool:
        return self._run is not None

    def get_current_job(self) -> Optional[ScrapingJob]:
        """Snapshot of the running job, or None."""
        return self._run.job if self._run is not None else None

    def get_available_scrapers(self) -> List[str]:
        """Ids of the sources with a configured adapter."""
        return list(self._scrapers)

    def get_scraper_health(self) -> Dict[str, bool]:
        """Liveness per source id from the last refresh_scraper_health()."""
        return dict(self._health)

    async def refresh_scraper_health(self) -> Dict[str, bool]:
        """Probe every adapter and cache the outcome."""
        health: Dict[str, bool] = {}
        for source_id, adapter in self._scrapers.items():
            try:
                health[source_id] = bool(
                    await asyncio.wait_for(adapter.health_check(), timeout=self.adapter_timeout)
                )
            except Exception as e:
                self.logger.warning("scraper_health_check_failed", source_id=source_id, error=str(e))
                health[source_id] = False
        self._health = health
        self.logger.info(
            "scraper_health_refreshed",
            healthy=sum(health.values()),
            total=len(health),
        )
        return dict(health)

    async def close(self) -> None:
        """Release resources held by the adapters."""
        for source_id, adapter in self._scrapers.items():
            close = getattr(adapter, "close", None)
            if close is None:
                continue
            try:
                await _invoke(close)
            except Exception as e:
                self.logger.warning("scraper_close_failed", source_id=source_id, error=str(e))
