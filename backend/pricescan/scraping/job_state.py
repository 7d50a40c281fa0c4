"""Job state transitions.

advance() takes an immutable ScrapingJob snapshot plus an event and
returns the next snapshot. It is the only place job fields change.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Union

from pricescan.core.exceptions import InvalidTransitionError
from pricescan.scraping.types import JobStatus, ScrapingJob


@dataclass(frozen=True)
class JobStarted:
    total_products: int
    started_at: datetime


@dataclass(frozen=True)
class ProductProcessed:
    product_id: str
    succeeded: bool


@dataclass(frozen=True)
class JobCompleted:
    completed_at: datetime


@dataclass(frozen=True)
class JobFailed:
    error_message: str
    completed_at: datetime


@dataclass(frozen=True)
class JobStopped:
    completed_at: datetime


JobEvent = Union[JobStarted, ProductProcessed, JobCompleted, JobFailed, JobStopped]


def _reject(job: ScrapingJob, event: JobEvent) -> InvalidTransitionError:
    return InvalidTransitionError(job.id, job.status.value, type(event).__name__)


def advance(job: ScrapingJob, event: JobEvent) -> ScrapingJob:
    """Apply one event to a job snapshot.

    Args:
        job: Current snapshot
        event: Lifecycle or progress event

    Returns:
        The next snapshot

    Raises:
        InvalidTransitionError: If the job is terminal, the event does not
            apply to the current status, or counters would exceed the total
    """
    if job.status.is_terminal:
        raise _reject(job, event)

    if isinstance(event, JobStarted):
        if job.status is not JobStatus.PENDING or event.total_products < 1:
            raise _reject(job, event)
        return replace(
            job,
            status=JobStatus.RUNNING,
            total_products=event.total_products,
            processed_products=0,
            successful_products=0,
            failed_products=0,
            started_at=event.started_at,
            completed_at=None,
            error_message=None,
        )

    if isinstance(event, ProductProcessed):
        if job.status is not JobStatus.RUNNING or job.processed_products >= job.total_products:
            raise _reject(job, event)
        return replace(
            job,
            processed_products=job.processed_products + 1,
            successful_products=job.successful_products + (1 if event.succeeded else 0),
            failed_products=job.failed_products + (0 if event.succeeded else 1),
        )

    if isinstance(event, JobCompleted):
        if job.status is not JobStatus.RUNNING:
            raise _reject(job, event)
        return replace(job, status=JobStatus.COMPLETED, completed_at=event.completed_at)

    if isinstance(event, JobStopped):
        if job.status is not JobStatus.RUNNING:
            raise _reject(job, event)
        completed_at = event.completed_at
        if job.started_at and completed_at < job.started_at:
            completed_at = job.started_at
        return replace(job, status=JobStatus.STOPPED, completed_at=completed_at)

    if isinstance(event, JobFailed):
        # A job can fail before it ever reached RUNNING
        return replace(
            job,
            status=JobStatus.FAILED,
            completed_at=event.completed_at,
            error_message=event.error_message,
        )

    raise _reject(job, event)
