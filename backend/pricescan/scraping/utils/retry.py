"""Retry policy with exponential backoff for adapter calls.

Adapters raise on their first failure. The orchestrator owns every retry:
each attempt takes a rate-limiter token and maxRetries bounds the total.
"""

import asyncio
from typing import Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pricescan.config import settings
from pricescan.core.exceptions import AdapterError

logger = structlog.get_logger(__name__)


def _log_retry(retry_state) -> None:
    logger.warning(
        "retrying_call",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


RETRYABLE_HTTP_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


def adapter_call_retrying(max_retries: int, backoff: Optional[float] = None) -> AsyncRetrying:
    """Retry policy for one orchestrator -> adapter call.

    Args:
        max_retries: Additional attempts after the first one
        backoff: Exponential backoff multiplier in seconds,
            defaults to settings.RETRY_BACKOFF_SECONDS

    Returns:
        AsyncRetrying iterator; re-raises the last error when exhausted
    """
    multiplier = settings.RETRY_BACKOFF_SECONDS if backoff is None else backoff
    return AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=multiplier, max=30),
        retry=retry_if_exception_type(
            (AdapterError, asyncio.TimeoutError, TimeoutError, *RETRYABLE_HTTP_ERRORS)
        ),
        before_sleep=_log_retry,
        reraise=True,
    )
