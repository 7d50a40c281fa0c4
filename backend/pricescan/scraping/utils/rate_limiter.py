"""Per-source request budgets for adapter calls."""

import asyncio
import time
from typing import Dict, Optional

import structlog

from pricescan.config import settings

logger = structlog.get_logger(__name__)


class TokenBucket:
    """Requests-per-minute budget for one source.

    The bucket starts full and refills continuously at rpm / 60 tokens per
    second up to its burst capacity (10% of the rpm, at least 2 requests).
    Every adapter call takes one token.
    """

    def __init__(self, rpm: int, burst: Optional[float] = None):
        if rpm <= 0:
            raise ValueError("rpm must be a positive integer")
        self.rpm = rpm
        self.rate = rpm / 60.0
        self.capacity = burst if burst is not None else max(2.0, rpm / 10.0)
        self.tokens = self.capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def wait_time(self) -> float:
        """Seconds until a token is available, 0 if one is ready now."""
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.rate)
        self.last_refill = now
        return max(0.0, (1.0 - self.tokens) / self.rate)

    async def acquire(self) -> float:
        """Take one token, sleeping until the budget allows it.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            delay = self.wait_time()
            while delay > 0:
                await asyncio.sleep(delay)
                waited += delay
                delay = self.wait_time()
            self.tokens -= 1.0
        return waited


class SourceRateLimiter:
    """Token buckets keyed by source id.

    Each source's bucket is sized from its rate-limit hint, so the per-source
    budget holds no matter how adapter calls are scheduled.
    """

    def __init__(self, default_rpm: Optional[int] = None):
        self.default_rpm = default_rpm or settings.DEFAULT_SOURCE_RPM
        self._buckets: Dict[str, TokenBucket] = {}

    def configure(self, source_id: str, rpm: Optional[int]) -> None:
        """Set the budget for a source; missing or zero hints use the default.

        An existing bucket is kept when the budget is unchanged.
        """
        rpm = rpm if rpm and rpm > 0 else self.default_rpm
        bucket = self._buckets.get(source_id)
        if bucket is None or bucket.rpm != rpm:
            self._buckets[source_id] = TokenBucket(rpm)

    async def acquire(self, source_id: str) -> None:
        """Block until the source's budget allows another adapter call."""
        if source_id not in self._buckets:
            self.configure(source_id, None)
        waited = await self._buckets[source_id].acquire()
        if waited:
            logger.debug("rate_limit_wait", source_id=source_id, seconds=round(waited, 3))

    def get_current_rate(self, source_id: str) -> int:
        """Configured requests per minute for a source."""
        bucket = self._buckets.get(source_id)
        return bucket.rpm if bucket is not None else self.default_rpm
