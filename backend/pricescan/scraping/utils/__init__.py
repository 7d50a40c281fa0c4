"""Scraper utilities for rate limiting, retries, parsing and currency conversion."""

from .rate_limiter import SourceRateLimiter, TokenBucket
from .normalizer import (
    CurrencyConverter,
    PriceNormalizer,
    is_available,
    normalize_url,
    resolve_url,
)
from .retry import RETRYABLE_HTTP_ERRORS, adapter_call_retrying
from .user_agents import default_headers, get_user_agent


__all__ = [
    # Rate limiting
    "SourceRateLimiter",
    "TokenBucket",
    # Normalization
    "CurrencyConverter",
    "PriceNormalizer",
    "is_available",
    "normalize_url",
    "resolve_url",
    # Retry policy
    "RETRYABLE_HTTP_ERRORS",
    "adapter_call_retrying",
    # Request headers
    "default_headers",
    "get_user_agent",
]
