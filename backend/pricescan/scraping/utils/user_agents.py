"""User-Agent selection for outbound adapter requests."""

import random
from typing import Dict, List

from pricescan.config import settings

DESKTOP_USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
]


def get_user_agent() -> str:
    """The configured HTTP_USER_AGENT, or a random desktop browser UA."""
    return settings.HTTP_USER_AGENT or random.choice(DESKTOP_USER_AGENTS)


def default_headers(accept_language: str = "nl-NL,nl;q=0.9,en;q=0.8") -> Dict[str, str]:
    """Browser-like request headers for HTML search pages."""
    return {
        "User-Agent": get_user_agent(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": accept_language,
    }
