"""Allow/deny filtering of candidate listing URLs by host."""

from typing import Iterable, Optional
from urllib.parse import urlparse

from pricescan.scraping.types import SourceConfiguration


def extract_host(url: str) -> str:
    """Return the lower-cased host of a URL, or "" if it has none."""
    if not url:
        return ""
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return ""
    return (host or "").rstrip(".").lower()


def _host_matches(host: str, domain: str) -> bool:
    domain = domain.strip().lstrip(".").rstrip(".").lower()
    if not domain or not host:
        return False
    return host == domain or host.endswith("." + domain)


def is_domain_allowed(
    url: str,
    allow_domains: Optional[Iterable[str]] = None,
    deny_domains: Optional[Iterable[str]] = None,
) -> bool:
    """Decide whether a candidate URL passes the allow/deny lists.

    A domain entry matches its own host and any subdomain of it
    ("bol.com" matches "www.bol.com" but not "notbol.com"). A non-empty
    allow list admits only matching hosts; the deny list is applied after
    it. URLs without a host fail any non-empty allow list.

    Args:
        url: Candidate listing URL
        allow_domains: Domains a host must match, empty means no restriction
        deny_domains: Domains a host must not match

    Returns:
        True if the candidate is admitted
    """
    host = extract_host(url)

    allow = [d for d in (allow_domains or ()) if d and d.strip()]
    if allow and not any(_host_matches(host, d) for d in allow):
        return False

    deny = [d for d in (deny_domains or ()) if d and d.strip()]
    if deny and any(_host_matches(host, d) for d in deny):
        return False

    return True


def source_admits(source: SourceConfiguration, url: str) -> bool:
    """Apply a source's configured allow/deny lists to a URL."""
    return is_domain_allowed(url, source.allow_domains, source.deny_domains)
