"""Source adapter contract and base classes.

The orchestrator only relies on the SourceAdapter protocol: anything with
scrape_product(), health_check() and get_source_config() can be registered.
BaseSourceAdapter and its HTTP / browser subclasses are conveniences for
adapters that scrape a search page.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Protocol, runtime_checkable

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricescan.config import settings
from pricescan.core.exceptions import AdapterError, RateLimitError
from pricescan.scraping.types import ScrapedListing, SourceConfiguration
from pricescan.scraping.utils.browser_manager import BrowserManager, get_browser_manager
from pricescan.scraping.utils.user_agents import default_headers


@runtime_checkable
class SourceAdapter(Protocol):
    """Capability set every source adapter provides."""

    async def scrape_product(self, search_term: str) -> Optional[ScrapedListing]:
        """Best candidate listing for a search term, or None if nothing was found.

        Raises only for adapter-level faults (network, parse).
        """
        ...

    async def health_check(self) -> bool:
        """Lightweight liveness check."""
        ...

    def get_source_config(self) -> SourceConfiguration:
        ...


class BaseSourceAdapter(ABC):
    """Abstract base class for search-page adapters.

    Subclasses implement search_products(); scrape_product() returns its
    first (most relevant) listing.
    """

    adapter_name: str = ""  # Overridden in subclass (e.g., "bol.com")
    adapter_type: str = ""  # 'http' or 'browser'

    def __init__(self, source: SourceConfiguration):
        self.source = source
        self.logger = structlog.get_logger(__name__).bind(
            adapter=self.adapter_name or type(self).__name__,
            source_id=source.id,
        )

    @property
    def options(self) -> dict:
        """The source's adapter-private settings blob."""
        return self.source.config or {}

    @abstractmethod
    async def search_products(self, search_term: str) -> List[ScrapedListing]:
        """Search the source and return listings in relevance order.

        Raises:
            AdapterError: If the source could not be queried or parsed
        """

    async def scrape_product(self, search_term: str) -> Optional[ScrapedListing]:
        if not search_term or not search_term.strip():
            return None
        listings = await self.search_products(search_term.strip())
        if not listings:
            self.logger.debug("no_listing_found", search_term=search_term)
            return None
        return listings[0]

    def get_source_config(self) -> SourceConfiguration:
        return self.source

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if this adapter can reach its source."""

    async def close(self) -> None:
        """Release adapter-private resources."""


class BaseHTTPAdapter(BaseSourceAdapter):
    """Adapter that fetches search pages over plain HTTP with httpx.

    The client is created lazily and reused for every call until close().
    """

    adapter_type = "http"

    def __init__(self, source: SourceConfiguration, client: Optional[httpx.AsyncClient] = None):
        super().__init__(source)
        self._client = client
        self._owns_client = client is None
        self._timeout = float(self.options.get("timeout", settings.ADAPTER_TIMEOUT_SECONDS))

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = default_headers()
            headers.update(self.options.get("headers") or {})
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=headers,
                follow_redirects=True,
                proxy=settings.PROXY_URL or None,
            )
        return self._client

    async def _fetch(self, url: str, params: Optional[dict] = None) -> str:
        """GET a page and return its body.

        Raises:
            RateLimitError: On HTTP 429
            AdapterError: On any other error status
        """
        response = await self._get_client().get(url, params=params)
        if response.status_code == 429:
            raise RateLimitError(self.source.name)
        if response.status_code >= 400:
            raise AdapterError(self.source.name, f"HTTP {response.status_code} for {url}")
        return response.text

    async def health_check(self) -> bool:
        try:
            response = await self._get_client().get(self.source.base_url)
            return response.status_code < 500
        except httpx.HTTPError as e:
            self.logger.error("health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class BaseBrowserAdapter(BaseSourceAdapter):
    """Adapter that renders search pages with Playwright.

    Uses a per-source browser context from the shared BrowserManager.
    """

    adapter_type = "browser"

    def __init__(self, source: SourceConfiguration, browser_manager: Optional[BrowserManager] = None):
        super().__init__(source)
        self.browser_manager = browser_manager or get_browser_manager()
        self._timeout_ms = int(float(self.options.get("timeout", settings.ADAPTER_TIMEOUT_SECONDS)) * 1000)

    async def _render(self, url: str, wait_selector: Optional[str] = None) -> str:
        """Load a URL and return the rendered HTML.

        Raises:
            AdapterError: If the page could not be loaded
        """
        try:
            page = await self.browser_manager.new_page(self.source.id)
        except PlaywrightError as e:
            raise AdapterError(self.source.name, f"Browser unavailable: {e}") from e
        try:
            self.logger.debug("rendering_url", url=url)
            await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
            if wait_selector:
                try:
                    await page.wait_for_selector(wait_selector, timeout=min(self._timeout_ms, 10000))
                except PlaywrightTimeoutError:
                    # Empty result pages never render the item selector
                    self.logger.debug("wait_selector_missing", selector=wait_selector)
            return await page.content()
        except PlaywrightError as e:
            raise AdapterError(self.source.name, f"Failed to render {url}: {e}") from e
        finally:
            await page.close()

    async def health_check(self) -> bool:
        page: Any = None
        try:
            page = await self.browser_manager.new_page(self.source.id)
            await page.goto("data:text/html,<html><body>ok</body></html>")
            return True
        except PlaywrightError as e:
            self.logger.error("health_check_failed", error=str(e))
            return False
        finally:
            if page is not None:
                await page.close()

    async def close(self) -> None:
        await self.browser_manager.close_context(self.source.id)
