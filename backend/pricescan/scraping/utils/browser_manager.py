"""Playwright browser lifecycle manager.

One browser is shared by all browser-rendered adapters; each source gets
its own named context so cookies and sessions stay isolated per source
and are reused across sequential calls within a job.
"""

import asyncio
from typing import Dict, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from pricescan.config import settings
from pricescan.scraping.utils.user_agents import get_user_agent

logger = structlog.get_logger(__name__)


# Mask the most common automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['nl-NL', 'nl', 'en-US', 'en'] });
window.chrome = { runtime: {} };
"""


class BrowserManager:
    """Manages the Playwright browser and a pool of per-source contexts."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        proxy_url: Optional[str] = None,
        block_resources: bool = True,
    ):
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless
        self._proxy_url = proxy_url if proxy_url is not None else settings.PROXY_URL
        self._block_resources = block_resources
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._contexts: Dict[str, BrowserContext] = {}

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser if it is not running yet."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close all contexts and the browser."""
        async with self._lock:
            for name, ctx in self._contexts.items():
                try:
                    await ctx.close()
                except Exception as e:
                    logger.warning("browser_context_close_failed", name=name, error=str(e))
            self._contexts.clear()

            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def get_context(self, name: str = "default") -> BrowserContext:
        """Get or create the browser context for a source."""
        if name in self._contexts:
            return self._contexts[name]

        if not self._browser:
            await self.start()

        context = await self._browser.new_context(
            user_agent=get_user_agent(),
            viewport={"width": 1920, "height": 1080},
            locale="nl-NL",
            timezone_id="Europe/Amsterdam",
            proxy={"server": self._proxy_url} if self._proxy_url else None,
        )
        await context.add_init_script(STEALTH_JS)

        # Block heavy resources for speed
        if self._block_resources:
            await context.route(
                "**/*.{png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        self._contexts[name] = context
        logger.info("browser_context_created", name=name, has_proxy=bool(self._proxy_url))
        return context

    async def new_page(self, name: str = "default") -> Page:
        ctx = await self.get_context(name)
        return await ctx.new_page()

    async def close_context(self, name: str) -> None:
        ctx = self._contexts.pop(name, None)
        if ctx:
            await ctx.close()


_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the process-wide BrowserManager."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager
