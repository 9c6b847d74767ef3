"""Browser Engine — Playwright wrapper for the watched page.

Either launches Chromium or attaches to a running browser over CDP, and
exposes the page whose content is watched.
"""

from typing import Dict, Optional

from loguru import logger
from playwright.async_api import (
    BrowserContext,
    Page,
    async_playwright,
)


class BrowserEngine:
    """Owns the Playwright browser, context and watched page."""

    def __init__(self):
        self.playwright = None
        self.browser = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._attached = False

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def launch(
        self,
        headless: bool = False,
        viewport_width: int = 412,
        viewport_height: int = 915,
    ):
        """Launch a new Chromium instance with one page.

        Args:
            headless: Run without visible window
            viewport_width: Browser viewport width
            viewport_height: Browser viewport height
        """
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=headless,
            args=[
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-extensions",
            ],
        )

        context_options: Dict = {
            "viewport": {"width": viewport_width, "height": viewport_height},
            "locale": "en-US",
        }
        self.context = await self.browser.new_context(**context_options)
        self.page = await self.context.new_page()
        self._attached = False
        logger.info(
            f"[BrowserEngine] Launched ({'headless' if headless else 'headful'})"
        )

    async def connect_cdp(self, cdp_url: str):
        """Attach to an existing browser via Chrome DevTools Protocol.

        The first page of the first context is watched.

        Args:
            cdp_url: CDP endpoint URL (``http://localhost:9222`` or a ws:// URL)
        """
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.connect_over_cdp(cdp_url)
        self.context = self.browser.contexts[0] if self.browser.contexts else (
            await self.browser.new_context()
        )
        self.page = self.context.pages[0] if self.context.pages else (
            await self.context.new_page()
        )
        self._attached = True
        logger.info(f"[BrowserEngine] Connected via CDP: {cdp_url}")

    async def close(self):
        """Clean up all browser resources.

        An attached browser is only disconnected, never closed.
        """
        try:
            if self.context and not self._attached:
                await self.context.close()
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
        except Exception as exc:
            logger.warning(f"[BrowserEngine] Close error: {exc}")
        finally:
            self.page = None
            self.context = None
            self.browser = None
            self.playwright = None

    # ── Navigation ───────────────────────────────────────────────────────

    async def navigate(self, url: str, wait_until: str = "domcontentloaded"):
        """Navigate to a URL and wait for page to load."""
        await self.page.goto(url, wait_until=wait_until, timeout=30_000)

    # ── Page state ───────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        """Return the current page URL."""
        return self.page.url if self.page else ""
