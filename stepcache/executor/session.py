"""One browser, context and page per case, with optional tracing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from stepcache.models.config import FrameworkConfig

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


class BrowserSession:
    """Owns the Playwright objects for one case. ``close()`` is safe to call at any point."""

    def __init__(self, config: FrameworkConfig, headless: Optional[bool] = None):
        self.config = config
        self.headless = config.headless if headless is None else headless
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._tracing = False

    async def start(self) -> Page:
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=["--disable-blink-features=AutomationControlled"],
        )
        self.context = await self.browser.new_context(
            viewport={"width": self.config.viewport.width, "height": self.config.viewport.height},
            user_agent=self.config.user_agent or DEFAULT_USER_AGENT,
            locale="en-US",
        )
        if self.config.record_trace:
            await self.context.tracing.start(screenshots=True, snapshots=True)
            self._tracing = True
        self.page = await self.context.new_page()
        self.page.set_default_timeout(self.config.action_timeout_ms)
        return self.page

    async def stop_trace(self, name: str) -> Optional[str]:
        """Finalize the trace artifact as ``trace-<name>.zip``. Returns its path."""
        if not self._tracing or self.context is None:
            return None
        self._tracing = False
        path = Path(self.config.trace_dir) / f"trace-{name}.zip"
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await self.context.tracing.stop(path=str(path))
        except PlaywrightError as e:
            logger.warning("Could not save trace %s: %s", path, e)
            return None
        logger.debug("Trace saved to %s", path)
        return str(path)

    async def close(self) -> None:
        if self._tracing and self.context is not None:
            self._tracing = False
            try:
                await self.context.tracing.stop()
            except PlaywrightError as e:
                logger.debug("Discarding trace failed: %s", e)
        for name in ("context", "browser"):
            target = getattr(self, name)
            if target is None:
                continue
            setattr(self, name, None)
            try:
                await target.close()
            except PlaywrightError as e:
                logger.debug("Closing %s failed: %s", name, e)
        self.page = None
        if self.playwright is not None:
            playwright, self.playwright = self.playwright, None
            await playwright.stop()
