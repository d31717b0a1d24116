"""Browser session: one Chromium instance, one page.

The session owns both and releases them together in close(). Console output
and uncaught page errors are forwarded to the log; those listeners never touch
control flow.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Browser, ConsoleMessage, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.errors import NavigationError, ReadinessTimeoutError
from .capture import (
    BROWSER_ARGS,
    CaptureOptions,
    capture,
    require_page,
    screenshot_filename,
    start_playwright,
)

logger = logging.getLogger(__name__)
console_logger = logging.getLogger(f"{__name__}.console")


class BrowserSession:
    """Owns the browser and page of one harness run."""

    def __init__(self, screenshot_dir: Path, viewport: tuple = (1200, 800),
                 launch_timeout: float = 30.0, screenshot_timeout: float = 30.0):
        self.screenshot_dir = Path(screenshot_dir)
        self.viewport = viewport
        self.launch_timeout = launch_timeout
        self.screenshot_timeout = screenshot_timeout
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def page(self) -> Page:
        return require_page(self._page)

    @property
    def is_open(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    async def open(self, headless: bool = False) -> None:
        """Launch Chromium and open the single page of this session."""
        logger.info(f"Starting browser ({'headless' if headless else 'visible'})...")
        self._playwright = await start_playwright(self.launch_timeout)
        self._browser = await self._playwright.chromium.launch(
            headless=headless,
            args=BROWSER_ARGS,
            timeout=self.launch_timeout * 1000,
        )
        width, height = self.viewport
        self._page = await self._browser.new_page(viewport={"width": width, "height": height})
        self._page.on("console", self._on_console)
        self._page.on("pageerror", self._on_page_error)

    async def navigate(self, url: str, timeout: float = 30.0) -> None:
        page = self.page
        logger.info(f"Navigating to {url}")
        try:
            await page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

    async def wait_for_condition(self, predicate: str, timeout: float = 10.0,
                                 polling: Any = "raf") -> None:
        """Poll a JS predicate in the page until it is truthy.

        Navigation finishing does not mean the client-side UI has rendered its
        controls, so interactions wait on this first.
        """
        page = self.page
        try:
            await page.wait_for_function(predicate, timeout=timeout * 1000, polling=polling)
        except PlaywrightTimeoutError as e:
            raise ReadinessTimeoutError(f"Page not ready after {timeout:g}s: {predicate}") from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        page = self.page
        if arg is None:
            return await page.evaluate(script)
        return await page.evaluate(script, arg)

    async def screenshot(self, name: Optional[str] = None, selector: Optional[str] = None) -> Path:
        """Capture the page (or one element) to screenshot_dir/name.png."""
        path = self.screenshot_dir / screenshot_filename(name)
        options = CaptureOptions(selector=selector, full_page=True, timeout=self.screenshot_timeout)
        return await capture(self.page, path, options)

    async def close(self) -> None:
        """Close page, browser and driver. Safe before/after open and twice."""
        if self._closed:
            return
        self._closed = True
        page, browser, driver = self._page, self._browser, self._playwright
        self._page = self._browser = self._playwright = None

        if page is not None:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Page close failed: {e}")
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e}")
        if driver is not None:
            await driver.stop()
        if browser is not None:
            logger.info("Browser closed")

    # ---------------------------- Listeners ----------------------------
    def _on_console(self, msg: ConsoleMessage) -> None:
        console_logger.info(f"Browser Console [{msg.type}]: {msg.text}")

    def _on_page_error(self, error: Any) -> None:
        console_logger.error(f"Browser Page Error: {getattr(error, 'message', error)}")
