"""Navigate-and-capture screenshot capability.

capture() writes a PNG of an already open page (or one element of it).
ScreenshotTool wraps it with its own browser for one-off captures of a URL,
which is what the mcp-screenshot command uses.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Tuple

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.config import PROJECT_ROOT
from ..core.errors import ElementNotFoundError, HarnessTimeoutError, NavigationError, SessionClosedError

logger = logging.getLogger(__name__)

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
DEFAULT_VIEWPORT = (1200, 800)


@dataclass
class CaptureOptions:
    """How to capture a page.

    Attributes:
        url: Page to load first (only used by ScreenshotTool).
        filename: Output name; timestamp-derived when omitted.
        selector: Capture only this element instead of the page.
        full_page: Capture the full scrollable page.
        wait_ms: Extra settle time before capturing.
        viewport: (width, height) to apply before navigating.
        timeout: Bound in seconds for navigation and capture.
    """
    url: Optional[str] = None
    filename: Optional[str] = None
    selector: Optional[str] = None
    full_page: bool = True
    wait_ms: int = 0
    viewport: Optional[Tuple[int, int]] = None
    timeout: float = 30.0


def screenshot_filename(name: Optional[str] = None) -> str:
    """Normalise a checkpoint name into a PNG filename."""
    if not name:
        timestamp = datetime.now().strftime('%Y-%m-%dT%H-%M-%S-%f')
        return f"screenshot-{timestamp}.png"
    return name if name.lower().endswith(".png") else f"{name}.png"


async def capture(page: Page, path: Path, options: Optional[CaptureOptions] = None) -> Path:
    """Write a PNG of page to path and return the absolute path written.

    Creates the parent directory if needed. With options.selector set, only
    that element is captured and a missing element raises ElementNotFoundError.
    """
    options = options or CaptureOptions()
    path = Path(path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    timeout_ms = options.timeout * 1000

    if options.wait_ms:
        await asyncio.sleep(options.wait_ms / 1000)

    if options.selector:
        try:
            element = await page.wait_for_selector(options.selector, timeout=min(timeout_ms, 10000))
        except PlaywrightTimeoutError:
            element = None
        if element is None:
            raise ElementNotFoundError(f"Selector {options.selector} not found", stage="screenshot")
        await element.screenshot(path=str(path), type="png", timeout=timeout_ms)
    else:
        # Full-page shots stitch from the top; scroll there first
        await page.evaluate("() => window.scrollTo(0, 0)")
        await page.screenshot(path=str(path), full_page=options.full_page, type="png", timeout=timeout_ms)

    logger.info(f"Screenshot saved: {path}")
    return path


async def start_playwright(timeout: float) -> Playwright:
    """Start the Playwright driver, bounded like every other browser wait."""
    try:
        return await asyncio.wait_for(async_playwright().start(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise HarnessTimeoutError(
            f"Playwright driver did not start within {timeout:g}s", stage="browser"
        ) from e


class ScreenshotTool:
    """Standalone capture of a URL with its own headless browser."""

    def __init__(self, output_dir: Path = PROJECT_ROOT / "screenshots", launch_timeout: float = 30.0):
        self.output_dir = Path(output_dir)
        self.launch_timeout = launch_timeout
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def init(self, headless: bool = True) -> None:
        self._playwright = await start_playwright(self.launch_timeout)
        self._browser = await self._playwright.chromium.launch(
            headless=headless, args=BROWSER_ARGS, timeout=self.launch_timeout * 1000
        )

    async def take_screenshot(self, options: CaptureOptions) -> Path:
        if not options.url:
            raise ValueError("CaptureOptions.url is required for ScreenshotTool")
        if self._browser is None:
            await self.init()

        width, height = options.viewport or DEFAULT_VIEWPORT
        page = await self._browser.new_page(viewport={"width": width, "height": height})
        try:
            logger.info(f"Navigating to: {options.url}")
            try:
                await page.goto(options.url, wait_until="networkidle", timeout=options.timeout * 1000)
            except PlaywrightError as e:
                raise NavigationError(f"Failed to load {options.url}: {e}") from e
            path = self.output_dir / screenshot_filename(options.filename)
            return await capture(page, path, options)
        finally:
            await page.close()

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            finally:
                self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            finally:
                self._playwright = None

    async def __aenter__(self) -> "ScreenshotTool":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def require_page(page: Optional[Page]) -> Page:
    if page is None or page.is_closed():
        raise SessionClosedError("Browser not started")
    return page
