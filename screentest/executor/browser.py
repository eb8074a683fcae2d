"""Browser sessions — Playwright-backed tabs that can navigate, wait, click and screenshot."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from screentest.errors import ActionError, ActionTimeout, ScreentestError, SessionError
from screentest.models.config import ScreentestConfig

logger = logging.getLogger(__name__)

# Substrings of Playwright errors raised when the page, context or browser is gone.
_CLOSED_MARKERS = (
    "target closed",
    "has been closed",
    "browser has disconnected",
    "connection closed",
    "websocket closed",
    "crashed",
)

_CLEAR_STORAGE_SCRIPT = """
() => {
    try { window.localStorage.clear(); } catch (e) {}
    try { window.sessionStorage.clear(); } catch (e) {}
}
"""


def translate_error(error: PlaywrightError, what: str) -> ScreentestError:
    """Map a Playwright error onto the screentest error taxonomy."""
    message = str(error).strip().splitlines()[0] if str(error).strip() else type(error).__name__
    if isinstance(error, PlaywrightTimeoutError):
        return ActionTimeout(f"{what}: {message}")
    if any(marker in message.lower() for marker in _CLOSED_MARKERS):
        return SessionError(f"{what}: {message}")
    return ActionError(f"{what}: {message}")


async def launch_browser(
    playwright: Playwright, headless: bool = True, debugger_url: Optional[str] = None,
) -> Browser:
    """Connect to a running Chrome over CDP, or launch a local headless Chromium."""
    if debugger_url:
        logger.info("Connecting to browser at %s", debugger_url)
        return await playwright.chromium.connect_over_cdp(debugger_url)
    return await playwright.chromium.launch(
        headless=headless,
        args=[
            "--hide-scrollbars",
            "--font-render-hinting=none",
        ],
    )


async def create_context(
    browser: Browser,
    viewport: dict,
    extra_http_headers: Optional[dict[str, str]] = None,
) -> BrowserContext:
    """Create a browser context with settings pinned for reproducible rendering."""
    return await browser.new_context(
        viewport=viewport,
        device_scale_factor=1,
        locale="en-US",
        timezone_id="UTC",
        reduced_motion="reduce",
        extra_http_headers=extra_http_headers or {},
    )


class BrowserSession:
    """One browser tab owned by a pool slot."""

    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page
        self.slot = -1
        self.broken = False

    @property
    def is_alive(self) -> bool:
        if self.broken or self.page.is_closed():
            return False
        browser = self.context.browser
        return browser is None or browser.is_connected()

    @asynccontextmanager
    async def _guard(self, what: str):
        try:
            yield
        except PlaywrightError as e:
            err = translate_error(e, what)
            if isinstance(err, SessionError):
                self.broken = True
            raise err from e

    async def navigate(self, url: str, timeout_ms: int) -> None:
        async with self._guard(f"navigate {url}"):
            response = await self.page.goto(url, wait_until="load", timeout=timeout_ms)
        if response is not None and response.status >= 400:
            logger.warning("Navigation to %s returned HTTP %d", url, response.status)

    async def set_viewport(self, width: int, height: int) -> None:
        async with self._guard(f"viewport {width}x{height}"):
            await self.page.set_viewport_size({"width": width, "height": height})

    async def wait_network_idle(self, timeout_ms: int) -> None:
        async with self._guard("wait idle"):
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)

    async def wait_selector(self, selector: str, timeout_ms: int) -> None:
        async with self._guard(f"wait selector {selector}"):
            await self.page.wait_for_selector(selector, state="visible", timeout=timeout_ms)

    async def sleep(self, delay_ms: int) -> None:
        async with self._guard("sleep"):
            await self.page.wait_for_timeout(delay_ms)

    async def click(self, selector: str, timeout_ms: int) -> None:
        async with self._guard(f"click {selector}"):
            await self.page.click(selector, timeout=timeout_ms)

    async def screenshot(self, mode: str, selector: Optional[str], timeout_ms: int) -> bytes:
        """Capture the viewport, the full page, or one element as PNG bytes."""
        async with self._guard(f"capture {mode}"):
            if mode == "element":
                return await self.page.locator(selector).first.screenshot(
                    type="png", animations="disabled", caret="hide", timeout=timeout_ms,
                )
            return await self.page.screenshot(
                type="png", full_page=(mode == "fullpage"),
                animations="disabled", caret="hide", timeout=timeout_ms,
            )

    async def reset(self) -> None:
        """Drop cookies and storage and park the tab on about:blank."""
        async with self._guard("reset session"):
            await self.page.evaluate(_CLEAR_STORAGE_SCRIPT)
            await self.context.clear_cookies()
            await self.page.goto("about:blank")

    async def close(self) -> None:
        try:
            await self.context.close()
        except PlaywrightError as e:
            logger.debug("Closing browser context failed: %s", e)


class BrowserSessionFactory:
    """Starts sessions, launching (or relaunching) the shared browser on demand."""

    def __init__(self, config: ScreentestConfig):
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("Browser disconnected, starting a new one")
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            logger.debug("Launching browser (headless=%s)", self.config.headless)
            self._browser = await launch_browser(
                self._playwright,
                headless=self.config.headless,
                debugger_url=self.config.debugger_url,
            )
            return self._browser

    async def create(self) -> BrowserSession:
        try:
            browser = await self._ensure_browser()
            context = await create_context(
                browser,
                viewport={"width": self.config.viewport.width, "height": self.config.viewport.height},
                extra_http_headers=self.config.headers,
            )
            page = await context.new_page()
        except PlaywrightError as e:
            raise SessionError(f"starting browser session: {e}") from e
        return BrowserSession(context, page)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug("Closing browser failed: %s", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
