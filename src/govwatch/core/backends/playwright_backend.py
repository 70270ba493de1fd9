"""
Playwright Backend implementation for browser automation.

Provides one browser session per authenticated run with:
- Local or serverless executable resolution
- Page helpers returning ActionResult instead of raising
- Screenshot capture on errors
- Deterministic teardown (page, context, browser, driver)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config.models import DEFAULT_USER_AGENT, BrowserConfig
from ..config.store import ConfigurationError
from .base import BackendError
from .executable import BrowserExecutable, resolve_browser_executable

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


# =============================================================================
# Playwright-specific data structures
# =============================================================================


@dataclass
class ActionResult:
    """Result of a browser action."""

    success: bool
    action: str
    selector: str | None = None
    error: str | None = None
    screenshot_path: str | None = None


# =============================================================================
# Browser Error Classes
# =============================================================================


class BrowserError(BackendError):
    """Base exception for browser errors."""
    pass


class NavigationTimeout(BrowserError):
    """Page didn't load in time."""
    pass


class AutomationReason(str, Enum):
    """Why an automated flow gave up."""

    LOGIN_FORM_MISSING = "LOGIN_FORM_MISSING"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TERMS_CHECKBOX = "TERMS_CHECKBOX"
    TERMS_ACCEPT_BUTTON = "TERMS_ACCEPT_BUTTON"
    SEARCH_FORM_MISSING = "SEARCH_FORM_MISSING"
    RESULTS_TABLE_MISSING = "RESULTS_TABLE_MISSING"


class AutomationError(BrowserError):
    """A step of an automated flow could not be completed."""

    def __init__(
        self,
        reason: AutomationReason,
        message: str,
        url: str | None = None,
        state: str | None = None,
    ):
        super().__init__(f"{message} [{reason.value}]", url=url)
        self.reason = reason
        self.state = state


# =============================================================================
# Browser session
# =============================================================================


class BrowserSession:
    """A single Playwright browser used sequentially by one run.

    The browser starts lazily on the first page operation. ``close()`` is
    safe to call any number of times.
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        executable: BrowserExecutable | None = None,
    ):
        """Initialize the session.

        Args:
            config: Headless mode, timeouts, viewport and screenshot settings
            user_agent: User agent for the browser context
            executable: Pre-resolved browser binary (resolved on launch if None)
        """
        self.config = config or BrowserConfig()
        self.user_agent = user_agent
        self.executable = executable
        self.timeout_ms = self.config.action_timeout_ms

        self.screenshots_path = Path(self.config.screenshots_path)

        # Playwright objects (initialized on first use)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def name(self) -> str:
        return "playwright"

    def _launch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"headless": self.config.headless}

        executable = self.executable
        if executable is None:
            try:
                executable = resolve_browser_executable()
            except ConfigurationError as e:
                logger.warning("%s Falling back to Playwright's bundled chromium.", e)
                executable = None

        if executable is not None:
            options["executable_path"] = executable.path
            options["args"] = executable.args
        return options

    async def _ensure_browser(self) -> None:
        """Initialize browser if not already running."""
        if self._browser is not None and self._browser.is_connected():
            return

        # A disconnected browser leaves its driver behind
        await self._stop_driver()

        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()

        try:
            self._browser = await self._playwright.chromium.launch(**self._launch_options())
        except PlaywrightError as e:
            await self._stop_driver()
            raise BrowserError(
                "Failed to launch chromium. Run: playwright install chromium",
                cause=e,
            ) from e

        logger.info("Launched chromium browser (headless=%s)", self.config.headless)

    async def _stop_driver(self) -> None:
        self._page = None
        self._context = None
        self._browser = None
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()

    async def _ensure_context(self) -> BrowserContext:
        await self._ensure_browser()

        if self._context is not None:
            return self._context

        assert self._browser is not None
        self._context = await self._browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            user_agent=self.user_agent,
            locale="es-PE",
            timezone_id="America/Lima",
            ignore_https_errors=True,
        )
        return self._context

    async def _get_page(self) -> Page:
        """Get or create the page."""
        context = await self._ensure_context()

        if self._page is None or self._page.is_closed():
            self._page = await context.new_page()
            self._page.set_default_timeout(self.timeout_ms)

        return self._page

    async def capture_screenshot(self, prefix: str = "error") -> str | None:
        """Capture a screenshot for debugging when enabled."""
        if not self.config.screenshots_on_error or self._page is None:
            return None

        try:
            self.screenshots_path.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filepath = self.screenshots_path / f"{prefix}_{timestamp}.png"
            await self._page.screenshot(path=str(filepath), full_page=True)
            logger.info("Screenshot saved: %s", filepath)
            return str(filepath)
        except PlaywrightError as e:
            logger.warning("Failed to capture screenshot: %s", e)
            return None

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    async def goto(self, url: str, wait_until: str = "networkidle", timeout_ms: int | None = None) -> None:
        """Navigate to a URL.

        Raises:
            NavigationTimeout: If the page does not settle in time
            BrowserError: On any other navigation failure
        """
        page = await self._get_page()
        timeout = timeout_ms or self.config.navigation_timeout_ms
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout)  # type: ignore[arg-type]
        except PlaywrightTimeoutError as e:
            await self.capture_screenshot("navigation_timeout")
            raise NavigationTimeout(f"Navigation timeout: {url}", url=url, cause=e) from e
        except PlaywrightError as e:
            await self.capture_screenshot("navigation_error")
            raise BrowserError(f"Browser error: {e}", url=url, cause=e) from e

    async def wait_for_navigation(self, timeout_ms: int | None = None) -> bool:
        """Wait for the network to go idle. False on timeout."""
        page = await self._get_page()
        try:
            await page.wait_for_load_state(
                "networkidle",
                timeout=timeout_ms or self.config.navigation_timeout_ms,
            )
            return True
        except PlaywrightTimeoutError:
            return False

    async def go_back(self, timeout_ms: int | None = None) -> bool:
        page = await self._get_page()
        try:
            await page.go_back(
                wait_until="networkidle",
                timeout=timeout_ms or self.config.navigation_timeout_ms,
            )
            return True
        except PlaywrightError:
            return False

    async def pause(self, ms: int) -> None:
        """Fixed wait between steps, scaled by ``step_delay_scale``."""
        seconds = ms / 1000 * self.config.step_delay_scale
        if seconds > 0:
            await asyncio.sleep(seconds)

    @property
    def url(self) -> str:
        return self._page.url if self._page is not None else ""

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def wait_for_selector(
        self,
        selector: str,
        state: str = "visible",
        timeout_ms: int | None = None,
    ) -> bool:
        """Wait for element to appear.

        Returns:
            True if element found, False if timeout
        """
        page = await self._get_page()
        timeout = timeout_ms or self.timeout_ms

        try:
            await page.wait_for_selector(selector, state=state, timeout=timeout)  # type: ignore[arg-type]
            return True
        except PlaywrightError:
            return False

    async def exists(self, selector: str) -> bool:
        page = await self._get_page()
        try:
            return await page.query_selector(selector) is not None
        except PlaywrightError:
            return False

    async def is_checked(self, selector: str) -> bool:
        page = await self._get_page()
        try:
            element = await page.query_selector(selector)
            if element is None:
                return False
            return bool(await element.evaluate("(el) => el.checked === true"))
        except PlaywrightError:
            return False

    async def body_text(self, limit: int = 300) -> str:
        text = await self.evaluate("() => document.body ? document.body.innerText || '' : ''")
        return (text or "")[:limit]

    async def content(self) -> str:
        """Get current page HTML content."""
        page = await self._get_page()
        try:
            return await page.content()
        except PlaywrightError as e:
            raise BrowserError(f"Could not read page content: {e}", url=page.url, cause=e) from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page.

        Raises:
            BrowserError: If the script throws or the page navigated away
        """
        page = await self._get_page()
        try:
            return await page.evaluate(script, arg)
        except PlaywrightError as e:
            raise BrowserError(f"Script failed: {e}", url=page.url, cause=e) from e

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def click(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        """Click an element.

        Args:
            selector: CSS selector for element to click
            timeout_ms: Timeout in milliseconds

        Returns:
            ActionResult with success status
        """
        page = await self._get_page()
        timeout = timeout_ms or self.timeout_ms

        try:
            await page.click(selector, timeout=timeout)
            return ActionResult(success=True, action="click", selector=selector)
        except PlaywrightError as e:
            screenshot_path = await self.capture_screenshot("click_error")
            return ActionResult(
                success=False,
                action="click",
                selector=selector,
                error=str(e),
                screenshot_path=screenshot_path,
            )

    async def fill_by_position(self, selector: str, values: list[str]) -> ActionResult:
        """Fill the n-th visible matches of ``selector`` with ``values`` in order."""
        page = await self._get_page()
        locator = page.locator(f"{selector} >> visible=true")

        try:
            count = await locator.count()
            if count < len(values):
                return ActionResult(
                    success=False,
                    action="fill",
                    selector=selector,
                    error=f"Expected {len(values)} inputs, found {count}",
                )
            for index, value in enumerate(values):
                field = locator.nth(index)
                await field.fill("", timeout=self.timeout_ms)
                await field.fill(value, timeout=self.timeout_ms)
            return ActionResult(success=True, action="fill", selector=selector)
        except PlaywrightError as e:
            screenshot_path = await self.capture_screenshot("fill_error")
            return ActionResult(
                success=False,
                action="fill",
                selector=selector,
                error=str(e),
                screenshot_path=screenshot_path,
            )

    async def click_by_text(self, selector: str, text: str) -> bool:
        """Click the first element matching ``selector`` whose text contains ``text``."""
        return bool(
            await self.evaluate(
                """([sel, txt]) => {
                    const needle = txt.toLowerCase();
                    for (const el of document.querySelectorAll(sel)) {
                        if ((el.textContent || '').toLowerCase().includes(needle)) {
                            el.click();
                            return true;
                        }
                    }
                    return false;
                }""",
                [selector, text],
            )
        )

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close browser and clean up resources."""
        try:
            if self._page and not self._page.is_closed():
                await self._page.close()
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except PlaywrightError as e:
            logger.warning("Error while closing browser: %s", e)
        finally:
            await self._stop_driver()

        logger.debug("Browser session closed")

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
