"""
Headless browser tab lifecycle and primitive page operations.

Each PageController owns one Chromium process with a fresh context, so no
cookies or storage leak between unsubscribe targets. Every navigation and
click is bounded by a timeout; Playwright timeouts surface as a ``False``
return value instead of an exception. In-page scripts and content reads,
which Playwright never times out, are bounded here and degrade to empty
results.
"""

import asyncio
import re
from typing import Iterable, Optional

from playwright.async_api import (
    async_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from ..config import Config
from ..exceptions import BrowserNotLaunchedError
from ..structured_logging import StructuredLogger
from .constants import (
    USER_AGENT, GENERIC_EMAIL_SELECTORS, CLICKABLE_ELEMENT_TYPES
)
from .element_extractor import ElementExtractor
from .types import PageSnapshot

VISIBLE_TEXT_SCRIPT = """
() => {
  const SKIP = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'LABEL', 'INPUT',
                        'BUTTON', 'SELECT', 'OPTION', 'TEXTAREA']);
  const isHidden = (el) => {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') return true;
    if (parseFloat(style.opacity || '1') === 0) return true;
    const rect = el.getBoundingClientRect();
    return style.display !== 'contents' && rect.width === 0 && rect.height === 0;
  };
  const parts = [];
  const walk = (node) => {
    if (node.nodeType === Node.TEXT_NODE) {
      parts.push(node.textContent);
      return;
    }
    if (node.nodeType !== Node.ELEMENT_NODE) return;
    if (SKIP.has(node.tagName) || isHidden(node)) return;
    node.childNodes.forEach(walk);
  };
  if (document.body) walk(document.body);
  return parts.join(' ');
}
"""

_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """Collapse all whitespace, including non-breaking spaces, to single spaces."""
    return _WHITESPACE.sub(' ', (text or '').replace('\xa0', ' ')).strip()


class PageController:
    """One isolated browser tab."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        click_timeout_ms: Optional[int] = None,
        extractor: Optional[ElementExtractor] = None,
        playwright_factory=async_playwright
    ):
        self.headless = Config.BROWSER_HEADLESS if headless is None else headless
        self.timeout_ms = timeout_ms or Config.BROWSER_TIMEOUT_MS
        self.click_timeout_ms = click_timeout_ms or Config.CLICK_TIMEOUT_MS
        self.extractor = extractor or ElementExtractor()
        self._playwright_factory = playwright_factory
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self.logger = StructuredLogger("page_controller")

    async def __aenter__(self) -> 'PageController':
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_launched(self) -> bool:
        return self._page is not None

    async def launch(self):
        """Start Chromium with a fresh context and open one page."""
        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(user_agent=USER_AGENT)
            self._context.set_default_timeout(self.timeout_ms)
            self._context.set_default_navigation_timeout(self.timeout_ms)
            self._page = await self._context.new_page()
        except Exception:
            await self.close()
            raise
        self.logger.debug("Browser launched", {"headless": self.headless})

    async def close(self):
        """Release context, browser and driver. Safe to call repeatedly."""
        self._page = None
        for name in ('_context', '_browser'):
            resource = getattr(self, name)
            setattr(self, name, None)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                self.logger.warning("Failed to close browser resource", {
                    "resource": name.strip('_'), "error": str(e)
                })
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                self.logger.warning("Failed to stop playwright", {"error": str(e)})

    def _require_page(self):
        if self._page is None:
            raise BrowserNotLaunchedError()
        return self._page

    async def navigate_to(self, url: str) -> bool:
        """Load ``url``; False on a non-OK response or navigation error."""
        page = self._require_page()
        try:
            response = await page.goto(url, wait_until='domcontentloaded')
        except PlaywrightError as e:
            self.logger.warning("Navigation failed", {"url": url, "error": str(e)})
            return False
        if response is None:
            return False
        if not response.ok:
            self.logger.info("Navigation returned non-OK status", {
                "url": url, "status": response.status
            })
        return response.ok

    async def _bounded(self, awaitable, step: str, default):
        try:
            return await asyncio.wait_for(awaitable, self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.logger.warning("Page step timed out", {"step": step, "timeout_ms": self.timeout_ms})
            return default

    async def get_page_content(self) -> str:
        return await self._bounded(self._require_page().content(), 'content', '')

    async def get_title(self) -> str:
        return await self._require_page().title()

    def get_url(self) -> str:
        return self._require_page().url

    async def get_visible_text(self) -> str:
        """Text a user can actually see, whitespace collapsed."""
        text = await self._bounded(self._require_page().evaluate(VISIBLE_TEXT_SCRIPT), 'visible_text', '')
        return normalize_text(text)

    async def screenshot(self) -> bytes:
        return await self._require_page().screenshot(full_page=True)

    async def extract_elements(self) -> PageSnapshot:
        return await self._bounded(
            self.extractor.extract(self._require_page()), 'extract_elements', PageSnapshot()
        )

    async def wait_for_navigation(self, timeout_ms: int) -> bool:
        """Wait for the page to finish loading; a timeout just yields False."""
        page = self._require_page()
        try:
            await page.wait_for_load_state('load', timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            self.logger.debug("Navigation wait aborted", {"error": str(e)})
            return False

    async def _first_visible(self, selector: str):
        locator = self._require_page().locator(selector)
        count = await locator.count()
        for index in range(count):
            candidate = locator.nth(index)
            if await candidate.is_visible():
                return candidate
        return None

    async def _click_element(self, element) -> bool:
        page = self._require_page()
        try:
            await element.scroll_into_view_if_needed(timeout=self.click_timeout_ms)
        except PlaywrightError:
            pass

        try:
            await element.click(timeout=self.click_timeout_ms)
        except PlaywrightError:
            # Overlays commonly intercept the pointer; retry without actionability checks
            try:
                await element.click(timeout=self.click_timeout_ms, force=True)
            except PlaywrightError as e:
                self.logger.debug("Click failed", {"error": str(e)})
                return False

        try:
            await page.wait_for_load_state('domcontentloaded', timeout=self.click_timeout_ms)
        except PlaywrightError as e:
            # the click already happened; a closed or navigating target is not a failed click
            self.logger.debug("Post-click load wait ended", {"error": str(e)})
        return True

    async def click(self, selector: str) -> bool:
        """Click the first element matching ``selector``."""
        page = self._require_page()
        try:
            locator = page.locator(selector)
            if await locator.count() == 0:
                return False
            return await self._click_element(locator.first)
        except PlaywrightError as e:
            self.logger.debug("Selector click failed", {"selector": selector, "error": str(e)})
            return False

    async def click_by_text(self, texts: Iterable[str],
                            element_types: Iterable[str] = CLICKABLE_ELEMENT_TYPES) -> bool:
        """Click the first visible element whose text (or input value) contains one of ``texts``."""
        element_types = list(element_types)
        for text in texts:
            escaped = text.replace('"', '\\"')
            for element_type in element_types:
                if element_type.startswith('input'):
                    selector = f'{element_type}[value*="{escaped}" i]'
                else:
                    selector = f'{element_type}:has-text("{escaped}")'
                try:
                    element = await self._first_visible(selector)
                    if element is not None and await self._click_element(element):
                        self.logger.debug("Clicked by text", {"text": text, "element_type": element_type})
                        return True
                except PlaywrightError as e:
                    self.logger.debug("Text click failed", {"selector": selector, "error": str(e)})
        return False

    async def fill(self, selector: str, value: str) -> bool:
        try:
            await self._require_page().locator(selector).first.fill(value, timeout=self.click_timeout_ms)
            return True
        except PlaywrightError as e:
            self.logger.debug("Fill failed", {"selector": selector, "error": str(e)})
            return False

    async def set_checked(self, selector: str, checked: bool = True) -> bool:
        try:
            await self._require_page().locator(selector).first.set_checked(
                checked, timeout=self.click_timeout_ms
            )
            return True
        except PlaywrightError as e:
            self.logger.debug("Check failed", {"selector": selector, "error": str(e)})
            return False

    async def select_option(self, selector: str, value: str) -> bool:
        try:
            await self._require_page().locator(selector).first.select_option(
                value, timeout=self.click_timeout_ms
            )
            return True
        except PlaywrightError as e:
            self.logger.debug("Select failed", {"selector": selector, "error": str(e)})
            return False

    async def fill_email(self, email: str) -> bool:
        """Fill the first visible generic email field."""
        for selector in GENERIC_EMAIL_SELECTORS:
            try:
                element = await self._first_visible(selector)
                if element is None:
                    continue
                await element.fill(email, timeout=self.click_timeout_ms)
                return True
            except PlaywrightError as e:
                self.logger.debug("Email fill failed", {"selector": selector, "error": str(e)})
        return False
