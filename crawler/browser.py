"""
Browser drivers for the catalog crawl.

The orchestrator and extractors only talk to the BrowserDriver protocol:
navigate, wait, read HTML, select/fill/click. Two implementations:

  PlaywrightDriver  headless Chromium via playwright.async_api. Needed for
                    the LSA bulletin, which is an ASP.NET form that only
                    returns results after a real postback.
  StaticDriver      plain requests + retries for bulletins that are
                    server-rendered HTML. It cannot interact with forms;
                    those calls raise DriverError and the crawl degrades.

Search form selectors are deliberately loose (substring matches on name /
id) because the source site renames its controls between terms.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

import requests
from bs4 import BeautifulSoup
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from soupsieve import SelectorSyntaxError

from crawler.config import Settings
from crawler.models import CrawlParams
from crawler.rate_limit import RateLimiter

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"

ENTRY_TIMEOUT_MS       = 30_000
DETAIL_TIMEOUT_MS      = 15_000
LOAD_TIMEOUT_MS        = 10_000
ACTION_TIMEOUT_MS      = 5_000
BUTTON_TIMEOUT_MS      = 5_000
SEARCH_LOAD_TIMEOUT_MS = 15_000

TERM_SELECT      = 'select[name*="term"], select[id*="term"]'
SUBJECT_SELECT   = 'select[name*="subject"], select[id*="subject"]'
PAGE_SIZE_SELECT = 'select[name*="page"], select[id*="page"], select[name*="perPage"]'
QUERY_INPUT      = 'input[name*="query"], input[id*="query"], input[type="text"]'
SEARCH_BUTTON    = 'input[type="submit"][value*="Search"], button:has-text("Search"), input[value="Search"]'

PAGE_SIZE_LABEL = "100"

log = logging.getLogger(__name__)


class DriverError(RuntimeError):
    """A driver primitive could not be carried out."""


class BrowserDriver(Protocol):
    async def goto(self, url: str, timeout_ms: int = ENTRY_TIMEOUT_MS) -> None: ...
    async def wait_for_load(self, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool: ...
    async def wait_for_selector(self, selector: str, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool: ...
    async def content(self) -> str: ...
    async def select_option(self, selector: str, label: str) -> None: ...
    async def fill(self, selector: str, value: str) -> None: ...
    async def click(self, selector: str) -> None: ...
    async def is_visible(self, selector: str, timeout_ms: int = BUTTON_TIMEOUT_MS) -> bool: ...


# ---------------------------------------------------------------------------
# Playwright
# ---------------------------------------------------------------------------

class PlaywrightDriver:
    """
    One headless Chromium page, opened on __aenter__ and torn down on
    __aexit__. Wait primitives return False on timeout instead of raising;
    navigation and form actions raise.
    """

    def __init__(self, headless: bool = True, user_agent: str = USER_AGENT):
        self.headless = headless
        self.user_agent = user_agent
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "PlaywrightDriver":
        self._pw = await async_playwright().start()
        try:
            self._browser = await self._pw.chromium.launch(headless=self.headless)
            context = await self._browser.new_context(user_agent=self.user_agent)
            self._page = await context.new_page()
        except BaseException:
            await self.close()
            raise
        log.info("Headless browser session ready.")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._pw:
            await self._pw.stop()
            self._pw = None
        self._page = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise DriverError("Browser session is not open")
        return self._page

    async def goto(self, url: str, timeout_ms: int = ENTRY_TIMEOUT_MS) -> None:
        await self.page.goto(url, wait_until="networkidle", timeout=timeout_ms)

    async def wait_for_load(self, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def wait_for_selector(self, selector: str, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def content(self) -> str:
        return await self.page.content()

    async def select_option(self, selector: str, label: str) -> None:
        await self.page.select_option(selector, label=label, timeout=ACTION_TIMEOUT_MS)

    async def fill(self, selector: str, value: str) -> None:
        await self.page.locator(selector).first.fill(value, timeout=ACTION_TIMEOUT_MS)

    async def click(self, selector: str) -> None:
        await self.page.locator(selector).first.click(timeout=ACTION_TIMEOUT_MS)

    async def is_visible(self, selector: str, timeout_ms: int = BUTTON_TIMEOUT_MS) -> bool:
        try:
            await self.page.locator(selector).first.wait_for(state="visible", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False


# ---------------------------------------------------------------------------
# Plain HTTP
# ---------------------------------------------------------------------------

class StaticDriver:
    """GET-only driver for server-rendered bulletins."""

    def __init__(self, session: Optional[requests.Session] = None, retries: int = 3):
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = USER_AGENT
        self.retries = retries
        self._url: Optional[str] = None
        self._html = ""

    async def __aenter__(self) -> "StaticDriver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.session.close()

    def _get(self, url: str, timeout_s: float) -> Optional[requests.Response]:
        """GET a URL with exponential-backoff retries."""
        for attempt in range(self.retries):
            try:
                resp = self.session.get(url, timeout=timeout_s)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                log.warning("Request failed (attempt %d/%d) %s: %s", attempt + 1, self.retries, url, exc)
                if attempt < self.retries - 1:
                    time.sleep(2 ** attempt)
        return None

    def _select_one(self, selector: str):
        try:
            return BeautifulSoup(self._html, "html.parser").select_one(selector)
        except SelectorSyntaxError:
            # browser-only pseudo classes such as :has-text()
            return None

    async def goto(self, url: str, timeout_ms: int = ENTRY_TIMEOUT_MS) -> None:
        resp = await asyncio.to_thread(self._get, url, timeout_ms / 1000)
        if resp is None:
            raise DriverError(f"Could not fetch {url}")
        self._url = resp.url
        self._html = resp.text

    async def wait_for_load(self, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool:
        return True

    async def wait_for_selector(self, selector: str, timeout_ms: int = LOAD_TIMEOUT_MS) -> bool:
        return self._select_one(selector) is not None

    async def content(self) -> str:
        return self._html

    async def select_option(self, selector: str, label: str) -> None:
        raise DriverError("StaticDriver cannot select form options")

    async def fill(self, selector: str, value: str) -> None:
        raise DriverError("StaticDriver cannot fill form inputs")

    async def click(self, selector: str) -> None:
        raise DriverError("StaticDriver cannot click")

    async def is_visible(self, selector: str, timeout_ms: int = BUTTON_TIMEOUT_MS) -> bool:
        return False


@asynccontextmanager
async def open_driver(settings: Settings) -> AsyncIterator[BrowserDriver]:
    """Open the driver selected by settings.driver; closed on exit."""
    if settings.driver == "static":
        driver = StaticDriver()
    else:
        driver = PlaywrightDriver(headless=settings.headless)
    async with driver:
        yield driver


# ---------------------------------------------------------------------------
# Search form
# ---------------------------------------------------------------------------

async def _try_step(name: str, value: str, action: Callable[[], Awaitable[None]], limiter: RateLimiter) -> bool:
    try:
        await action()
    except Exception as exc:
        log.warning("Could not set %s filter %r: %s", name, value, exc)
        return False
    await limiter.delay()
    return True


async def apply_filters(driver: BrowserDriver, params: CrawlParams, limiter: RateLimiter) -> list[str]:
    """
    Best-effort fill of the search form. Each filter is tried on its own,
    so a renamed control skips that filter only.

    Returns the names of the filters that were applied.
    """
    if not await driver.wait_for_load(LOAD_TIMEOUT_MS):
        log.warning("Search page still loading, setting filters anyway")

    steps: list[tuple[str, str, Callable[[], Awaitable[None]]]] = []
    if params.term:
        steps.append(("term", params.term, lambda: driver.select_option(TERM_SELECT, params.term)))
    if params.subject:
        steps.append(("subject", params.subject, lambda: driver.select_option(SUBJECT_SELECT, params.subject)))
    steps.append(("page size", PAGE_SIZE_LABEL, lambda: driver.select_option(PAGE_SIZE_SELECT, PAGE_SIZE_LABEL)))
    if params.query:
        steps.append(("query", params.query, lambda: driver.fill(QUERY_INPUT, params.query)))

    applied = []
    for name, value, action in steps:
        if await _try_step(name, value, action, limiter):
            applied.append(name)
    return applied


async def submit_search(driver: BrowserDriver, limiter: RateLimiter) -> bool:
    """Click the search button if there is one. Returns False when absent."""
    if not await driver.is_visible(SEARCH_BUTTON, BUTTON_TIMEOUT_MS):
        log.warning("Search button not found, page may already show results")
        return False

    await driver.click(SEARCH_BUTTON)
    if not await driver.wait_for_load(SEARCH_LOAD_TIMEOUT_MS):
        log.warning("Search results still loading after %d ms", SEARCH_LOAD_TIMEOUT_MS)
    await limiter.delay()
    return True
