"""Playwright browser session and network response recorder."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Set
from urllib.parse import urlparse

from playwright.async_api import Browser, BrowserContext, Page, Response, async_playwright
from playwright.async_api import Error as PlaywrightError

from config.scraper_config import is_ignored_host
from storefinder.shared.constants import HTTP, PIPELINE
from storefinder.shared.http import DEFAULT_USER_AGENTS

__all__ = [
    'BrowserSession',
    'ResponseRecorder',
    'create_browser_session',
]


LAUNCH_ARGS = ['--no-sandbox', '--disable-setuid-sandbox', '--disable-dev-shm-usage']

# New York, so that "near me" locators return a populated first page
DEFAULT_GEOLOCATION = {'latitude': 40.7128, 'longitude': -74.0060}
DEFAULT_TIMEZONE = 'America/New_York'


class ResponseRecorder:
    """Collect JSON and HTML network responses seen by a page.

    Responses from hosts in IGNORE_HOSTS are skipped. Bodies are read in
    background tasks with a per-body timeout; call drain() before using
    ``responses`` to make sure pending reads have finished.
    """

    def __init__(self, body_timeout: float = PIPELINE.RESPONSE_BODY_TIMEOUT):
        self.body_timeout = body_timeout
        self.responses: List[Dict[str, Any]] = []
        self._pending: Set[asyncio.Task] = set()

    def attach(self, page: Page) -> None:
        page.on('response', self._on_response)

    def _on_response(self, response: Response) -> None:
        task = asyncio.get_running_loop().create_task(self.record(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def record(self, response: Response) -> Optional[Dict[str, Any]]:
        """Read and store one response body; None when skipped."""
        url = response.url
        if is_ignored_host(urlparse(url).netloc):
            logging.debug(f"Skipping response from ignored host: {url}")
            return None

        content_type = (response.headers.get('content-type') or '').lower()
        try:
            if 'application/json' in content_type:
                data = await asyncio.wait_for(response.json(), self.body_timeout)
            elif 'text/html' in content_type:
                data = await asyncio.wait_for(response.text(), self.body_timeout)
            else:
                return None
        except (PlaywrightError, asyncio.TimeoutError, ValueError) as e:
            logging.debug(f"Could not read response body from {url}: {e}")
            return None

        entry = {'url': url, 'content_type': content_type, 'data': data}
        self.responses.append(entry)
        logging.debug(f"Recorded {content_type.split(';')[0]} response: {url}")
        return entry

    async def drain(self) -> None:
        """Wait for in-flight body reads."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Cancel body reads still in flight and wait for them to finish."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logging.debug(f"Cancelled {len(pending)} pending response reads")
        self._pending.clear()


class BrowserSession:
    """Chromium session with one page and a response recorder attached."""

    def __init__(
        self,
        headless: bool = True,
        page_timeout: float = HTTP.PAGE_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENTS[0],
    ):
        self.headless = headless
        self.page_timeout_ms = int(page_timeout * 1000)
        self.user_agent = user_agent
        self.recorder = ResponseRecorder()

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def start(self) -> Page:
        """Launch the browser and return the page."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(
            user_agent=self.user_agent,
            geolocation=DEFAULT_GEOLOCATION,
            permissions=['geolocation'],
            timezone_id=DEFAULT_TIMEZONE,
            locale='en-US',
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self.page_timeout_ms)
        self.recorder.attach(self._page)
        return self._page

    async def stop(self) -> None:
        """Close the browser; errors during shutdown are logged only."""
        await self.recorder.close()
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except PlaywrightError as e:
            logging.warning(f"Error while closing browser: {e}")
        finally:
            if self._playwright:
                await self._playwright.stop()
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None

    @property
    def page(self) -> Optional[Page]:
        return self._page


@asynccontextmanager
async def create_browser_session(
    headless: bool = True,
    page_timeout: float = HTTP.PAGE_TIMEOUT,
) -> AsyncGenerator[BrowserSession, None]:
    """Context manager that starts and always stops a BrowserSession."""
    session = BrowserSession(headless=headless, page_timeout=page_timeout)
    try:
        await session.start()
        yield session
    finally:
        await session.stop()
