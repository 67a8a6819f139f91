"""Document contexts: one capability interface over static and live documents.

A document context is anything that can be queried by CSS selector, waited
on, asked for its HTML and (for live documents) asked to evaluate a script.
StaticDocument wraps a parsed HTML snapshot; LiveDocument wraps a Playwright
page or frame.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import Tag
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page

from storefinder.shared.constants import PIPELINE

__all__ = [
    'DocumentContext',
    'LiveDocument',
    'StaticDocument',
    'child_frames',
    'merge_html',
]


class DocumentContext(ABC):
    """Capability interface shared by static and live documents."""

    label: str = 'document'

    @abstractmethod
    async def content(self) -> str:
        """Return the document HTML."""

    @abstractmethod
    async def select(self, selector: str) -> List[Any]:
        """Return all elements matching ``selector`` ([] on invalid selectors)."""

    @abstractmethod
    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        """Wait until ``selector`` matches a visible element; False on timeout."""


class StaticDocument(DocumentContext):
    """Parsed HTML snapshot backed by BeautifulSoup."""

    def __init__(self, html: str, label: str = 'static'):
        self.html = html or ''
        self.label = label
        self.soup = BeautifulSoup(self.html, 'html.parser')

    def query(self, selector: str) -> List[Tag]:
        """Synchronous select; invalid selector syntax yields []."""
        if not selector:
            return []
        try:
            return self.soup.select(selector)
        except Exception as e:
            logging.debug(f"Invalid selector {selector!r} on {self.label}: {e}")
            return []

    async def content(self) -> str:
        return self.html

    async def select(self, selector: str) -> List[Tag]:
        return self.query(selector)

    async def wait_for(self, selector: str, timeout_ms: int = 0) -> bool:
        # A snapshot never changes, so waiting is a single lookup
        return bool(self.query(selector))


class LiveDocument(DocumentContext):
    """A live Playwright page or frame.

    Every method except evaluate() converts Playwright errors (invalid
    selectors, detached frames, timeouts) into neutral results.
    """

    def __init__(self, target: Union[Page, Frame], label: str = 'main'):
        self.target = target
        self.label = label

    async def content(self) -> str:
        try:
            return await self.target.content()
        except PlaywrightError as e:
            logging.warning(f"Could not read content of {self.label}: {e}")
            return ''

    async def select(self, selector: str) -> List[Any]:
        if not selector:
            return []
        try:
            return await self.target.query_selector_all(selector)
        except PlaywrightError as e:
            logging.debug(f"Selector {selector!r} failed on {self.label}: {e}")
            return []

    async def wait_for(self, selector: str, timeout_ms: int = PIPELINE.SHOW_MORE_WAIT_MS) -> bool:
        if not selector:
            return False
        try:
            await self.target.wait_for_selector(selector, state='visible', timeout=timeout_ms)
            return True
        except PlaywrightError as e:
            # TimeoutError is a subclass of Error
            logging.debug(f"Wait for {selector!r} on {self.label} ended: {e}")
            return False

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a script in the page or frame; Playwright errors propagate."""
        return await self.target.evaluate(expression, arg)

    async def click(self, selector: str, scroll: bool = True) -> bool:
        """Click the first element matching ``selector``; False when it failed."""
        try:
            element = await self.target.query_selector(selector)
            if element is None:
                return False
            if scroll:
                await element.scroll_into_view_if_needed()
            await element.click()
            return True
        except PlaywrightError as e:
            logging.debug(f"Click on {selector!r} in {self.label} failed: {e}")
            return False

    async def type_text(self, selector: str, text: str, delay_ms: int = PIPELINE.TYPE_DELAY_MS) -> bool:
        """Clear an input and type ``text`` keystroke by keystroke."""
        try:
            await self.target.fill(selector, '')
            await self.target.type(selector, text, delay=delay_ms)
            return True
        except PlaywrightError as e:
            logging.debug(f"Typing into {selector!r} in {self.label} failed: {e}")
            return False

    async def wait_for_body(self, timeout_ms: int = PIPELINE.IFRAME_BODY_WAIT_MS) -> bool:
        """Wait for the document body to be attached."""
        try:
            await self.target.wait_for_selector('body', state='attached', timeout=timeout_ms)
            return True
        except PlaywrightError as e:
            logging.debug(f"No body in {self.label}: {e}")
            return False


def child_frames(page: Page) -> List[Frame]:
    """Frames of ``page`` other than the main frame, skipping detached ones."""
    main = page.main_frame
    return [f for f in page.frames if f is not main and not f.is_detached()]


def merge_html(main_html: str, iframe_html: List[Optional[str]]) -> str:
    """Concatenate main and iframe HTML with section markers."""
    parts = [f"<!-- MAIN PAGE HTML -->\n{main_html or ''}"]
    for idx, html in enumerate(iframe_html):
        if html:
            parts.append(f"<!-- IFRAME {idx} -->\n{html}")
    return '\n'.join(parts)
