"""Pytest configuration and fixtures for store finder tests"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import requests
from unittest.mock import Mock

from playwright.async_api import Error as PlaywrightError


@pytest.fixture
def mock_response_factory():
    """Factory for creating mock HTTP responses with various scenarios.

    Usage:
        response = mock_response_factory(status_code=200, json_data={"key": "value"})
        response = mock_response_factory(status_code=404, text="Not Found")
    """
    def _create_response(
        status_code: int = 200,
        text: str = "",
        json_data: Optional[Any] = None,
        headers: Optional[dict] = None,
    ):
        response = Mock()
        response.status_code = status_code
        response.text = text
        response.headers = headers or {}
        if json_data is not None:
            response.json.return_value = json_data
        else:
            response.json.side_effect = ValueError("No JSON data")
        return response

    return _create_response


@pytest.fixture
def mock_session():
    """A requests.Session mock with no default behavior."""
    session = Mock(spec=requests.Session)
    session.headers = {}
    return session


@pytest.fixture
def sample_stores() -> List[Dict[str, Any]]:
    """Normalized records from several sources, including a case-variant duplicate."""
    return [
        {
            'name': 'Acme Store', 'address': '1 Main St', 'city': 'Springfield',
            'state': 'IL', 'country': 'US', 'postal_code': '62701',
            'latitude': 39.78, 'longitude': -89.65,
            'phone': '555-0100', 'email': '', 'url': '', 'source': 'json-ld',
        },
        {
            'name': 'ACME STORE', 'address': '1 main st', 'city': 'SPRINGFIELD',
            'state': '', 'country': '', 'postal_code': '',
            'latitude': None, 'longitude': None,
            'phone': '', 'email': '', 'url': '', 'source': 'html-static',
        },
        {
            'name': 'Acme Outlet', 'address': '', 'city': 'Shelbyville',
            'state': '', 'country': '', 'postal_code': '',
            'latitude': 0.0, 'longitude': 0.0,
            'phone': '', 'email': '', 'url': '', 'source': 'api-dynamic',
        },
    ]


class FakeFrame:
    """Minimal stand-in for a Playwright Page/Frame used by LiveDocument.

    ``html`` is returned by content(); ``live_records`` is returned by
    evaluate(); selectors listed in ``visible`` satisfy wait_for_selector().
    """

    def __init__(self, html: str = '', url: str = 'about:blank', live_records=None, visible=None):
        self.html = html
        self.url = url
        self.live_records = live_records or []
        self.visible = set(visible or [])
        self.detached = False
        self.clicked: List[str] = []
        self.typed: List[str] = []
        self.evaluate_error: Optional[Exception] = None

    def is_detached(self) -> bool:
        return self.detached

    async def content(self) -> str:
        return self.html

    async def evaluate(self, expression, arg=None):
        if self.evaluate_error:
            raise self.evaluate_error
        return self.live_records

    async def wait_for_selector(self, selector, state='visible', timeout=None):
        if selector == 'body' or selector in self.visible:
            return Mock()
        raise PlaywrightError(f"Timeout waiting for {selector}")

    async def query_selector_all(self, selector):
        return [Mock()] if selector in self.visible else []

    async def query_selector(self, selector):
        if selector not in self.visible:
            return None
        element = Mock()

        async def _click():
            self.clicked.append(selector)

        async def _scroll():
            return None

        element.click = _click
        element.scroll_into_view_if_needed = _scroll
        return element

    async def fill(self, selector, value):
        return None

    async def type(self, selector, text, delay=None):
        self.typed.append(text)


class FakePage(FakeFrame):
    """FakeFrame with navigation and child frames."""

    def __init__(self, html: str = '', redirect_to: Optional[str] = None, goto_errors: int = 0, **kwargs):
        super().__init__(html=html, **kwargs)
        self.redirect_to = redirect_to
        self.goto_errors = goto_errors
        self.goto_calls: List[str] = []
        self.child_frames: List[FakeFrame] = []

    @property
    def main_frame(self):
        return self

    @property
    def frames(self):
        return [self] + self.child_frames

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(url)
        if self.goto_errors:
            self.goto_errors -= 1
            raise PlaywrightError(f"net::ERR_CONNECTION_REFUSED at {url}")
        if self.redirect_to and len(self.goto_calls) == 1:
            self.url = self.redirect_to
        else:
            self.url = url


@pytest.fixture
def fake_page_factory():
    """Factory for FakePage objects."""
    return FakePage


@pytest.fixture
def fake_frame_factory():
    """Factory for FakeFrame objects."""
    return FakeFrame
