"""HTTP utility functions for API sweeping and oracle calls.

This module provides HTTP request helpers including retry logic,
session management, and header generation.
"""

import logging
import random
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from storefinder.shared.constants import HTTP
from storefinder.shared.delays import backoff_delay

__all__ = [
    'DEFAULT_USER_AGENTS',
    'create_session',
    'get_headers',
    'get_with_retry',
    'post_with_retry',
    'sanitize_url',
]


# Default user agents for rotation
DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
]

# Status codes worth retrying; other 4xx fail fast
_RETRYABLE_CLIENT_ERRORS = {403, 408, 429}


def sanitize_url(url: str) -> str:
    """Drop query parameters from a URL for compact logging.

    Args:
        url: URL to sanitize

    Returns:
        URL with scheme, host and path only, or a placeholder if unparsable
    """
    try:
        parsed = urlparse(url)
        safe_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
        if parsed.query:
            safe_url += "?..."
        return safe_url
    except Exception:
        return "[INVALID_URL]"


def get_headers(user_agent: str = None, base_url: str = None) -> Dict[str, str]:
    """Get headers dict with optional user agent rotation.

    Args:
        user_agent: User agent string (random if not provided)
        base_url: Base URL for Referer header

    Returns:
        Dictionary of HTTP headers
    """
    if user_agent is None:
        user_agent = random.choice(DEFAULT_USER_AGENTS)

    headers = {
        "User-Agent": user_agent,
        "Accept": "application/json, text/plain, text/html, */*",
        "Accept-Language": "en-US,en;q=0.5",
        "Connection": "keep-alive",
    }
    if base_url:
        headers["Referer"] = base_url
    return headers


def create_session(base_url: str = None) -> requests.Session:
    """Create a requests.Session with default headers applied.

    Args:
        base_url: Optional target URL used as Referer

    Returns:
        Configured session
    """
    session = requests.Session()
    session.headers.update(get_headers(base_url=base_url))
    return session


def _should_retry(response: requests.Response, url: str, attempt: int, max_retries: int) -> bool:
    """Log a non-200 response and decide whether another attempt is worthwhile."""
    status = response.status_code
    safe_url = sanitize_url(url)
    if status in _RETRYABLE_CLIENT_ERRORS or status >= 500:
        logging.warning(
            f"HTTP {status} for {safe_url} (attempt {attempt}/{max_retries})"
        )
        return True
    if 400 <= status < 500:
        # 404, 401, 410, etc. won't succeed on retry
        logging.warning(f"Client error ({status}) for {safe_url}. Failing immediately.")
        return False
    logging.warning(f"Unexpected HTTP {status} for {safe_url}")
    return False


def _request_with_retry(
    send,
    url: str,
    max_retries: int = None,
    retry_delay: float = None,
) -> Optional[requests.Response]:
    """Run ``send()`` until it yields a 200 response or the retry budget is spent."""
    max_retries = max_retries if max_retries is not None else HTTP.MAX_RETRIES
    max_retries = max(1, max_retries)
    response = None

    for attempt in range(1, max_retries + 1):
        try:
            response = send()
            if response is None:
                logging.warning(f"Received None response for {sanitize_url(url)}")
            elif response.status_code == 200:
                logging.debug(f"Successfully fetched {sanitize_url(url)}")
                return response
            elif not _should_retry(response, url, attempt, max_retries):
                return None

        except requests.exceptions.RequestException as e:
            response = None
            logging.warning(
                f"Request error for {sanitize_url(url)}: {e} "
                f"(attempt {attempt}/{max_retries})"
            )

        if attempt < max_retries:
            backoff_delay(attempt, retry_delay)

    final_status = response.status_code if response is not None else 'no response'
    logging.warning(
        f"Failed to fetch {sanitize_url(url)} after {max_retries} attempts "
        f"(last status: {final_status})"
    )
    return None


def get_with_retry(
    session: requests.Session,
    url: str,
    max_retries: int = None,
    timeout: float = None,
    retry_delay: float = None,
    headers: Optional[Dict[str, str]] = None,
) -> Optional[requests.Response]:
    """Fetch URL with linear backoff retry and proper error handling.

    Transient failures (timeouts, connection errors, 403/408/429, 5xx) are
    retried, waiting ``retry_delay * attempt`` seconds between attempts. Other
    client errors fail fast. Exhausting the budget is reported as None rather
    than raised, so callers treat it as "no data".

    Args:
        session: requests.Session to use
        url: URL to fetch
        max_retries: Maximum number of attempts
        timeout: Request timeout in seconds
        retry_delay: Base backoff delay in seconds
        headers: Optional per-request headers

    Returns:
        Response object on success, None on failure
    """
    timeout = timeout if timeout is not None else HTTP.TIMEOUT
    return _request_with_retry(
        lambda: session.get(url, headers=headers, timeout=timeout),
        url,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )


def post_with_retry(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    max_retries: int = None,
    timeout: float = None,
    retry_delay: float = None,
) -> Optional[requests.Response]:
    """POST a JSON payload with the same retry policy as get_with_retry().

    Args:
        session: requests.Session to use
        url: Endpoint URL
        payload: JSON-serializable request body
        max_retries: Maximum number of attempts
        timeout: Request timeout in seconds
        retry_delay: Base backoff delay in seconds

    Returns:
        Response object on success, None on failure
    """
    timeout = timeout if timeout is not None else HTTP.TIMEOUT
    return _request_with_retry(
        lambda: session.post(url, json=payload, timeout=timeout),
        url,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
