"""Delay utilities for rate limiting and retry backoff.

This module provides the fixed pauses used between sweep requests and the
linear backoff used between retries, so that tests can patch a single
``time.sleep`` location.
"""

import logging
import time

from storefinder.shared.constants import HTTP, SWEEP

__all__ = [
    'backoff_delay',
    'rate_limit_delay',
]


def rate_limit_delay(seconds: float = None) -> None:
    """Sleep a fixed amount between consecutive API requests.

    Args:
        seconds: Delay in seconds (uses SWEEP.RATE_LIMIT_DELAY if None)
    """
    seconds = seconds if seconds is not None else SWEEP.RATE_LIMIT_DELAY
    if seconds > 0:
        time.sleep(seconds)


def backoff_delay(attempt: int, base_delay: float = None) -> float:
    """Sleep before retry number ``attempt`` using linear backoff.

    Attempt 1 waits ``base_delay``, attempt 2 waits ``2 * base_delay`` and so on.

    Args:
        attempt: 1-based retry number
        base_delay: Base delay in seconds (uses HTTP.RETRY_DELAY if None)

    Returns:
        The number of seconds slept
    """
    base_delay = base_delay if base_delay is not None else HTTP.RETRY_DELAY
    wait_time = base_delay * attempt
    if wait_time > 0:
        time.sleep(wait_time)
    logging.debug(f"Backed off {wait_time:.2f} seconds before retry {attempt}")
    return wait_time
