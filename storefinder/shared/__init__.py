"""Shared utilities for the store finder"""

from .delays import backoff_delay, rate_limit_delay
from .export_service import sanitize_csv_value, save_html_snapshot, save_run_output
from .http import (
    DEFAULT_USER_AGENTS,
    create_session,
    get_headers,
    get_with_retry,
    post_with_retry,
)
from .logging_config import setup_logging
from .store_processing import calculate_stats, deduplicate, normalize_stores, pre_filter
from .store_schema import STORE_FIELDS, StoreRecord, coerce_coordinate

__all__ = [
    'DEFAULT_USER_AGENTS',
    'STORE_FIELDS',
    'StoreRecord',
    'backoff_delay',
    'calculate_stats',
    'coerce_coordinate',
    'create_session',
    'deduplicate',
    'get_headers',
    'get_with_retry',
    'normalize_stores',
    'post_with_retry',
    'pre_filter',
    'rate_limit_delay',
    'sanitize_csv_value',
    'save_html_snapshot',
    'save_run_output',
    'setup_logging',
]
