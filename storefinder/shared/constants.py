"""Centralized constants for the store finder.

This module provides frozen dataclass-based configuration groups for all
magic numbers used throughout the codebase. Using dataclasses provides:
- Type safety and IDE autocompletion
- Immutability (frozen=True prevents accidental modification)
- Grouped related constants logically

Runtime-tunable values (timeouts, grid steps, delays) are only defaults here;
the effective values live in config.scraper_config.ScraperConfig.

Usage:
    from storefinder.shared.constants import HTTP, SWEEP, PIPELINE

    timeout = HTTP.TIMEOUT
    threshold = SWEEP.MAX_EMPTY_CELLS
"""

from dataclasses import dataclass, field
from typing import Tuple

__all__ = [
    'EXPORT',
    'ExportDefaults',
    'HTTP',
    'HttpDefaults',
    'LOGGING',
    'LoggingDefaults',
    'ORACLE',
    'OracleDefaults',
    'PIPELINE',
    'PipelineDefaults',
    'SOURCES',
    'SourceTags',
    'SWEEP',
    'SweepDefaults',
    'VALIDATION',
    'ValidationDefaults',
]


@dataclass(frozen=True)
class HttpDefaults:
    """HTTP request configuration defaults.

    These values control retry behavior and timeouts for API and oracle
    requests.
    """

    MAX_RETRIES: int = 3
    """Maximum number of attempts for a failed request."""

    TIMEOUT: int = 30
    """Request timeout in seconds."""

    RETRY_DELAY: float = 2.0
    """Base delay in seconds; attempt N waits RETRY_DELAY * N (linear backoff)."""

    PAGE_TIMEOUT: int = 60
    """Browser navigation timeout in seconds."""


@dataclass(frozen=True)
class SweepDefaults:
    """Geographic sweep configuration.

    Controls grid generation and the circuit breakers that bound the cost of
    sweeping a coordinate-based API across the globe.
    """

    LAT_STEP: float = 30.0
    """Grid cell height in degrees of latitude."""

    LNG_STEP: float = 30.0
    """Grid cell width in degrees of longitude."""

    MAX_EMPTY_CELLS: int = 30
    """Abort the sweep after this many consecutive cells without records."""

    RATE_LIMIT_DELAY: float = 0.3
    """Fixed pause in seconds after every sweep request."""

    DIRECT_CALL_THRESHOLD: int = 50
    """An unparameterized API call returning more records than this skips the sweep."""

    EARTH_RADIUS_METERS: float = 6371e3
    """Mean Earth radius used by the haversine formula."""

    KM_TO_MILES: float = 0.621371
    """Conversion factor from kilometers to miles."""

    PROGRESS_INTERVAL: int = 10
    """Log sweep progress every N cells."""


@dataclass(frozen=True)
class PipelineDefaults:
    """Orchestrator thresholds and settle times.

    Sleep values are in seconds and give the live page time to react after
    navigation and interaction.
    """

    SUFFICIENT_STORES: int = 200
    """Interactive expansion and API fallback are skipped at this candidate count."""

    MAX_SHOW_MORE_CLICKS: int = 20
    """Maximum "show more" clicks per document context."""

    SHOW_MORE_WAIT_MS: int = 5000
    """How long to wait for the "show more" button to (re)appear."""

    IFRAME_BODY_WAIT_MS: int = 3000
    """How long to wait for an iframe body before giving up on the frame."""

    RESPONSE_BODY_TIMEOUT: float = 3.0
    """Timeout for reading a captured network response body."""

    LOAD_SETTLE: float = 5.0
    """Pause after the first page load."""

    RELOAD_SETTLE: float = 3.0
    """Pause after re-accessing the target following a redirect."""

    IFRAME_SETTLE: float = 0.5
    """Pause after an iframe body appears."""

    CLICK_SETTLE: float = 2.0
    """Pause after each "show more" click."""

    SEARCH_SETTLE: float = 4.0
    """Pause after submitting a search probe."""

    TYPE_DELAY_MS: int = 100
    """Per-keystroke delay when typing a search probe."""

    SEARCH_PROBES: Tuple[str, ...] = ('Paris', 'New York')
    """Representative queries typed into a detected search box."""


@dataclass(frozen=True)
class OracleDefaults:
    """Language-model oracle settings.

    The oracle sees size-capped samples only; answers are untrusted.
    """

    ENDPOINT: str = 'https://text.pollinations.ai/'
    """Chat endpoint accepting {model, messages, temperature}."""

    MODEL: str = 'openai'
    """Model name sent with every request."""

    HTML_SAMPLE_SIZE: int = 800000
    """Maximum characters of HTML sent for pattern detection."""

    MAX_API_RESPONSES: int = 30
    """Maximum recorded responses sent for API detection."""

    TEXT_PREVIEW_SIZE: int = 200
    """Preview length for text responses sent for API detection."""

    JSON_PREVIEW_SIZE: int = 100
    """Preview length for JSON responses sent for API detection."""

    PATTERN_TEMPERATURE: float = 0.5
    API_TEMPERATURE: float = 0.1
    MAPPING_TEMPERATURE: float = 0.0
    CLEANING_TEMPERATURE: float = 0.1


@dataclass(frozen=True)
class SourceTags:
    """Tags identifying which extractor produced a store record."""

    HTML_STATIC: str = 'html-static'
    HTML_LIVE: str = 'html-live'
    JSON_LD: str = 'json-ld'
    INLINE_SCRIPT: str = 'inline-script'
    API_DYNAMIC: str = 'api-dynamic'


@dataclass(frozen=True)
class ExportDefaults:
    """Export configuration.

    Controls the persisted JSON/CSV output layout.
    """

    CSV_FIELDS: Tuple[str, ...] = (
        'name', 'address', 'city', 'state', 'country', 'postal_code',
        'latitude', 'longitude', 'phone', 'email', 'url', 'source',
    )
    """Fixed CSV column order."""

    JSON_FILENAME: str = 'stores.json'
    CSV_FILENAME: str = 'stores.csv'
    HTML_LOG_DIR: str = 'html_logs'


@dataclass(frozen=True)
class LoggingDefaults:
    """Logging configuration.

    Controls log file rotation settings.
    """

    LOG_FILE: str = 'logs/storefinder.log'
    """Default log file path."""

    MAX_BYTES: int = 10 * 1024 * 1024
    """Maximum log file size before rotation (10MB)."""

    BACKUP_COUNT: int = 5
    """Number of backup log files to keep."""


@dataclass(frozen=True)
class ValidationDefaults:
    """Coordinate bounds of the sweep grid and accepted JSON-LD entity types."""

    LAT_MIN: float = -90.0
    LAT_MAX: float = 90.0
    LON_MIN: float = -180.0
    LON_MAX: float = 180.0

    JSON_LD_TYPES: Tuple[str, ...] = field(
        default=('Store', 'LocalBusiness', 'Restaurant', 'Hotel', 'Shop')
    )
    """Schema.org entity types accepted as store records."""


# Singleton instances for easy import
HTTP = HttpDefaults()
SWEEP = SweepDefaults()
PIPELINE = PipelineDefaults()
ORACLE = OracleDefaults()
SOURCES = SourceTags()
EXPORT = ExportDefaults()
LOGGING = LoggingDefaults()
VALIDATION = ValidationDefaults()
