"""Runtime configuration for the store finder.

Values are resolved from, lowest to highest priority:
defaults -> config/scraper.yaml -> environment variables (.env is loaded by
run.py) -> explicit CLI overrides. The resolved ScraperConfig is immutable
and passed to the pipeline.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional

import yaml

from storefinder.shared.constants import HTTP, ORACLE, SWEEP


DEFAULT_CONFIG_PATH = 'config/scraper.yaml'

# Analytics, tag-manager and CDN hosts whose responses are never recorded
IGNORE_HOSTS = (
    'cloudfront.net',
    'px-cloud.net',
    'px-cdn.net',
    'cookielaw.org',
    'pinterest.com',
    'qualtrics.com',
    'snapchat.com',
    'akamai',
    'adobedc.net',
    'googletagmanager.com',
    'google-analytics.com',
    'doubleclick.net',
    'hotjar.com',
    'tie.cloud.247-inc.net',
    'google.com',
    'adobedc.demdex.net',
    'js.klarna.com',
    'emarsys.net',
    'recommender.scarabresearch.com',
    'tie.cloud',
)

# Environment variable -> ScraperConfig field
ENV_KEYS = {
    'HEADLESS': 'headless',
    'BATCH_SIZE': 'batch_size',
    'OUTPUT_DIR': 'output_dir',
    'GRID_LAT_STEP': 'grid_lat_step',
    'GRID_LNG_STEP': 'grid_lng_step',
    'MAX_EMPTY_BOXES': 'max_empty_cells',
    'REQUEST_TIMEOUT': 'request_timeout',
    'PAGE_TIMEOUT': 'page_timeout',
    'RETRY_COUNT': 'retry_count',
    'RETRY_DELAY': 'retry_delay',
    'RATE_LIMIT_DELAY': 'rate_limit_delay',
    'DEBUG': 'debug',
    'USE_LLM_ENHANCEMENT': 'use_llm_enhancement',
    'SAVE_HTML': 'save_html',
    'LLM_ENDPOINT': 'llm_endpoint',
    'LLM_MODEL': 'llm_model',
}

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off', '')


@dataclass(frozen=True)
class ScraperConfig:
    """Immutable run configuration.

    Timeouts and delays are in seconds.
    """
    headless: bool = True
    batch_size: int = 100
    output_dir: str = './scraped_stores'
    grid_lat_step: float = SWEEP.LAT_STEP
    grid_lng_step: float = SWEEP.LNG_STEP
    max_empty_cells: int = SWEEP.MAX_EMPTY_CELLS
    request_timeout: float = HTTP.TIMEOUT
    page_timeout: float = HTTP.PAGE_TIMEOUT
    retry_count: int = HTTP.MAX_RETRIES
    retry_delay: float = HTTP.RETRY_DELAY
    rate_limit_delay: float = SWEEP.RATE_LIMIT_DELAY
    debug: bool = False
    use_llm_enhancement: bool = False
    save_html: bool = False
    llm_endpoint: str = ORACLE.ENDPOINT
    llm_model: str = ORACLE.MODEL

    def validate(self) -> List[str]:
        """Check value ranges.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        for name in ('grid_lat_step', 'grid_lng_step', 'request_timeout', 'page_timeout'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(f"'{name}' must be a positive number, got {value!r}")
        for name in ('batch_size', 'max_empty_cells', 'retry_count'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"'{name}' must be a positive integer, got {value!r}")
        for name in ('retry_delay', 'rate_limit_delay'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                errors.append(f"'{name}' must be a non-negative number, got {value!r}")
        if isinstance(self.grid_lat_step, (int, float)) and self.grid_lat_step > 180:
            errors.append(f"'grid_lat_step' cannot exceed 180, got {self.grid_lat_step}")
        if isinstance(self.grid_lng_step, (int, float)) and self.grid_lng_step > 360:
            errors.append(f"'grid_lng_step' cannot exceed 360, got {self.grid_lng_step}")
        if not self.output_dir:
            errors.append("'output_dir' must not be empty")
        if not str(self.llm_endpoint).startswith(('http://', 'https://')):
            errors.append(f"'llm_endpoint' must be a valid HTTP/HTTPS URL, got {self.llm_endpoint!r}")
        return errors


_FIELD_TYPES = {f.name: f.type for f in fields(ScraperConfig)}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type of field ``name``.

    Values that cannot be converted are returned unchanged so that
    validate() reports them.
    """
    field_type = _FIELD_TYPES[name]
    if field_type is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        return value
    if field_type in (int, float):
        if isinstance(value, bool):
            return value
        try:
            number = float(value)
        except (TypeError, ValueError):
            return value
        if field_type is int:
            return int(number) if number.is_integer() else value
        return number
    return str(value)


def load_yaml_settings(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Read the ``scraper`` section of a YAML config file.

    A missing file is not an error; unknown keys are ignored with a warning.
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logging.debug(f"Config file {config_path} not found, using defaults")
        return {}
    except yaml.YAMLError as e:
        raise ValueError(f"{config_path}: invalid YAML: {e}") from e

    # safe_load returns None for empty files
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: top level must be a dictionary")
    section = data.get('scraper', data)
    if not isinstance(section, dict):
        raise ValueError(f"{config_path}: 'scraper' section must be a dictionary")

    settings = {}
    for key, value in section.items():
        if key not in _FIELD_TYPES:
            logging.warning(f"{config_path}: ignoring unknown setting '{key}'")
            continue
        if value is not None:
            settings[key] = _coerce(key, value)
    return settings


def load_env_settings(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Read recognized environment variables."""
    environ = os.environ if environ is None else environ
    settings = {}
    for env_key, name in ENV_KEYS.items():
        value = environ.get(env_key)
        if value is not None and value.strip() != '':
            settings[name] = _coerce(name, value.strip())
    return settings


def load_config(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ScraperConfig:
    """Resolve the effective configuration.

    Args:
        config_path: YAML config file (optional on disk)
        overrides: Explicit CLI values; None entries are ignored
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ScraperConfig (not yet validated)
    """
    settings: Dict[str, Any] = {}
    settings.update(load_yaml_settings(config_path))
    settings.update(load_env_settings(environ))
    for key, value in (overrides or {}).items():
        if value is not None and key in _FIELD_TYPES:
            settings[key] = value
    return replace(ScraperConfig(), **settings)


def is_ignored_host(host: str) -> bool:
    """True when ``host`` matches an entry of IGNORE_HOSTS."""
    host = (host or '').lower()
    return any(ignored in host for ignored in IGNORE_HOSTS)
