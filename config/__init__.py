"""Configuration module for the store finder"""

from config.scraper_config import (
    DEFAULT_CONFIG_PATH,
    IGNORE_HOSTS,
    ScraperConfig,
    is_ignored_host,
    load_config,
)

__all__ = [
    'DEFAULT_CONFIG_PATH',
    'IGNORE_HOSTS',
    'ScraperConfig',
    'is_ignored_host',
    'load_config',
]
