"""Universal store locator scraper."""

__version__ = '1.0.0'
