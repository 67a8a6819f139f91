#!/usr/bin/env python3
"""
CLI for the Universal Store Locator Scraper

Usage:
    python run.py https://www.example.com/stores
    python run.py https://www.example.com/stores --no-headless --debug
    python run.py https://www.example.com/stores --output-dir ./out --save-html
    python run.py https://www.example.com/stores --use-llm-enhancement --batch-size 50
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from config.scraper_config import DEFAULT_CONFIG_PATH, ScraperConfig, load_config
from storefinder.pipeline import StoreLocatorPipeline
from storefinder.shared.logging_config import setup_logging


def validate_url(url: str) -> List[str]:
    """Check that the target is an absolute HTTP/HTTPS URL.

    Returns:
        List of error messages (empty if valid)
    """
    parsed = urlparse(url or '')
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return [f"Invalid URL '{url}': must be an absolute HTTP/HTTPS URL"]
    return []


def setup_parser() -> argparse.ArgumentParser:
    """Setup command line argument parser"""
    parser = argparse.ArgumentParser(
        description="Universal Store Locator Scraper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        'url',
        type=str,
        help='Store locator page to scrape'
    )

    # Browser options
    parser.add_argument(
        '--headless',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Run the browser headless (default: from config)'
    )

    # Output options
    parser.add_argument(
        '--output-dir', '-o',
        type=str,
        default=None,
        help='Base directory for run output (default: ./scraped_stores)'
    )
    parser.add_argument(
        '--save-html',
        action='store_true',
        default=None,
        help='Save main/iframe/search HTML snapshots under <output-dir>/html_logs'
    )

    # Post-processing
    parser.add_argument(
        '--use-llm-enhancement',
        action='store_true',
        default=None,
        help='Clean the final records with the oracle in batches'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=None,
        help='Records per cleaning batch (default: 100)'
    )

    # Logging and config
    parser.add_argument(
        '--debug', '-v',
        action='store_true',
        default=None,
        help='Enable debug logging (prompts, skipped hosts, parse errors)'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default='logs/storefinder.log',
        help='Log file path (default: logs/storefinder.log)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'YAML config file (default: {DEFAULT_CONFIG_PATH})'
    )

    return parser


def build_config(args) -> ScraperConfig:
    """Resolve configuration with CLI flags taking precedence."""
    overrides = {
        'headless': args.headless,
        'output_dir': args.output_dir,
        'save_html': args.save_html,
        'use_llm_enhancement': args.use_llm_enhancement,
        'batch_size': args.batch_size,
        'debug': args.debug,
    }
    return load_config(args.config, overrides=overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = setup_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (ValueError, OSError) as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(args.log_file, level=logging.DEBUG if config.debug else logging.INFO)

    errors = validate_url(args.url) + config.validate()
    if errors:
        print("Invalid configuration or options:")
        for error in errors:
            print(f"  - {error}")
        return 1

    pipeline = StoreLocatorPipeline(config)
    try:
        result = asyncio.run(pipeline.run(args.url))
    except KeyboardInterrupt:
        logging.info("Scraping interrupted by user")
        return 130

    print("\n" + "=" * 60)
    if not result.success:
        print(f"Scraping failed: {result.message}")
        print("=" * 60)
        return 1

    print(f"Scraping complete: {result.message}")
    print(f"  With coordinates: {result.stats.get('with_coordinates', 0)}")
    for source, count in result.stats.get('by_source', {}).items():
        print(f"  {source}: {count}")
    if result.output_dir:
        print(f"  Output: {result.output_dir}")
    print("=" * 60)
    return 0


if __name__ == '__main__':
    sys.exit(main())
