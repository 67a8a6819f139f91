"""
Export Service - Persist run output as JSON and CSV.

Every run writes into its own ``<domain>_<timestamp>`` folder under the
configured output directory.
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from storefinder.shared.constants import EXPORT

__all__ = [
    'CSV_INJECTION_CHARS',
    'domain_slug',
    'sanitize_csv_value',
    'sanitize_store_for_csv',
    'save_html_snapshot',
    'save_run_output',
]


# Characters that can trigger formula injection in spreadsheet applications
CSV_INJECTION_CHARS = ('=', '+', '-', '@', '\t', '\r', '\n')


def sanitize_csv_value(value: Any) -> Any:
    """Sanitize a value for CSV export to prevent formula injection.

    Spreadsheet applications interpret cells starting with =, +, -, @, tab or
    carriage return as formulas. Such values are prefixed with a single quote.
    Negative numbers (common in coordinates) are left untouched.

    Args:
        value: The value to sanitize

    Returns:
        The sanitized value
    """
    if not isinstance(value, str):
        return value
    if value and value[0] in CSV_INJECTION_CHARS:
        if value[0] == '-':
            try:
                float(value)
                return value
            except ValueError:
                pass
        return f"'{value}"
    return value


def sanitize_store_for_csv(store: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize all string values in a store dict for CSV export."""
    return {key: sanitize_csv_value(value) for key, value in store.items()}


def domain_slug(url: str) -> str:
    """Host of ``url`` without a leading ``www.``, safe for use in file names."""
    host = urlparse(url).netloc or 'unknown'
    if host.startswith('www.'):
        host = host[4:]
    return host.replace(':', '_')


def _timestamp() -> str:
    return datetime.now().strftime('%Y-%m-%dT%H-%M-%S')


def save_run_output(
    stores: List[Dict[str, Any]],
    url: str,
    stats: Dict[str, Any],
    output_dir: str,
) -> Optional[Path]:
    """Write stores.json and stores.csv for one run.

    stores.json holds ``{metadata: {url, **stats}, stores}``; stores.csv uses
    the fixed EXPORT.CSV_FIELDS column order with formula injection protection.

    Args:
        stores: Final deduplicated records
        url: Target URL of the run
        stats: Output of calculate_stats()
        output_dir: Base output directory

    Returns:
        The run folder, or None when there was nothing to write
    """
    if not stores:
        logging.warning("No stores to export")
        return None

    run_dir = Path(output_dir) / f"{domain_slug(url)}_{_timestamp()}"
    run_dir.mkdir(parents=True, exist_ok=True)

    payload = {'metadata': {'url': url, **stats}, 'stores': stores}
    with open(run_dir / EXPORT.JSON_FILENAME, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    sanitized_stores = [sanitize_store_for_csv(store) for store in stores]
    with open(run_dir / EXPORT.CSV_FILENAME, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=list(EXPORT.CSV_FIELDS), extrasaction='ignore')
        writer.writeheader()
        writer.writerows(sanitized_stores)

    logging.info(f"Exported {len(stores)} stores to {run_dir}")
    return run_dir


def save_html_snapshot(html: str, url: str, suffix: str, output_dir: str) -> Optional[Path]:
    """Write an HTML snapshot under ``<output_dir>/html_logs``.

    Snapshot failures are logged and never abort the run.

    Args:
        html: Document HTML
        url: Target URL (used for the file name)
        suffix: Snapshot label, e.g. ``main``, ``iframe_0``, ``search_paris``
        output_dir: Base output directory

    Returns:
        Path of the written file, or None on failure
    """
    log_dir = Path(output_dir) / EXPORT.HTML_LOG_DIR
    path = log_dir / f"{domain_slug(url)}_{suffix}_{_timestamp()}.html"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(html or '', encoding='utf-8')
    except OSError as e:
        logging.warning(f"Could not save HTML snapshot {path}: {e}")
        return None
    logging.debug(f"Saved HTML snapshot: {path}")
    return path
