"""Normalization, deduplication and statistics for candidate store records."""

import logging
from typing import Any, Dict, List

from storefinder.shared.store_schema import StoreRecord

__all__ = [
    'calculate_stats',
    'deduplicate',
    'dedup_key',
    'normalize_stores',
    'pre_filter',
]


def normalize_stores(stores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Coerce every record to the canonical StoreRecord shape.

    Non-dict entries (e.g. garbage returned by the cleaning oracle) are dropped.
    """
    normalized = []
    for store in stores:
        if not isinstance(store, dict):
            continue
        normalized.append(StoreRecord.from_raw(store, source=store.get('source', '')).to_dict())
    return normalized


def _has_text(store: Dict[str, Any], field: str) -> bool:
    return bool(str(store.get(field) or '').strip())


def _passes_filter(store: Dict[str, Any]) -> bool:
    if not _has_text(store, 'name'):
        return False
    # 0.0 is a valid coordinate
    has_coordinates = store.get('latitude') is not None and store.get('longitude') is not None
    return _has_text(store, 'address') or _has_text(store, 'city') or has_coordinates


def pre_filter(stores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep named records that can also be located.

    A record passes when it has a non-empty name plus a non-empty address,
    a non-empty city, or both coordinates.

    Args:
        stores: Candidate records

    Returns:
        Records passing the filter, in input order
    """
    kept = [s for s in stores if _passes_filter(s)]
    dropped = len(stores) - len(kept)
    if dropped:
        logging.debug(f"Pre-filter dropped {dropped} records without a name or location")
    return kept


def dedup_key(store: Dict[str, Any]) -> str:
    """Identity key: lower-cased name, address and city joined by '_'."""
    return '_'.join(
        str(store.get(field) or '').lower() for field in ('name', 'address', 'city')
    )


def deduplicate(stores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop records whose identity key was already seen.

    The first occurrence wins and discovery order is preserved, so applying
    this twice gives the same result as applying it once.

    Args:
        stores: Records in discovery order

    Returns:
        Unique records
    """
    seen = set()
    unique = []
    for store in stores:
        key = dedup_key(store)
        if key in seen:
            continue
        seen.add(key)
        unique.append(store)
    logging.info(f"Deduplication: {len(stores)} -> {len(unique)} stores")
    return unique


def calculate_stats(stores: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Summarize a store list.

    Returns:
        Dict with ``total``, ``by_source`` (tag -> count) and
        ``with_coordinates`` (records having both latitude and longitude)
    """
    by_source: Dict[str, int] = {}
    with_coordinates = 0
    for store in stores:
        source = store.get('source') or 'unknown'
        by_source[source] = by_source.get(source, 0) + 1
        if store.get('latitude') is not None and store.get('longitude') is not None:
            with_coordinates += 1
    return {
        'total': len(stores),
        'by_source': by_source,
        'with_coordinates': with_coordinates,
    }
