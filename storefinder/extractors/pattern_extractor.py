"""Pattern-driven extraction from static snapshots and live documents."""

import logging
from typing import Any, Dict, Iterable, List

from playwright.async_api import Error as PlaywrightError

from storefinder.descriptors import PatternDescriptor
from storefinder.documents import LiveDocument, StaticDocument
from storefinder.extractors.field_resolver import resolve_element_field
from storefinder.shared.constants import SOURCES
from storefinder.shared.store_schema import StoreRecord

__all__ = [
    'LIVE_EXTRACT_SCRIPT',
    'collect_records',
    'extract_live',
    'extract_static',
    'records_from_raw',
]


# Runs inside the page. Mirrors resolve_element_field(): split on the last
# '@', empty sub-selector means the item itself, text is trimmed.
LIVE_EXTRACT_SCRIPT = """
([itemSelector, fields]) => {
    const resolve = (el, descriptor) => {
        if (!descriptor) return '';
        try {
            const at = descriptor.lastIndexOf('@');
            if (at !== -1) {
                const selector = descriptor.slice(0, at).trim();
                const attribute = descriptor.slice(at + 1).trim();
                if (!attribute) return '';
                const target = selector ? el.querySelector(selector) : el;
                if (!target) return '';
                const value = target.getAttribute(attribute);
                return value ? value.trim() : '';
            }
            const target = el.querySelector(descriptor.trim());
            return target ? (target.textContent || '').replace(/\\s+/g, ' ').trim() : '';
        } catch (e) {
            return '';
        }
    };
    return Array.from(document.querySelectorAll(itemSelector)).map(el => {
        const record = {};
        for (const [name, descriptor] of Object.entries(fields)) {
            record[name] = resolve(el, descriptor);
        }
        return record;
    });
}
"""


def records_from_raw(raw_records: Iterable[Dict[str, Any]], source: str) -> List[Dict[str, Any]]:
    """Normalize raw field dicts and keep those with a name or address."""
    stores = []
    for raw in raw_records:
        if not isinstance(raw, dict):
            continue
        record = StoreRecord.from_raw(raw, source=source)
        if record.has_identity():
            stores.append(record.to_dict())
    return stores


def collect_records(elements: Iterable[Any], fields: Dict[str, str], source: str) -> List[Dict[str, Any]]:
    """Resolve every field descriptor on every element.

    Args:
        elements: Parsed item elements
        fields: Canonical field name -> element descriptor
        source: Source tag for the produced records

    Returns:
        Records with a non-empty name or address
    """
    raw_records = (
        {name: resolve_element_field(element, descriptor) for name, descriptor in fields.items()}
        for element in elements
    )
    return records_from_raw(raw_records, source)


def extract_static(html: str, pattern: PatternDescriptor) -> List[Dict[str, Any]]:
    """Extract records from an HTML snapshot using ``pattern``.

    Returns:
        Records tagged ``html-static``; [] when the pattern has no item selector
    """
    if not pattern or not pattern.item_selector or not html:
        return []

    document = StaticDocument(html)
    elements = document.query(pattern.item_selector)
    stores = collect_records(elements, pattern.fields, SOURCES.HTML_STATIC)
    logging.debug(f"Static extraction: {len(elements)} items -> {len(stores)} stores")
    return stores


async def extract_live(context: LiveDocument, pattern: PatternDescriptor) -> List[Dict[str, Any]]:
    """Extract records from a live page or frame using ``pattern``.

    Any error raised inside the live context (invalid selector, detached
    frame, navigation in progress) yields [].

    Returns:
        Records tagged ``html-live``
    """
    if not pattern or not pattern.item_selector:
        return []

    try:
        raw_records = await context.evaluate(
            LIVE_EXTRACT_SCRIPT, [pattern.item_selector, dict(pattern.fields)]
        )
    except PlaywrightError as e:
        logging.debug(f"Live extraction failed on {context.label}: {e}")
        return []

    stores = records_from_raw(raw_records or [], SOURCES.HTML_LIVE)
    logging.debug(f"Live extraction on {context.label}: {len(stores)} stores")
    return stores
