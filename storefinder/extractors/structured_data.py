"""Extract store records from structured payloads embedded in HTML.

Two payload kinds are handled:

* JSON-LD blocks (``<script type="application/ld+json">``) describing
  schema.org Store / LocalBusiness entities;
* inline script blobs of the form ``{"stores": [...]}`` assigned to
  JavaScript variables, possibly embedded in an escaped string literal.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from storefinder.shared.constants import SOURCES, VALIDATION
from storefinder.shared.store_schema import StoreRecord

__all__ = [
    'INLINE_STORES_MARKER',
    'extract_inline_scripts',
    'extract_json_ld',
    'find_balanced_object',
    'find_first_object_array',
]


INLINE_STORES_MARKER = '{"stores":'


# =============================================================================
# JSON-LD
# =============================================================================

def _iter_entities(data: Any) -> Iterator[Dict[str, Any]]:
    """Yield every entity in a JSON-LD value, expanding @graph containers."""
    if isinstance(data, list):
        for item in data:
            yield from _iter_entities(item)
    elif isinstance(data, dict):
        yield data
        if '@graph' in data:
            yield from _iter_entities(data['@graph'])


def _is_store_type(entity: Dict[str, Any]) -> bool:
    entity_type = entity.get('@type')
    if isinstance(entity_type, str):
        types = [entity_type]
    elif isinstance(entity_type, list):
        types = [t for t in entity_type if isinstance(t, str)]
    else:
        return False
    return any(t in VALIDATION.JSON_LD_TYPES for t in types)


def _json_ld_record(entity: Dict[str, Any]) -> Dict[str, Any]:
    address = entity.get('address') or {}
    if isinstance(address, str):
        address = {'streetAddress': address}
    elif isinstance(address, list):
        address = address[0] if address and isinstance(address[0], dict) else {}
    elif not isinstance(address, dict):
        address = {}

    country = address.get('addressCountry', '')
    if isinstance(country, dict):
        country = country.get('name', '')

    geo = entity.get('geo') if isinstance(entity.get('geo'), dict) else {}

    return StoreRecord.from_raw({
        'name': entity.get('name'),
        'address': address.get('streetAddress'),
        'city': address.get('addressLocality'),
        'state': address.get('addressRegion'),
        'country': country,
        'postal_code': address.get('postalCode'),
        'latitude': geo.get('latitude'),
        'longitude': geo.get('longitude'),
        'phone': entity.get('telephone'),
        'email': entity.get('email'),
        'url': entity.get('url'),
    }, source=SOURCES.JSON_LD).to_dict()


def extract_json_ld(html: str) -> List[Dict[str, Any]]:
    """Extract store records from every JSON-LD block of a document.

    An entity is kept when it has a name, or both a street address and a
    city. Blocks that fail to parse are skipped.

    Args:
        html: Document HTML

    Returns:
        Store records tagged ``json-ld``
    """
    if not html:
        return []

    soup = BeautifulSoup(html, 'html.parser')
    stores = []
    for script in soup.find_all('script', type='application/ld+json'):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            logging.debug(f"Skipping unparsable JSON-LD block: {e}")
            continue

        for entity in _iter_entities(data):
            if not _is_store_type(entity):
                continue
            record = _json_ld_record(entity)
            if record['name'] or (record['address'] and record['city']):
                stores.append(record)

    if stores:
        logging.info(f"JSON-LD: found {len(stores)} stores")
    return stores


# =============================================================================
# INLINE SCRIPTS
# =============================================================================

def find_balanced_object(text: str, start: int) -> Optional[str]:
    """Return the balanced ``{...}`` slice that opens at ``text[start]``.

    Braces inside JSON string literals are ignored; backslash escapes inside
    strings are honored, so ``"a \\" {"`` does not close the string.

    Args:
        text: Text to scan
        start: Index of the opening brace

    Returns:
        The exact balanced substring, or None when ``text[start]`` is not
        ``{`` or the text ends before the object closes

    Examples:
        >>> find_balanced_object('x = {"a": {"b": "}"}};', 4)
        '{"a": {"b": "}"}}'
        >>> find_balanced_object('{"a": 1', 0) is None
        True
    """
    if start < 0 or start >= len(text) or text[start] != '{':
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def find_first_object_array(obj: Any) -> Optional[List[Dict[str, Any]]]:
    """Find the first list whose first element is a dict.

    A top-level list qualifies directly; otherwise dict values are searched
    depth-first in key order.
    """
    if isinstance(obj, list):
        if obj and isinstance(obj[0], dict):
            return obj
        return None
    if isinstance(obj, dict):
        for value in obj.values():
            found = find_first_object_array(value)
            if found is not None:
                return found
    return None


def _select_store_array(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, dict):
        if isinstance(payload.get('stores'), list):
            return payload['stores']
        page = payload.get('page')
        if isinstance(page, dict) and isinstance(page.get('items'), list):
            return page['items']
    return find_first_object_array(payload)


def _first_present(*values: Any) -> Any:
    for value in values:
        if value not in (None, ''):
            return value
    return ''


def _inline_record(item: Dict[str, Any]) -> Dict[str, Any]:
    address = item.get('address')
    nested = address if isinstance(address, dict) else {}

    street = nested.get('street1')
    if street and nested.get('street2'):
        street = f"{street} - {nested['street2']}"
    street = _first_present(
        street,
        nested.get('street'),
        nested.get('line1'),
        address if isinstance(address, str) else None,
    )

    position = item.get('position') if isinstance(item.get('position'), dict) else {}

    return StoreRecord.from_raw({
        'name': item.get('name'),
        'address': street,
        'city': _first_present(nested.get('city'), item.get('city')),
        'state': _first_present(nested.get('state'), item.get('state')),
        'country': _first_present(nested.get('country'), item.get('country')),
        'postal_code': _first_present(
            nested.get('zipcode'), nested.get('postal_code'),
            item.get('zipcode'), item.get('postal_code'),
        ),
        'latitude': _first_present(position.get('lat'), item.get('latitude'), item.get('lat')),
        'longitude': _first_present(position.get('lng'), item.get('longitude'), item.get('lng')),
        'phone': _first_present(item.get('phone'), item.get('telephone')),
        'email': item.get('email'),
        'url': _first_present(item.get('google_maps_url'), item.get('url')),
    }, source=SOURCES.INLINE_SCRIPT).to_dict()


def _parse_inline_payload(script_text: str) -> Optional[Any]:
    """Locate and parse the first stores payload of a script, raw or unescaped."""
    for candidate in (script_text, script_text.replace('\\"', '"')):
        idx = candidate.find(INLINE_STORES_MARKER)
        if idx == -1:
            continue
        blob = find_balanced_object(candidate, idx)
        if blob is None:
            continue
        try:
            return json.loads(blob)
        except json.JSONDecodeError as e:
            logging.debug(f"Inline stores payload did not parse: {e}")
            continue
    return None


def extract_inline_scripts(html: str) -> List[Dict[str, Any]]:
    """Extract store records from ``{"stores": ...}`` blobs in script tags.

    Array choice per payload: ``stores``, else ``page.items``, else the first
    array of objects found anywhere. A script whose payload does not parse is
    skipped without affecting the others.

    Args:
        html: Document HTML (usually the merged main + iframe HTML)

    Returns:
        Store records tagged ``inline-script``
    """
    if not html or INLINE_STORES_MARKER not in html.replace('\\"', '"'):
        return []

    soup = BeautifulSoup(html, 'html.parser')
    stores = []
    for script in soup.find_all('script'):
        text = script.string or script.get_text()
        if not text:
            continue
        payload = _parse_inline_payload(text)
        if payload is None:
            continue
        items = _select_store_array(payload) or []
        for item in items:
            if not isinstance(item, dict):
                continue
            record = _inline_record(item)
            if record['name'] or record['address']:
                stores.append(record)

    if stores:
        logging.info(f"Inline scripts: found {len(stores)} stores")
    return stores
