"""
Store Schema - Canonical store record shared by every extractor.

Records travel between pipeline stages as plain dicts produced by
StoreRecord.to_dict(); the dataclass only fixes the field set and the
coercion rules.
"""

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional, Tuple


__all__ = [
    'COORDINATE_FIELDS',
    'STORE_FIELDS',
    'TEXT_FIELDS',
    'StoreRecord',
    'coerce_coordinate',
    'coerce_text',
]


def coerce_coordinate(value: Any) -> Optional[float]:
    """Convert a raw coordinate value to float.

    Numbers and numeric strings become floats. Booleans, NaN/inf, blank
    strings and anything unparsable become None.

    Examples:
        >>> coerce_coordinate('48.85')
        48.85
        >>> coerce_coordinate('') is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_text(value: Any) -> str:
    """Convert a raw field value to a stripped string ('' when absent)."""
    if value is None or isinstance(value, (dict, list)):
        return ''
    return str(value).strip()


@dataclass
class StoreRecord:
    """Canonical store record.

    Text fields are always strings (empty when absent); coordinates are
    floats or None. ``source`` is one of the tags in constants.SOURCES.
    """
    name: str = ''
    address: str = ''
    city: str = ''
    state: str = ''
    country: str = ''
    postal_code: str = ''
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: str = ''
    email: str = ''
    url: str = ''
    source: str = ''

    @classmethod
    def from_raw(cls, data: Dict[str, Any], source: str = None) -> 'StoreRecord':
        """Build a record from a loosely-typed dict, ignoring unknown keys.

        Args:
            data: Raw field values keyed by canonical field name
            source: Source tag overriding any ``source`` key in ``data``

        Returns:
            StoreRecord with coerced text and coordinate values
        """
        values = {}
        for name in TEXT_FIELDS:
            values[name] = coerce_text(data.get(name))
        for name in COORDINATE_FIELDS:
            values[name] = coerce_coordinate(data.get(name))
        if source is not None:
            values['source'] = source
        return cls(**values)

    def has_identity(self) -> bool:
        """True when the record has a non-empty name or address."""
        return bool(self.name or self.address)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict in canonical field order."""
        return asdict(self)


STORE_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(StoreRecord))
COORDINATE_FIELDS: Tuple[str, ...] = ('latitude', 'longitude')
TEXT_FIELDS: Tuple[str, ...] = tuple(f for f in STORE_FIELDS if f not in COORDINATE_FIELDS)
