"""Validated value types describing how to extract stores from a target.

The pattern oracle answers with loosely-shaped camelCase JSON. Everything it
returns passes through the ``from_dict`` constructors below before the rest
of the pipeline sees it; invalid parts are dropped rather than trusted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

__all__ = [
    'ApiDescriptor',
    'DISTANCE_UNITS',
    'MAPPED_FIELDS',
    'PATTERN_FIELDS',
    'PatternDescriptor',
    'SEARCH_TYPES',
    'parse_field_mapping',
]


# Fields the pattern oracle may provide element descriptors for
PATTERN_FIELDS = (
    'name', 'address', 'city', 'state', 'country', 'postal_code',
    'phone', 'email', 'url', 'latitude', 'longitude',
)

# Fields the mapping oracle is asked to locate in API records
MAPPED_FIELDS = (
    'name', 'address', 'city', 'state', 'country', 'postal_code',
    'latitude', 'longitude', 'phone', 'email', 'url',
)

SEARCH_TYPES = ('radius', 'bbox')
DISTANCE_UNITS = ('km', 'miles', 'meters')


def _selector(value: Any) -> Optional[str]:
    """Return a stripped selector string, or None for blank/non-string values."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class PatternDescriptor:
    """CSS-selector recipe for extracting store items from a document.

    Attributes:
        item_selector: Selector matching one element per store
        fields: Canonical field name -> element descriptor
            (``selector``, ``selector@attribute`` or ``@attribute``)
        pagination: Opaque pagination hint from the oracle
        show_more_selector: "Show more"/"Load more" button
        search_input_selector: Location search input
        search_button_selector: Location search submit button
        initial_button_selector: Gate (country chooser, modal) to click first
    """
    item_selector: Optional[str] = None
    fields: Dict[str, str] = field(default_factory=dict)
    pagination: Dict[str, Any] = field(default_factory=dict)
    show_more_selector: Optional[str] = None
    search_input_selector: Optional[str] = None
    search_button_selector: Optional[str] = None
    initial_button_selector: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'PatternDescriptor':
        """Build a descriptor from oracle JSON, discarding invalid parts.

        Args:
            data: Parsed oracle answer (camelCase keys, all optional)

        Returns:
            PatternDescriptor; an empty one when ``data`` is not a dict
        """
        if not isinstance(data, dict):
            return cls()

        raw_fields = data.get('fields')
        fields_map = {}
        if isinstance(raw_fields, dict):
            for name, descriptor in raw_fields.items():
                descriptor = _selector(descriptor)
                if descriptor and isinstance(name, str):
                    fields_map[name] = descriptor

        pagination = data.get('pagination')
        return cls(
            item_selector=_selector(data.get('itemSelector')),
            fields=fields_map,
            pagination=pagination if isinstance(pagination, dict) else {},
            show_more_selector=_selector(data.get('showMoreSelector')),
            search_input_selector=_selector(data.get('searchInputSelector')),
            search_button_selector=_selector(data.get('searchButtonSelector')),
            initial_button_selector=_selector(data.get('initialButtonSelector')),
        )

    @classmethod
    def fallback(cls) -> 'PatternDescriptor':
        """Conservative descriptor used when the oracle cannot help."""
        return cls(
            item_selector='[class*="store"], [class*="location"], .store-item',
            fields={
                'name': '[class*="name"], h2, h3, .store-name',
                'address': '[class*="address"], .address-line',
                'city': '[class*="city"]',
                'state': '[class*="state"]',
                'postal_code': '[class*="zip"], [class*="postal"]',
                'phone': '[class*="phone"]',
                'email': 'a[href^="mailto:"]@href',
                'url': 'a[href*="http"]@href',
                'latitude': '@data-lat',
                'longitude': '@data-lng',
            },
            pagination={'type': 'none'},
        )

    @property
    def has_search(self) -> bool:
        return bool(self.search_input_selector and self.search_button_selector)

    def merged_with(self, other: Optional['PatternDescriptor']) -> 'PatternDescriptor':
        """Overlay the non-empty parts of a newer descriptor onto this one."""
        if other is None:
            return self
        return PatternDescriptor(
            item_selector=other.item_selector or self.item_selector,
            fields={**self.fields, **other.fields},
            pagination=other.pagination or self.pagination,
            show_more_selector=other.show_more_selector or self.show_more_selector,
            search_input_selector=other.search_input_selector or self.search_input_selector,
            search_button_selector=other.search_button_selector or self.search_button_selector,
            initial_button_selector=other.initial_button_selector or self.initial_button_selector,
        )


@dataclass(frozen=True)
class ApiDescriptor:
    """Coordinate-parameterized store search API.

    ``api_template`` contains ``{{latitude}}``/``{{longitude}}``/``{{distance}}``
    placeholders for radius searches, or ``{{sw_lat}}``/``{{sw_lng}}``/
    ``{{ne_lat}}``/``{{ne_lng}}`` for bounding-box searches.
    """
    api_template: str
    search_type: str = 'radius'
    distance_unit: str = 'km'
    has_coordinate_api: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> Optional['ApiDescriptor']:
        """Build a descriptor from oracle JSON.

        Returns:
            ApiDescriptor, or None unless ``hasCoordinateAPI`` is true and
            ``apiTemplate`` is a non-empty string
        """
        if not isinstance(data, dict) or data.get('hasCoordinateAPI') is not True:
            return None
        template = _selector(data.get('apiTemplate'))
        if not template:
            return None

        search_type = data.get('searchType')
        if search_type not in SEARCH_TYPES:
            search_type = 'bbox' if '{{sw_lat}}' in template else 'radius'

        distance_unit = data.get('distanceUnit')
        if distance_unit not in DISTANCE_UNITS:
            if distance_unit:
                logging.debug(f"Unknown distance unit {distance_unit!r}, using km")
            distance_unit = 'km'

        return cls(api_template=template, search_type=search_type, distance_unit=distance_unit)


def parse_field_mapping(data: Any) -> Optional[Dict[str, Optional[str]]]:
    """Validate an oracle field mapping.

    Keeps only canonical field names whose path is a non-blank string or
    None. Returns None when nothing usable remains.

    Examples:
        >>> parse_field_mapping({'name': 'title', 'city': None, 'bogus': 'x'})
        {'name': 'title', 'city': None}
    """
    if not isinstance(data, dict):
        return None

    mapping: Dict[str, Optional[str]] = {}
    for name, path in data.items():
        if name not in MAPPED_FIELDS:
            continue
        if path is None:
            mapping[name] = None
        elif isinstance(path, str) and path.strip():
            mapping[name] = path.strip()

    if not any(mapping.values()):
        return None
    return mapping
