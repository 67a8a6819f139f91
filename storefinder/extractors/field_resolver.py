"""Resolve field descriptors against parsed elements and JSON objects.

Two descriptor languages are supported:

* element descriptors: ``"<css selector>"`` reads the stripped text of the
  first match, ``"<css selector>@<attribute>"`` reads an attribute of the
  first match (an empty selector before ``@`` means the element itself);
* path descriptors: dotted paths such as ``"address.city"`` or
  ``"results.0.geo.lat"`` walked through nested dicts and lists.

Neither resolver raises; every failure resolves to an empty string.
"""

import logging
from typing import Any, Optional, Tuple

from bs4.element import Tag

__all__ = [
    'resolve_element_field',
    'resolve_path',
    'split_descriptor',
]


def split_descriptor(descriptor: str) -> Tuple[str, Optional[str]]:
    """Split an element descriptor into (selector, attribute).

    The split happens on the last ``@`` so that selectors containing ``@``
    inside attribute values keep working.

    Examples:
        >>> split_descriptor('a.link@href')
        ('a.link', 'href')
        >>> split_descriptor('@data-lat')
        ('', 'data-lat')
        >>> split_descriptor('.name')
        ('.name', None)
    """
    if '@' not in descriptor:
        return descriptor.strip(), None
    selector, _, attribute = descriptor.rpartition('@')
    return selector.strip(), attribute.strip()


def _attribute_value(element: Tag, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        # bs4 returns multi-valued attributes (class, rel) as lists
        return ' '.join(str(v) for v in value).strip()
    return str(value).strip()


def resolve_element_field(element: Tag, descriptor: Optional[str]) -> str:
    """Resolve one field descriptor relative to an element.

    Args:
        element: BeautifulSoup element the descriptor is relative to
        descriptor: ``selector``, ``selector@attribute`` or ``@attribute``

    Returns:
        The resolved text or attribute value, or '' on any failure
    """
    if not descriptor or not isinstance(descriptor, str) or element is None:
        return ''

    selector, attribute = split_descriptor(descriptor)
    try:
        if attribute is not None:
            if not attribute:
                return ''
            target = element.select_one(selector) if selector else element
            if target is None:
                return ''
            return _attribute_value(target, attribute)

        if not selector:
            return ''
        target = element.select_one(selector)
        if target is None:
            return ''
        return target.get_text(' ', strip=True)
    except Exception as e:
        # soupsieve raises SelectorSyntaxError (a ValueError subclass) and
        # occasionally NotImplementedError for unsupported pseudo-classes
        logging.debug(f"Could not resolve field descriptor {descriptor!r}: {e}")
        return ''


def resolve_path(obj: Any, path: Optional[str]) -> Any:
    """Walk a dotted path through nested dicts and lists.

    Numeric segments index into lists. A missing segment, a None or
    non-traversable intermediate value, and a final None all yield ''.

    Args:
        obj: Parsed JSON value
        path: Dotted path, e.g. ``"location.geo.lat"``

    Returns:
        The value at the path, or ''

    Examples:
        >>> resolve_path({'a': {'b': 5}}, 'a.b')
        5
        >>> resolve_path({'a': {'b': 5}}, 'a.c')
        ''
    """
    if not path or not isinstance(path, str):
        return ''

    current = obj
    for segment in path.split('.'):
        if current is None:
            return ''
        if isinstance(current, dict):
            if segment not in current:
                return ''
            current = current[segment]
        elif isinstance(current, list):
            try:
                index = int(segment)
            except ValueError:
                return ''
            if not -len(current) <= index < len(current):
                return ''
            current = current[index]
        else:
            return ''

    return '' if current is None else current
