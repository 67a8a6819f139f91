"""Record extractors: field resolution, structured payloads and selector patterns"""

from .field_resolver import resolve_element_field, resolve_path
from .pattern_extractor import collect_records, extract_live, extract_static
from .structured_data import (
    extract_inline_scripts,
    extract_json_ld,
    find_balanced_object,
    find_first_object_array,
)

__all__ = [
    'collect_records',
    'extract_inline_scripts',
    'extract_json_ld',
    'extract_live',
    'extract_static',
    'find_balanced_object',
    'find_first_object_array',
    'resolve_element_field',
    'resolve_path',
]
