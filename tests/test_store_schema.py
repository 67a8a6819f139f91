"""
Tests for store_schema.py - canonical record shape and value coercion
"""

import pytest

from storefinder.shared.store_schema import (
    COORDINATE_FIELDS,
    STORE_FIELDS,
    StoreRecord,
    coerce_coordinate,
    coerce_text,
)


class TestCoerceCoordinate:
    """Tests for coerce_coordinate()."""

    @pytest.mark.parametrize('raw,expected', [
        ('48.85', 48.85),
        (' -74.5 ', -74.5),
        (2, 2.0),
        (0, 0.0),
        ('0', 0.0),
    ])
    def test_numeric_values(self, raw, expected):
        assert coerce_coordinate(raw) == expected

    @pytest.mark.parametrize('raw', [None, '', '   ', 'abc', True, float('nan'), float('inf'), {'lat': 1}])
    def test_invalid_values(self, raw):
        assert coerce_coordinate(raw) is None


class TestCoerceText:
    """Tests for coerce_text()."""

    def test_strips_and_stringifies(self):
        assert coerce_text('  Acme  ') == 'Acme'
        assert coerce_text(75001) == '75001'

    def test_containers_and_none_are_empty(self):
        assert coerce_text(None) == ''
        assert coerce_text({'a': 1}) == ''
        assert coerce_text(['a']) == ''


class TestStoreRecord:
    """Tests for StoreRecord."""

    def test_field_order(self):
        assert STORE_FIELDS == (
            'name', 'address', 'city', 'state', 'country', 'postal_code',
            'latitude', 'longitude', 'phone', 'email', 'url', 'source',
        )
        assert COORDINATE_FIELDS == ('latitude', 'longitude')

    def test_from_raw_ignores_unknown_keys(self):
        record = StoreRecord.from_raw({'name': 'Acme', 'rating': 5, 'latitude': '1.5'}, source='html-live')

        assert record.name == 'Acme'
        assert record.latitude == 1.5
        assert record.longitude is None
        assert record.source == 'html-live'
        assert 'rating' not in record.to_dict()

    def test_source_key_kept_without_override(self):
        assert StoreRecord.from_raw({'name': 'Acme', 'source': 'json-ld'}).source == 'json-ld'

    def test_has_identity(self):
        assert StoreRecord(name='Acme').has_identity()
        assert StoreRecord(address='1 Main St').has_identity()
        assert not StoreRecord(city='Springfield').has_identity()
