"""Tests for JSON-LD and inline-script extraction."""

import json

from storefinder.extractors.structured_data import (
    extract_inline_scripts,
    extract_json_ld,
    find_balanced_object,
    find_first_object_array,
)


def _ld_page(*blocks) -> str:
    scripts = ''.join(
        f'<script type="application/ld+json">{block if isinstance(block, str) else json.dumps(block)}</script>'
        for block in blocks
    )
    return f'<html><head>{scripts}</head><body></body></html>'


class TestExtractJsonLd:
    """Tests for extract_json_ld()."""

    def test_local_business_with_postal_address(self):
        html = _ld_page({
            '@context': 'https://schema.org',
            '@type': 'LocalBusiness',
            'name': 'Acme Store',
            'address': {
                '@type': 'PostalAddress',
                'streetAddress': '1 Main St',
                'addressLocality': 'Springfield',
                'addressRegion': 'IL',
                'postalCode': '62701',
                'addressCountry': 'US',
            },
            'geo': {'latitude': '39.78', 'longitude': -89.65},
            'telephone': '555-0100',
            'url': 'https://example.com/springfield',
        })

        stores = extract_json_ld(html)

        assert len(stores) == 1
        store = stores[0]
        assert store['name'] == 'Acme Store'
        assert store['address'] == '1 Main St'
        assert store['city'] == 'Springfield'
        assert store['state'] == 'IL'
        assert store['postal_code'] == '62701'
        assert store['country'] == 'US'
        assert store['latitude'] == 39.78
        assert store['longitude'] == -89.65
        assert store['phone'] == '555-0100'
        assert store['source'] == 'json-ld'

    def test_graph_container_is_expanded(self):
        html = _ld_page({
            '@context': 'https://schema.org',
            '@graph': [
                {'@type': 'WebSite', 'name': 'Acme'},
                {'@type': 'Store', 'name': 'Acme North'},
                {'@type': 'Store', 'name': 'Acme South'},
            ],
        })

        names = [s['name'] for s in extract_json_ld(html)]

        assert names == ['Acme North', 'Acme South']

    def test_top_level_list_and_type_list(self):
        html = _ld_page([
            {'@type': ['Organization', 'LocalBusiness'], 'name': 'Acme Clothing'},
            {'@type': 'Organization', 'name': 'Acme Inc'},
        ])

        stores = extract_json_ld(html)

        assert [s['name'] for s in stores] == ['Acme Clothing']

    def test_country_object_contributes_name(self):
        html = _ld_page({
            '@type': 'Store',
            'name': 'Acme Lyon',
            'address': {'addressCountry': {'@type': 'Country', 'name': 'France'}},
        })

        assert extract_json_ld(html)[0]['country'] == 'France'

    def test_string_address(self):
        html = _ld_page({'@type': 'Store', 'name': 'Acme', 'address': '5 Rue de Rivoli'})

        assert extract_json_ld(html)[0]['address'] == '5 Rue de Rivoli'

    def test_unnamed_entity_needs_address_and_city(self):
        html = _ld_page(
            {'@type': 'Store', 'address': {'streetAddress': '1 Main St', 'addressLocality': 'Springfield'}},
            {'@type': 'Store', 'address': {'streetAddress': '2 Main St'}},
        )

        stores = extract_json_ld(html)

        assert len(stores) == 1
        assert stores[0]['address'] == '1 Main St'

    def test_unparsable_block_is_skipped(self):
        html = _ld_page('{not json', {'@type': 'Store', 'name': 'Acme Valid'})

        stores = extract_json_ld(html)

        assert [s['name'] for s in stores] == ['Acme Valid']

    def test_non_store_types_are_ignored(self):
        html = _ld_page({'@type': 'Product', 'name': 'Widget'})
        assert extract_json_ld(html) == []

    def test_empty_html(self):
        assert extract_json_ld('') == []


class TestFindBalancedObject:
    """Tests for find_balanced_object()."""

    def test_nested_object(self):
        text = 'var x = {"a": {"b": 1}, "c": [1, 2]}; var y = 2;'
        start = text.index('{')

        assert find_balanced_object(text, start) == '{"a": {"b": 1}, "c": [1, 2]}'

    def test_braces_inside_strings_are_ignored(self):
        text = 'x = {"a": "}{", "b": {"c": "{"}} trailing }'

        result = find_balanced_object(text, 4)

        assert result == '{"a": "}{", "b": {"c": "{"}}'
        assert json.loads(result) == {'a': '}{', 'b': {'c': '{'}}

    def test_escaped_quote_does_not_close_string(self):
        text = '{"a": "say \\"}\\" now", "b": 2}'

        result = find_balanced_object(text, 0)

        assert result == text
        assert json.loads(result)['b'] == 2

    def test_truncated_input(self):
        assert find_balanced_object('{"stores": [{"name": "x"}', 0) is None

    def test_start_not_on_brace(self):
        assert find_balanced_object('abc {"a": 1}', 0) is None
        assert find_balanced_object('{}', 5) is None

    def test_result_is_exact_slice(self):
        """The result starts at ``start`` and has balanced braces outside strings."""
        text = 'prefix {"k": "v{", "n": {"m": {}}} suffix'
        start = text.index('{')

        result = find_balanced_object(text, start)

        assert text[start:start + len(result)] == result
        assert result.endswith('}')
        json.loads(result)


class TestFindFirstObjectArray:
    """Tests for find_first_object_array()."""

    def test_top_level_list(self):
        data = [{'name': 'a'}]
        assert find_first_object_array(data) is data

    def test_nested_search(self):
        data = {'meta': {'count': 1}, 'results': {'list': [{'name': 'a'}]}}
        assert find_first_object_array(data) == [{'name': 'a'}]

    def test_skips_scalar_lists(self):
        data = {'ids': [1, 2], 'items': [{'name': 'a'}]}
        assert find_first_object_array(data) == [{'name': 'a'}]

    def test_none_when_absent(self):
        assert find_first_object_array({'a': 1, 'b': []}) is None


class TestExtractInlineScripts:
    """Tests for extract_inline_scripts()."""

    def test_stores_array_with_nested_address(self):
        payload = {
            'stores': [{
                'name': 'Acme Paris',
                'address': {
                    'street1': '1 Rue de Rivoli', 'street2': 'Level 2',
                    'city': 'Paris', 'zipcode': '75001', 'country': 'FR',
                },
                'position': {'lat': 48.86, 'lng': 2.34},
                'phone': '+33 1 00 00 00 00',
                'google_maps_url': 'https://maps.example.com/acme-paris',
            }]
        }
        html = f'<script>window.__DATA__ = {json.dumps(payload)};</script>'

        stores = extract_inline_scripts(html)

        assert len(stores) == 1
        store = stores[0]
        assert store['name'] == 'Acme Paris'
        assert store['address'] == '1 Rue de Rivoli - Level 2'
        assert store['city'] == 'Paris'
        assert store['postal_code'] == '75001'
        assert store['latitude'] == 48.86
        assert store['longitude'] == 2.34
        assert store['url'] == 'https://maps.example.com/acme-paris'
        assert store['source'] == 'inline-script'

    def test_escaped_payload_inside_string_literal(self):
        inner = json.dumps({'stores': [{'name': 'Acme Escaped', 'address': '9 Quay St'}]})
        escaped = inner.replace('"', '\\"')
        html = f'<script>self.__next_f.push([1, "{escaped}"]);</script>'

        stores = extract_inline_scripts(html)

        assert [s['name'] for s in stores] == ['Acme Escaped']

    def test_page_items_fallback(self):
        payload = {'stores': None, 'page': {'items': [{'name': 'Acme Page', 'lat': '1.5', 'lng': '2.5'}]}}
        html = f'<script>var d = {json.dumps(payload)};</script>'

        stores = extract_inline_scripts(html)

        assert stores[0]['name'] == 'Acme Page'
        assert stores[0]['latitude'] == 1.5

    def test_first_object_array_fallback(self):
        payload = {'stores': {'data': {'list': [{'name': 'Acme Deep', 'latitude': 3, 'longitude': 4}]}}}
        html = f'<script>var d = {json.dumps(payload)};</script>'

        stores = extract_inline_scripts(html)

        assert stores[0]['name'] == 'Acme Deep'
        assert stores[0]['longitude'] == 4.0

    def test_truncated_payload_does_not_affect_other_scripts(self):
        good = json.dumps({'stores': [{'name': 'Acme Good'}]})
        html = (
            '<script>var broken = {"stores": [{"name": "Acme Broken"</script>'
            f'<script>var ok = {good};</script>'
        )

        stores = extract_inline_scripts(html)

        assert [s['name'] for s in stores] == ['Acme Good']

    def test_items_without_identity_are_dropped(self):
        payload = {'stores': [{'position': {'lat': 1, 'lng': 2}}, 'garbage', {'name': 'Acme Kept'}]}
        html = f'<script>var d = {json.dumps(payload)};</script>'

        assert [s['name'] for s in extract_inline_scripts(html)] == ['Acme Kept']

    def test_no_marker(self):
        assert extract_inline_scripts('<script>var x = {"a": 1};</script>') == []
