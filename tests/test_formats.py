"""Tests for navigation formats"""

import pytest

from src.navigation.formats import FORMAT_FIELDS, NavFormat, parse_format


class TestFormatFields:
    """Field sets selected by each format"""

    def test_every_format_has_a_field_set(self):
        assert set(FORMAT_FIELDS) == set(NavFormat)
        assert len(NavFormat) == 17

    def test_every_format_carries_country(self):
        for nav_format in NavFormat:
            assert 'country' in nav_format.fields

    @pytest.mark.parametrize('nav_format,expected', [
        (NavFormat.ZIP, {'zip', 'country'}),
        (NavFormat.CITY_STATE_COUNTRY, {'city', 'state', 'state_short', 'country', 'country_short'}),
        (NavFormat.QUERY_STATE, {'query', 'state', 'state_short', 'country'}),
        (NavFormat.QUERY_COUNTY, {'query', 'county', 'country'}),
        (NavFormat.QUERY, {'query', 'country'}),
    ])
    def test_field_sets(self, nav_format, expected):
        assert nav_format.fields == expected

    def test_country_variants_add_country_short(self):
        assert NavFormat.ZIP_COUNTRY.fields - NavFormat.ZIP.fields == {'country_short'}
        assert NavFormat.STATE_COUNTRY.fields - NavFormat.STATE.fields == {'country_short'}


class TestFormatProperties:
    """Derived format properties"""

    def test_query_variants(self):
        query_formats = {f for f in NavFormat if f.is_query}
        assert NavFormat.QUERY in query_formats
        assert NavFormat.QUERY_CITY_STATE in query_formats
        assert NavFormat.CITY not in query_formats
        assert all('query' in f.fields for f in query_formats)

    @pytest.mark.parametrize('nav_format,unit', [
        (NavFormat.QUERY_ZIP_COUNTRY, 'zip'),
        (NavFormat.CITY_STATE, 'city'),
        (NavFormat.STATE_COUNTRY, 'state'),
        (NavFormat.COUNTY, 'county'),
        (NavFormat.QUERY, 'country'),
    ])
    def test_unit(self, nav_format, unit):
        assert nav_format.unit == unit

    def test_needs_state(self):
        assert NavFormat.CITY_STATE.needs_state
        assert not NavFormat.CITY.needs_state

    def test_str_is_value(self):
        assert str(NavFormat.QUERY_CITY) == 'query-city'


class TestParseFormat:
    """Format name resolution"""

    def test_parses_name(self):
        assert parse_format('city-state') is NavFormat.CITY_STATE

    def test_normalizes_case_and_whitespace(self):
        assert parse_format('  Query-Zip ') is NavFormat.QUERY_ZIP

    def test_passes_member_through(self):
        assert parse_format(NavFormat.COUNTY) is NavFormat.COUNTY

    def test_unknown_format_lists_valid_ones(self):
        with pytest.raises(ValueError, match="Valid formats: .*city-state-country"):
            parse_format('town')
