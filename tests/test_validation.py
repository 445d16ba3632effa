"""Tests for entity batch validation"""

import pytest

from src.shared.constants import VALIDATION
from src.shared.exceptions import EntityValidationError
from src.shared.validation import CITY_INPUT_FIELDS, validate_record, validate_records


class TestValidateRecord:
    """Single record checks"""

    def test_valid_city(self):
        result = validate_record('city', {'city': 'Los Angeles', 'state_short': 'CA', 'country_short': 'US'})
        assert result.is_valid
        assert result.errors == []

    def test_missing_fields(self):
        result = validate_record('state', {'state_short': 'CA', 'state': ' '})
        assert not result.is_valid
        assert result.errors == [
            "Missing required field: state",
            "Missing required field: country_short",
        ]

    def test_city_input_needs_state_name(self):
        record = {'city': 'Reno', 'state_short': 'NV', 'country_short': 'US'}
        assert validate_record('city', record).is_valid
        result = validate_record('city', record, CITY_INPUT_FIELDS)
        assert result.errors == ["Missing required field: state"]

    def test_bad_country_code(self):
        result = validate_record('zip', {'zip': '90001', 'country_short': 'U1'})
        assert result.errors == ["Invalid country code: 'U1'"]

    def test_non_string_value(self):
        assert not validate_record('query', {'query': 42}).is_valid

    def test_non_mapping(self):
        result = validate_record('query', 'Realtor')
        assert result.errors == ["Expected a mapping, got str"]

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            validate_record('planet', {})


class TestValidateRecords:
    """Batch checks"""

    def test_valid_batch(self):
        validate_records('country', [{'country_short': 'US', 'country': 'United States'}])

    def test_reports_every_problem(self):
        with pytest.raises(EntityValidationError) as exc_info:
            validate_records('query', [{'query': 'ok'}, {'query': ''}, {}])
        assert exc_info.value.problems == [
            "query #1: Missing required field: query",
            "query #2: Missing required field: query",
        ]

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_records('zip', [{}])

    def test_long_message_truncated(self):
        batch = [{}] * (VALIDATION.ERROR_LOG_LIMIT + 5)
        with pytest.raises(EntityValidationError) as exc_info:
            validate_records('query', batch)
        assert len(exc_info.value.problems) == VALIDATION.ERROR_LOG_LIMIT + 5
        assert "... and 5 more" in str(exc_info.value)
