"""Entity batch validation.

Bulk adds are all-or-nothing: every record in a batch is checked before
anything is written, and a single EntityValidationError describes every
problem found.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from src.shared.constants import VALIDATION
from src.shared.exceptions import EntityValidationError

__all__ = [
    'CITY_INPUT_FIELDS',
    'REQUIRED_FIELDS',
    'ValidationResult',
    'validate_record',
    'validate_records',
]


REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    'country': ('country_short', 'country'),
    'state': ('state_short', 'state', 'country_short'),
    'city': ('city', 'state_short', 'country_short'),
    'zip': ('zip', 'country_short'),
    'query': ('query',),
}

# Cities added by callers name their state too, though only the code is stored
CITY_INPUT_FIELDS: Tuple[str, ...] = ('city', 'state', 'state_short', 'country_short')


class ValidationResult:
    """Result of validating one record.

    Attributes:
        is_valid: True if validation passed (no errors)
        errors: List of error messages
    """

    def __init__(self, is_valid: bool, errors: List[str]):
        self.is_valid = is_valid
        self.errors = errors

    def __repr__(self) -> str:
        return f"ValidationResult(is_valid={self.is_valid}, errors={len(self.errors)})"


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_record(
    kind: str,
    record: Mapping[str, Any],
    required: Optional[Sequence[str]] = None,
) -> ValidationResult:
    """Check one record for its required fields.

    Args:
        kind: Entity kind (country, state, city, zip, query)
        record: Record keyed by attribute name
        required: Fields to require instead of the kind's defaults

    Returns:
        ValidationResult listing missing or malformed fields
    """
    if kind not in REQUIRED_FIELDS:
        raise ValueError(f"Unknown entity kind: {kind}")
    if not isinstance(record, Mapping):
        return ValidationResult(False, [f"Expected a mapping, got {type(record).__name__}"])

    required = tuple(required) if required is not None else REQUIRED_FIELDS[kind]
    errors = [
        f"Missing required field: {name}"
        for name in required
        if _is_blank(record.get(name))
    ]

    country_short = record.get('country_short')
    if 'country_short' in required and not _is_blank(country_short):
        code = country_short.strip()
        if len(code) != VALIDATION.COUNTRY_CODE_LENGTH or not code.isalpha():
            errors.append(f"Invalid country code: {country_short!r}")

    return ValidationResult(len(errors) == 0, errors)


def validate_records(
    kind: str,
    records: Sequence[Mapping[str, Any]],
    required: Optional[Sequence[str]] = None,
) -> None:
    """Validate a whole batch before any write.

    Args:
        kind: Entity kind (country, state, city, zip, query)
        records: Records keyed by attribute name
        required: Fields to require instead of the kind's defaults

    Raises:
        EntityValidationError: If any record is incomplete
    """
    problems = []
    for i, record in enumerate(records):
        result = validate_record(kind, record, required)
        problems.extend(f"{kind} #{i}: {e}" for e in result.errors)

    if not problems:
        return

    shown = problems[:VALIDATION.ERROR_LOG_LIMIT]
    message = f"Rejected {kind} batch of {len(records)}: " + "; ".join(shown)
    if len(problems) > VALIDATION.ERROR_LOG_LIMIT:
        message += f" ... and {len(problems) - VALIDATION.ERROR_LOG_LIMIT} more"
    logging.warning(message)
    raise EntityValidationError(message, problems)
