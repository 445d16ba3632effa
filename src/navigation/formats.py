"""Navigation formats.

A format decides which fields populate every step of the sequence and
whether the geography is crossed with the stored search queries.
"""

from enum import Enum
from typing import Dict, FrozenSet, Union

from src.shared.constants import NAV

__all__ = [
    'FORMAT_FIELDS',
    'NAV_FIELDS',
    'NavFormat',
    'parse_format',
]


# Every field a step may carry, in display order
NAV_FIELDS = (
    'query',
    'zip',
    'city',
    'state',
    'state_short',
    'country',
    'country_short',
    'county',
)


class NavFormat(str, Enum):
    """Enumerated step layouts."""

    ZIP = "zip"
    ZIP_COUNTRY = "zip-country"
    QUERY_ZIP = "query-zip"
    QUERY_ZIP_COUNTRY = "query-zip-country"
    CITY = "city"
    CITY_STATE = "city-state"
    CITY_STATE_COUNTRY = "city-state-country"
    QUERY_CITY = "query-city"
    QUERY_CITY_STATE = "query-city-state"
    QUERY_CITY_STATE_COUNTRY = "query-city-state-country"
    STATE = "state"
    STATE_COUNTRY = "state-country"
    QUERY_STATE = "query-state"
    QUERY_STATE_COUNTRY = "query-state-country"
    QUERY_COUNTY = "query-county"
    QUERY = "query"
    COUNTY = "county"

    @property
    def is_query(self) -> bool:
        """True for variants crossed with every stored query."""
        return self is NavFormat.QUERY or self.value.startswith(NAV.QUERY_PREFIX)

    @property
    def fields(self) -> FrozenSet[str]:
        return FORMAT_FIELDS[self]

    @property
    def needs_state(self) -> bool:
        return 'state' in FORMAT_FIELDS[self]

    @property
    def unit(self) -> str:
        """Geographic unit enumerated per country: zip, city, state, county or country."""
        fields = FORMAT_FIELDS[self]
        if 'zip' in fields:
            return 'zip'
        if 'city' in fields:
            return 'city'
        if 'state' in fields:
            return 'state'
        if 'county' in fields:
            return 'county'
        return 'country'

    def __str__(self) -> str:
        return self.value


_BASE = frozenset({'country'})
_STATE = frozenset({'state', 'state_short'})
_WITH_COUNTRY = frozenset({'country_short'})
_QUERY = frozenset({'query'})

FORMAT_FIELDS: Dict[NavFormat, FrozenSet[str]] = {
    NavFormat.ZIP: _BASE | {'zip'},
    NavFormat.ZIP_COUNTRY: _BASE | {'zip'} | _WITH_COUNTRY,
    NavFormat.QUERY_ZIP: _BASE | _QUERY | {'zip'},
    NavFormat.QUERY_ZIP_COUNTRY: _BASE | _QUERY | {'zip'} | _WITH_COUNTRY,
    NavFormat.CITY: _BASE | {'city'},
    NavFormat.CITY_STATE: _BASE | {'city'} | _STATE,
    NavFormat.CITY_STATE_COUNTRY: _BASE | {'city'} | _STATE | _WITH_COUNTRY,
    NavFormat.QUERY_CITY: _BASE | _QUERY | {'city'},
    NavFormat.QUERY_CITY_STATE: _BASE | _QUERY | {'city'} | _STATE,
    NavFormat.QUERY_CITY_STATE_COUNTRY: _BASE | _QUERY | {'city'} | _STATE | _WITH_COUNTRY,
    NavFormat.STATE: _BASE | _STATE,
    NavFormat.STATE_COUNTRY: _BASE | _STATE | _WITH_COUNTRY,
    NavFormat.QUERY_STATE: _BASE | _QUERY | _STATE,
    NavFormat.QUERY_STATE_COUNTRY: _BASE | _QUERY | _STATE | _WITH_COUNTRY,
    NavFormat.QUERY_COUNTY: _BASE | _QUERY | {'county'},
    NavFormat.QUERY: _BASE | _QUERY,
    NavFormat.COUNTY: _BASE | {'county'},
}


def parse_format(value: Union[str, NavFormat]) -> NavFormat:
    """Resolve a format name.

    Args:
        value: Format name (e.g. "city-state") or NavFormat member

    Returns:
        Matching NavFormat

    Raises:
        ValueError: If the name is not a known format
    """
    if isinstance(value, NavFormat):
        return value
    try:
        return NavFormat(str(value).strip().lower())
    except ValueError:
        valid = ', '.join(f.value for f in NavFormat)
        raise ValueError(f"Unknown navigation format '{value}'. Valid formats: {valid}") from None
