"""Entity records read from the entity store.

These are immutable snapshots; the store converts its rows into them so the
expander and sequencer never hold live database objects.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

__all__ = [
    'City',
    'Country',
    'EntitySet',
    'NavSession',
    'Query',
    'State',
    'Zip',
]


@dataclass(frozen=True)
class Country:
    country_short: str
    country: str
    used: bool = False
    external: bool = False


@dataclass(frozen=True)
class State:
    state_short: str
    state: str
    country_short: str
    used: bool = False
    external: bool = False


@dataclass(frozen=True)
class City:
    city: str
    state_short: str
    country_short: str
    county: Optional[str] = None
    id: Optional[int] = None
    used: bool = False
    external: bool = False


@dataclass(frozen=True)
class Zip:
    zip: str
    country_short: str
    id: Optional[int] = None
    used: bool = False
    external: bool = False


@dataclass(frozen=True)
class Query:
    query: str
    id: Optional[int] = None
    used: bool = False
    external: bool = False


@dataclass(frozen=True)
class NavSession:
    """Persisted cursor row.

    Attributes:
        format: Format name the session was written under
        country_short: Country of the step
        query_id: Query behind the step, if the format uses queries
        zip_id: Zip behind the step, if the format uses zips
        city_id: City behind the step (also set for county steps)
        state_short: State behind the step, if the format uses states
        page: Serialized page state (None, JSON blob or "completed")
        completed: True once every declared page was marked done
        external: True when written by the sequencer rather than imported
        id: Row id, None before the row is saved
    """

    format: str
    country_short: str
    query_id: Optional[int] = None
    zip_id: Optional[int] = None
    city_id: Optional[int] = None
    state_short: Optional[str] = None
    page: Optional[str] = None
    completed: bool = False
    external: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class EntitySet:
    """Everything loaded for one target: the input to sequence expansion."""

    countries: Tuple[Country, ...] = ()
    states: Tuple[State, ...] = ()
    cities: Tuple[City, ...] = ()
    zips: Tuple[Zip, ...] = ()
    queries: Tuple[Query, ...] = ()

    def counts(self) -> Dict[str, int]:
        return {
            'countries': len(self.countries),
            'states': len(self.states),
            'cities': len(self.cities),
            'zips': len(self.zips),
            'queries': len(self.queries),
        }
