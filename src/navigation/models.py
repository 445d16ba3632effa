"""Value objects for navigation steps, pagination and responses."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from src.navigation.formats import NAV_FIELDS, NavFormat, parse_format
from src.shared.constants import NAV

__all__ = [
    'COMPLETED',
    'Completed',
    'InProgress',
    'NOT_STARTED',
    'Nav',
    'NavResponse',
    'NotStarted',
    'PageState',
    'StepRefs',
    'build_placeholder',
]


@dataclass(frozen=True)
class StepRefs:
    """Identities of the entities a step was built from.

    Recorded on the session so the step can be found again by value after a
    restart, and used to flip ``used`` flags once the step is consumed.
    """

    country_short: str
    query_id: Optional[int] = None
    zip_id: Optional[int] = None
    city_id: Optional[int] = None
    state_short: Optional[str] = None


class Nav:
    """One navigation step: a sparse record whose fields are fixed by its format.

    Construction fails unless the populated fields are exactly the format's
    field set, so a step can never carry a field its format does not define.
    Absent fields read as None.

    Example:
        >>> nav = Nav(NavFormat.CITY, {'city': 'Austin', 'country': 'US'})
        >>> nav.city, nav.state
        ('Austin', None)
    """

    __slots__ = ('format', '_values', 'refs')

    def __init__(
        self,
        nav_format: Union[str, NavFormat],
        values: Mapping[str, str],
        refs: Optional[StepRefs] = None,
    ):
        nav_format = parse_format(nav_format)
        expected = nav_format.fields
        given = set(values)
        if given != expected:
            missing = sorted(expected - given)
            extra = sorted(given - expected)
            raise ValueError(
                f"Fields for format '{nav_format}' must be {sorted(expected)} "
                f"(missing: {missing}, unexpected: {extra})"
            )
        blank = [name for name, value in values.items() if not isinstance(value, str) or not value]
        if blank:
            raise ValueError(f"Step fields must be non-empty strings: {sorted(blank)}")

        self.format = nav_format
        self._values = {name: values[name] for name in NAV_FIELDS if name in values}
        self.refs = refs

    def __getattr__(self, name: str) -> Optional[str]:
        if name in NAV_FIELDS:
            return self._values.get(name)
        raise AttributeError(f"'Nav' object has no attribute '{name}'")

    @property
    def fields(self) -> FrozenSet[str]:
        return frozenset(self._values)

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def matches(self, expected: Mapping[str, Optional[str]]) -> bool:
        """Check value equality on the given fields.

        A field this step does not carry matches only an expected value of None.
        """
        return all(self._values.get(name) == value for name, value in expected.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Nav):
            return NotImplemented
        return self.format is other.format and self._values == other._values

    def __hash__(self) -> int:
        return hash((self.format, tuple(self._values.items())))

    def __repr__(self) -> str:
        body = ', '.join(f"{k}={v!r}" for k, v in self._values.items())
        return f"Nav({self.format.value}: {body})"


def build_placeholder(nav: Nav) -> str:
    """Human-readable label for a step.

    The query comes first, followed by the most specific of city, zip, state
    and county.
    """
    parts = []
    if nav.query:
        parts.append(nav.query)
    for name in ('city', 'zip', 'state', 'county'):
        value = nav.get(name)
        if value:
            parts.append(value)
            break

    if not parts:
        return NAV.PLACEHOLDER_UNKNOWN
    return NAV.PLACEHOLDER_SEPARATOR.join(parts)


# =============================================================================
# PAGINATION STATE
# =============================================================================

class PageState:
    """Pagination progress of the current step.

    Exactly one of three states: NOT_STARTED, InProgress(pages, total) or
    COMPLETED. ``to_blob``/``from_blob`` convert to and from the value stored
    on the session row.
    """

    is_started = False
    is_completed = False

    def to_blob(self) -> Optional[str]:
        raise NotImplementedError

    def to_json(self) -> Any:
        raise NotImplementedError

    @staticmethod
    def from_blob(blob: Optional[str]) -> 'PageState':
        """Parse a persisted page blob.

        An unreadable blob is treated as not started.
        """
        if blob is None or blob == "":
            return NOT_STARTED
        if blob == NAV.PAGE_COMPLETED:
            return COMPLETED
        try:
            data = json.loads(blob)
            return InProgress(pages=data.get('pages') or (), total=int(data['total']))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logging.warning(f"Ignoring unreadable page state {blob!r}: {e}")
            return NOT_STARTED


class NotStarted(PageState):

    def to_blob(self) -> Optional[str]:
        return None

    def to_json(self) -> Any:
        return None

    def __repr__(self) -> str:
        return "NOT_STARTED"


class Completed(PageState):
    is_started = True
    is_completed = True

    def to_blob(self) -> Optional[str]:
        return NAV.PAGE_COMPLETED

    def to_json(self) -> Any:
        return NAV.PAGE_COMPLETED

    def __repr__(self) -> str:
        return "COMPLETED"


@dataclass(frozen=True)
class InProgress(PageState):
    """Pages marked done so far out of a declared total.

    Pages are stored sorted and de-duplicated; each must lie in 1..total.
    """

    pages: Tuple[int, ...] = field(default=())
    total: int = 1

    is_started = True

    def __post_init__(self):
        if self.total < 1:
            raise ValueError(f"Total pages must be at least 1, got {self.total}")
        pages = tuple(sorted({int(p) for p in self.pages}))
        out_of_range = [p for p in pages if p < 1 or p > self.total]
        if out_of_range:
            raise ValueError(f"Pages {out_of_range} outside 1..{self.total}")
        object.__setattr__(self, 'pages', pages)

    @property
    def is_done(self) -> bool:
        return len(self.pages) == self.total

    def with_page(self, page: int) -> 'InProgress':
        return InProgress(pages=self.pages + (page,), total=self.total)

    def to_blob(self) -> Optional[str]:
        return json.dumps(self.to_json())

    def to_json(self) -> Any:
        return {'pages': list(self.pages), 'total': self.total}


NOT_STARTED = NotStarted()
COMPLETED = Completed()


# =============================================================================
# RESPONSE
# =============================================================================

@dataclass
class NavResponse:
    """What the consumer sees for the step under the cursor."""

    format: NavFormat
    nav: Nav
    country: str
    placeholder: str
    page: PageState
    has_next: bool
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format': self.format.value,
            'nav': self.nav.to_dict(),
            'country': self.country,
            'placeholder': self.placeholder,
            'page': self.page.to_json(),
            'has_next': self.has_next,
            'index': self.index,
        }
