"""Navigation sequencer.

Owns the expanded step sequence and the cursor over it, and keeps the
cursor durable through the session tracker so a consumer can stop and
restart without repeating or skipping steps.

Step lifecycle:
    NOT_STARTED -> InProgress(pages, total) -> COMPLETED -> advance() -> next step

Usage:
    store = EntityStore('.navigator.db')
    sequencer = Sequencer(store, LocationDataSource('location_data.json'))
    sequencer.init('city-state-country', 'US')

    while (response := sequencer.current()) is not None:
        scrape(response)
        sequencer.set_pagination(total=3)
        for page in (1, 2, 3):
            sequencer.mark_page_done(page)
        sequencer.advance()
"""

import logging
from dataclasses import asdict, fields as dataclass_fields, is_dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from src.geodata.countries import normalize_target_country
from src.geodata.location_data import LocationDataSource, parse_location_data
from src.navigation.entities import City, Country, EntitySet, NavSession, State, Zip
from src.navigation.expander import expand_sequence
from src.navigation.formats import NavFormat, parse_format
from src.navigation.models import (
    COMPLETED,
    NOT_STARTED,
    InProgress,
    Nav,
    NavResponse,
    PageState,
    StepRefs,
    build_placeholder,
)
from src.navigation.session_tracker import SessionTracker
from src.shared.constants import NAV
from src.shared.exceptions import SessionStateError
from src.shared.validation import CITY_INPUT_FIELDS, validate_records
from src.store.entity_store import EntityStore

__all__ = [
    'Sequencer',
]


def _refs_of(nav_session: NavSession) -> StepRefs:
    return StepRefs(
        country_short=nav_session.country_short,
        query_id=nav_session.query_id,
        zip_id=nav_session.zip_id,
        city_id=nav_session.city_id,
        state_short=nav_session.state_short,
    )


def _to_entities(
    kind: str,
    record_cls: type,
    records: Iterable[Any],
    required: Optional[Sequence[str]] = None,
) -> List[Any]:
    """Validate a batch of mappings and build entity records from it.

    Raises:
        EntityValidationError: If any record is missing a required field
    """
    mappings = [asdict(r) if is_dataclass(r) else r for r in records]
    validate_records(kind, mappings, required)

    names = {f.name for f in dataclass_fields(record_cls)} - {'id', 'used', 'external'}
    entities = []
    for mapping in mappings:
        values = {
            name: value.strip() if isinstance(value, str) else value
            for name, value in mapping.items() if name in names
        }
        if 'country_short' in values:
            values['country_short'] = values['country_short'].upper()
        entities.append(record_cls(**values))
    return entities


class Sequencer:
    """Public resume/advance/pagination API over the expanded sequence."""

    def __init__(self, store: EntityStore, data_source: Optional[LocationDataSource] = None):
        """
        Args:
            store: Entity store holding entities and session rows
            data_source: Bootstrap dataset used to seed an empty store
        """
        self.store = store
        self.data_source = data_source
        self.tracker = SessionTracker(store)

        self.format: Optional[NavFormat] = None
        self.target_country: Optional[str] = None

        self._entities = EntitySet()
        self._sequence: List[Nav] = []
        self._index = 0
        self._session: Optional[NavSession] = None
        self._page: PageState = NOT_STARTED
        self._exhausted = False

        self._queries_by_id: Dict[int, str] = {}
        self._zips_by_id: Dict[int, str] = {}
        self._cities_by_id: Dict[int, City] = {}
        self._states_by_key: Dict[Tuple[str, str], str] = {}

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def sequence(self) -> Tuple[Nav, ...]:
        return tuple(self._sequence)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def page_state(self) -> PageState:
        return self._page

    @property
    def is_exhausted(self) -> bool:
        return self._exhausted

    # -------------------------------------------------------------------------
    # Initialization and restore
    # -------------------------------------------------------------------------

    def init(
        self,
        nav_format: Union[str, NavFormat],
        target_country: str = NAV.ALL_COUNTRIES,
    ) -> Optional[NavResponse]:
        """Load entities, expand the sequence and resume from the stored session.

        Seeds the store from the bootstrap data source when it holds no
        countries yet.

        Args:
            nav_format: Format name or NavFormat member
            target_country: ISO2 code or "all"

        Returns:
            Response for the step under the cursor, or None if there is none

        Raises:
            ValueError: If the format or target country is invalid
            StoreError: If the store cannot be read or written
        """
        self.format = parse_format(nav_format)
        self.target_country = normalize_target_country(target_country)
        logging.info(f"Initializing sequencer: format={self.format}, target={self.target_country}")

        if self.store.count_total() == 0:
            self._bootstrap()

        self._reload()
        return self.restore()

    def _bootstrap(self) -> None:
        if self.data_source is None:
            logging.warning("Entity store is empty and no location data source was given")
            return

        data = self.data_source.load()
        if not data.is_populated:
            logging.warning(f"Entity store is empty and {self.data_source.path} has no location data")
            return

        parsed = parse_location_data(data)
        with self.store.unit_of_work():
            countries = self.store.add_countries(parsed.countries)
            states = self.store.add_states(parsed.states)
            cities = self.store.add_cities(parsed.cities)
            zips = self.store.add_zips(parsed.zips)
        logging.info(
            f"Seeded entity store: {countries} countries, {states} states, {cities} cities, {zips} zips"
        )

    def _require_init(self) -> None:
        if self.format is None:
            raise SessionStateError("Sequencer is not initialized; call init() first")

    def _reload(self) -> None:
        """Re-read entities and re-derive the sequence."""
        self._entities = self.store.load_entities(self.target_country)
        self._sequence = expand_sequence(self._entities, self.format)

        self._queries_by_id = {q.id: q.query for q in self._entities.queries}
        self._zips_by_id = {z.id: z.zip for z in self._entities.zips}
        self._cities_by_id = {c.id: c for c in self._entities.cities}
        self._states_by_key = {(s.country_short, s.state_short): s.state for s in self._entities.states}

        if not self._sequence:
            logging.warning(f"No steps for format '{self.format}' and target '{self.target_country}'")
        else:
            logging.info(f"Sequence has {len(self._sequence)} steps")

    def _expected_values(self, nav_session: NavSession) -> Dict[str, Optional[str]]:
        """Field values of the step a session points at, under the active format."""
        city = self._cities_by_id.get(nav_session.city_id) if nav_session.city_id is not None else None
        resolvers = {
            'country': lambda: nav_session.country_short,
            'country_short': lambda: nav_session.country_short,
            'query': lambda: self._queries_by_id.get(nav_session.query_id),
            'zip': lambda: self._zips_by_id.get(nav_session.zip_id),
            'city': lambda: city.city if city else None,
            'county': lambda: city.county if city else None,
            'state': lambda: self._states_by_key.get((nav_session.country_short, nav_session.state_short)),
            'state_short': lambda: nav_session.state_short,
        }
        return {name: resolvers[name]() for name in self.format.fields}

    def _locate(self, nav_session: NavSession) -> Optional[int]:
        """Find a session's step by value equality; stored indices are never trusted."""
        expected = self._expected_values(nav_session)
        if any(value is None for value in expected.values()):
            return None
        for i, nav in enumerate(self._sequence):
            if nav.matches(expected):
                return i
        return None

    def _new_session(self, index: int) -> Optional[NavSession]:
        """Persist a fresh session for a step; None past the end of the sequence."""
        if index >= len(self._sequence):
            return None
        nav = self._sequence[index]
        return self.tracker.save(SessionTracker.session_for(self.format.value, nav.refs))

    def _place(self, index: int, nav_session: Optional[NavSession]) -> None:
        self._index = index
        self._session = nav_session
        self._page = NOT_STARTED
        self._exhausted = False

    def _start(self, index: int) -> None:
        """Put the cursor on a step and persist a fresh session for it."""
        self._place(index, self._new_session(index))

    def restore(self) -> Optional[NavResponse]:
        """Re-locate the cursor from the stored session.

        An active session is found again by value. If it no longer matches
        any step the cursor falls back to step 0 and the session is re-pointed
        there. Without an active session, the most recently completed session
        is located so the cursor sits on that finished step; with no session
        at all the walk starts at step 0.
        """
        self._require_init()
        self._exhausted = False

        active = self.tracker.get_active()
        if active is not None:
            index = self._locate(active)
            if index is not None:
                self._index = index
                self._session = active
                self._page = PageState.from_blob(active.page)
                if self._page.is_completed:
                    # Page blob says completed but the flag was never set
                    self.tracker.update(active.id, completed=True)
                    self._session = replace(active, completed=True)
                logging.info(f"Restored session {active.id} at step {index}")
                return self.current()

            self._index = 0
            self._page = NOT_STARTED
            if not self._sequence:
                self._session = active
                logging.warning(f"Session {active.id} cannot be restored: sequence is empty")
                return None

            refs = self._sequence[0].refs
            self.tracker.update(
                active.id,
                country_short=refs.country_short,
                query_id=refs.query_id,
                zip_id=refs.zip_id,
                city_id=refs.city_id,
                state_short=refs.state_short,
                format=self.format.value,
                page=None,
            )
            self._session = replace(
                active,
                country_short=refs.country_short,
                query_id=refs.query_id,
                zip_id=refs.zip_id,
                city_id=refs.city_id,
                state_short=refs.state_short,
                format=self.format.value,
                page=None,
            )
            logging.warning(f"Session {active.id} no longer matches any step; restarting at step 0")
            return self.current()

        if not self._sequence:
            self._index = 0
            self._session = None
            self._page = NOT_STARTED
            return None

        latest = self.tracker.get_latest()
        if latest is not None:
            index = self._locate(latest)
            if index is not None:
                self._index = index
                self._session = latest
                self._page = COMPLETED
                logging.info(f"Resuming after completed step {index} (session {latest.id})")
                return self.current()
            logging.warning(f"Last session {latest.id} no longer matches any step; starting at step 0")

        self._start(0)
        return self.current()

    # -------------------------------------------------------------------------
    # Cursor
    # -------------------------------------------------------------------------

    def current(self) -> Optional[NavResponse]:
        """Response for the step under the cursor, or None when there is none."""
        self._require_init()
        if self._exhausted or self._index >= len(self._sequence):
            return None

        nav = self._sequence[self._index]
        return NavResponse(
            format=self.format,
            nav=nav,
            country=nav.country,
            placeholder=build_placeholder(nav),
            page=self._page,
            has_next=self._index < len(self._sequence) - 1,
            index=self._index,
        )

    def advance(self) -> Optional[NavResponse]:
        """Move to the next step once the current one is completed.

        While the current step is not completed this is a no-op returning the
        same step. Otherwise the finished step's entities are marked used and
        the next step's session is saved in one transaction.

        Returns:
            Response for the new current step, or None once the sequence is
            exhausted
        """
        self._require_init()
        if self._exhausted or self._session is None:
            return None

        if not self._session.completed:
            logging.debug(f"Step {self._index} not completed; staying put")
            return self.current()

        next_index = self._index + 1
        with self.store.unit_of_work():
            self.tracker.mark_used(_refs_of(self._session))
            next_session = self._new_session(next_index)

        self._place(next_index, next_session)
        if next_session is None:
            self._index = len(self._sequence)
            self._exhausted = True
            logging.info("Sequence exhausted")
            return None

        logging.info(f"Advanced to step {self._index}/{len(self._sequence) - 1}")
        return self.current()

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def _require_session(self) -> NavSession:
        self._require_init()
        if self._session is None or self._exhausted:
            raise SessionStateError("No active step")
        return self._session

    def _save_page(self, page: PageState) -> None:
        nav_session = self._require_session()
        completed = page.is_completed
        self.tracker.update(nav_session.id, page=page.to_blob(), completed=completed)
        self._session = replace(nav_session, page=page.to_blob(), completed=completed)
        self._page = page
        if completed:
            logging.info(f"Step {self._index} completed")

    def set_pagination(self, total: int, pages: Sequence[int] = ()) -> Optional[NavResponse]:
        """Declare the page count of the current step.

        Pages already marked done are kept. Declaring a total that is already
        covered completes the step.

        Raises:
            ValueError: If total < 1 or a page lies outside 1..total
            SessionStateError: If there is no active step or it is completed
        """
        self._require_session()
        if self._page.is_completed:
            raise SessionStateError(f"Step {self._index} is already completed")

        existing = self._page.pages if isinstance(self._page, InProgress) else ()
        state = InProgress(pages=tuple(existing) + tuple(pages), total=total)
        self._save_page(COMPLETED if state.is_done else state)
        logging.debug(f"Pagination for step {self._index}: {state.to_json()}")
        return self.current()

    def mark_page_done(self, page: int) -> Optional[NavResponse]:
        """Record one finished page; finishing the last one completes the step.

        Marking a page twice, or any page of a completed step, changes nothing.

        Raises:
            ValueError: If the page lies outside 1..total
            SessionStateError: If no pagination was declared for the step
        """
        self._require_session()
        if self._page.is_completed:
            return self.current()
        if not isinstance(self._page, InProgress):
            raise SessionStateError(f"Step {self._index} has no pagination; call set_pagination() first")

        if page in self._page.pages:
            return self.current()

        state = self._page.with_page(page)
        self._save_page(COMPLETED if state.is_done else state)
        logging.debug(f"Marked page {page} of step {self._index}")
        return self.current()

    # -------------------------------------------------------------------------
    # Entity mutations
    # -------------------------------------------------------------------------

    def _reopen(self) -> None:
        """Leave the exhausted state when steps now follow the last finished one.

        The cursor goes back onto that finished step so advance() moves on.
        """
        latest = self.tracker.get_latest()
        index = self._locate(latest) if latest is not None else None
        if index is None or index >= len(self._sequence) - 1:
            return

        self._index = index
        self._session = latest
        self._page = COMPLETED
        self._exhausted = False
        logging.info(f"New steps follow completed step {index}; sequence resumed")

    def _refresh(self) -> None:
        """Re-expand after a mutation and re-locate the cursor without writing a session."""
        self._reload()

        if self._exhausted:
            self._reopen()
            return
        if self._session is None:
            if self._sequence:
                self._start(0)
            return

        index = self._locate(self._session)
        if index is None:
            logging.warning(f"Session {self._session.id} no longer matches any step; cursor moved to step 0")
            index = 0
        self._index = index

    def add_queries(self, queries: Iterable[str]) -> int:
        """Add search queries and re-expand.

        Returns:
            Number of queries that were new
        """
        self._require_init()
        queries = list(queries)
        validate_records('query', [{'query': q} for q in queries])
        added = self.store.add_queries([q.strip() for q in queries], external=True)
        logging.info(f"Added {added} of {len(queries)} queries")
        self._refresh()
        return added

    def add_query(self, query: str) -> int:
        return self.add_queries([query])

    def clear_queries(self) -> int:
        """Delete user-added queries and re-expand."""
        self._require_init()
        deleted = self.store.clear_queries()
        logging.info(f"Cleared {deleted} queries")
        self._refresh()
        return deleted

    def _add(
        self,
        kind: str,
        record_cls: type,
        records: Iterable[Mapping[str, Any]],
        required: Optional[Sequence[str]] = None,
    ) -> int:
        self._require_init()
        entities = _to_entities(kind, record_cls, records, required)
        adders = {
            'country': self.store.add_countries,
            'state': self.store.add_states,
            'city': self.store.add_cities,
            'zip': self.store.add_zips,
        }
        added = adders[kind](entities, external=True)
        logging.info(f"Added {added} of {len(entities)} {kind} records")
        self._refresh()
        return added

    def add_countries(self, records: Iterable[Mapping[str, Any]]) -> int:
        return self._add('country', Country, records)

    def add_states(self, records: Iterable[Mapping[str, Any]]) -> int:
        return self._add('state', State, records)

    def add_cities(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Add cities; each record names its state (state and state_short).

        A city whose state is not stored is kept. It shows up in formats
        without a state and is skipped by the others.
        """
        return self._add('city', City, records, CITY_INPUT_FIELDS)

    def add_zips(self, records: Iterable[Mapping[str, Any]]) -> int:
        return self._add('zip', Zip, records)

    # -------------------------------------------------------------------------
    # Resets
    # -------------------------------------------------------------------------

    def reset_nav(self) -> Optional[NavResponse]:
        """Delete every session and restart at step 0; usage flags are kept."""
        self._require_init()
        with self.store.unit_of_work():
            self.tracker.reset()
            first = self._new_session(0)
        self._place(0, first)
        logging.info("Navigation reset")
        return self.current()

    def reset_all(self) -> Optional[NavResponse]:
        """Delete every session, clear usage flags and restart at step 0."""
        self._require_init()
        with self.store.unit_of_work():
            self.tracker.reset()
            self.store.reset_usage()
            self._reload()
            first = self._new_session(0)
        self._place(0, first)
        logging.info("Navigation and usage flags reset")
        return self.current()

    def debug_info(self) -> Dict[str, Any]:
        """Snapshot of the sequencer state for diagnostics."""
        return {
            'format': self.format.value if self.format else None,
            'target_country': self.target_country,
            'index': self._index,
            'sequence_length': len(self._sequence),
            'exhausted': self._exhausted,
            'session_id': self._session.id if self._session else None,
            'page': self._page.to_json(),
            'entities': self._entities.counts(),
        }
