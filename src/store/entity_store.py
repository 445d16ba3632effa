"""Entity store backed by SQLite through SQLAlchemy.

Holds the five entity kinds and the session rows. Every public operation
runs inside a unit of work: a single transaction that is committed on
success and rolled back on failure, with database errors surfaced as
StoreError. Callers that need several operations to land together wrap
them in ``unit_of_work()`` themselves; nested units join the outer one.

Usage:
    store = EntityStore('.navigator.db')
    store.add_countries([Country('US', 'United States')], external=True)
    with store.unit_of_work():
        store.update_fields('countries', {'country_short': 'US'}, {'used': True})
        store.insert_session(NavSession(format='state', country_short='US'))
"""

import logging
from contextlib import contextmanager
from dataclasses import fields as dataclass_fields
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type

from sqlalchemy import delete, func, inspect, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.navigation.entities import City, Country, EntitySet, NavSession, Query, State, Zip
from src.shared.constants import NAV, STORE
from src.shared.exceptions import StoreError
from src.shared.validation import validate_records
from src.store.engine import create_engine
from src.store.models import (
    Base,
    CityRow,
    CountryRow,
    NavSessionRow,
    QueryRow,
    StateRow,
    ZipRow,
)

__all__ = [
    'ENTITY_TABLES',
    'EntityStore',
]


# Table name -> (ORM row class, record class)
_TABLES: Dict[str, Tuple[Type[Base], type]] = {
    'countries': (CountryRow, Country),
    'states': (StateRow, State),
    'cities': (CityRow, City),
    'zips': (ZipRow, Zip),
    'queries': (QueryRow, Query),
    'nav_sessions': (NavSessionRow, NavSession),
}

ENTITY_TABLES = ('countries', 'states', 'cities', 'zips', 'queries')

# Keep executemany batches well under SQLite's bound-parameter limit
_INSERT_CHUNK = 500


def _row_class(table: str) -> Type[Base]:
    try:
        return _TABLES[table][0]
    except KeyError:
        raise ValueError(f"Unknown table: {table}") from None


def _to_record(row: Base, record_cls: type) -> Any:
    return record_cls(**{f.name: getattr(row, f.name) for f in dataclass_fields(record_cls)})


def _column_values(row_cls: Type[Base], values: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate ORM attribute names to table column names for Core inserts."""
    columns = inspect(row_cls).columns
    return {columns[attr].name: value for attr, value in values.items()}


def _filter_clauses(row_cls: Type[Base], filters: Mapping[str, Any]) -> List[Any]:
    clauses = []
    for attr, value in filters.items():
        column = getattr(row_cls, attr)
        if isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(value)))
        elif value is None:
            clauses.append(column.is_(None))
        else:
            clauses.append(column == value)
    return clauses


class EntityStore:
    """SQLite persistence for countries, states, cities, zips, queries and sessions."""

    def __init__(self, db_path: str = STORE.DEFAULT_DB_PATH, echo: bool = False, engine: Optional[Engine] = None):
        """Open (and create if needed) the store.

        Args:
            db_path: SQLite file path, or ":memory:"
            echo: Log SQL statements
            engine: Pre-built engine (overrides db_path)

        Raises:
            StoreError: If the schema cannot be created
        """
        self.db_path = db_path
        self.engine = engine or create_engine(db_path, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._active: Optional[Session] = None

        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to initialize tables in {db_path}: {e}") from e

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Run the enclosed operations in one transaction.

        Yields:
            The ORM session of the transaction

        Raises:
            StoreError: If any database operation fails (after rollback)
        """
        if self._active is not None:
            yield self._active
            return

        session = self._session_factory()
        self._active = session
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logging.error(f"Entity store transaction rolled back: {e}")
            raise StoreError(f"Entity store operation failed: {e}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            self._active = None
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # -------------------------------------------------------------------------
    # Generic operations
    # -------------------------------------------------------------------------

    def insert_if_absent(self, table: str, records: Sequence[Mapping[str, Any]], external: bool) -> int:
        """Bulk insert, ignoring rows that collide with a unique key.

        Args:
            table: Entity table name
            records: Rows keyed by attribute name (ids are ignored)
            external: Value of the ``external`` flag on new rows

        Returns:
            Number of rows actually inserted
        """
        row_cls = _row_class(table)
        rows = []
        for record in records:
            values = {k: v for k, v in record.items() if k not in ('id', 'used', 'external')}
            values['used'] = False
            values['external'] = external
            rows.append(_column_values(row_cls, values))
        if not rows:
            return 0

        stmt = sqlite_insert(row_cls.__table__).on_conflict_do_nothing()
        with self.unit_of_work() as session:
            before = session.scalar(select(func.count()).select_from(row_cls))
            for start in range(0, len(rows), _INSERT_CHUNK):
                session.execute(stmt, rows[start:start + _INSERT_CHUNK])
            after = session.scalar(select(func.count()).select_from(row_cls))

        inserted = after - before
        logging.debug(f"Inserted {inserted}/{len(rows)} rows into {table}")
        return inserted

    def select_where(
        self,
        table: str,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[Any]:
        """Read rows as immutable records.

        Filter values that are lists match with IN; None matches IS NULL.

        Args:
            table: Table name
            order_by: Attribute names to sort by, "-" prefix for descending
                (default: primary key)
            limit: Maximum number of rows
            **filters: Attribute equality filters

        Returns:
            List of entity records
        """
        row_cls, record_cls = _TABLES.get(table, (None, None))
        if row_cls is None:
            raise ValueError(f"Unknown table: {table}")

        stmt = select(row_cls).where(*_filter_clauses(row_cls, filters))
        if order_by:
            stmt = stmt.order_by(*[
                getattr(row_cls, attr[1:]).desc() if attr.startswith("-") else getattr(row_cls, attr)
                for attr in order_by
            ])
        else:
            stmt = stmt.order_by(*inspect(row_cls).primary_key)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.unit_of_work() as session:
            return [_to_record(row, record_cls) for row in session.scalars(stmt)]

    def update_fields(self, table: str, key: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        """Update selected columns of the rows matching ``key``.

        Returns:
            Number of rows matched
        """
        if not values:
            return 0
        row_cls = _row_class(table)
        stmt = (
            update(row_cls)
            .where(*_filter_clauses(row_cls, key))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self.unit_of_work() as session:
            return session.execute(stmt).rowcount

    def delete_where(self, table: str, **filters: Any) -> int:
        """Delete rows matching the filters (all rows when none are given)."""
        row_cls = _row_class(table)
        stmt = delete(row_cls).where(*_filter_clauses(row_cls, filters))
        with self.unit_of_work() as session:
            deleted = session.execute(stmt.execution_options(synchronize_session=False)).rowcount
        logging.debug(f"Deleted {deleted} rows from {table}")
        return deleted

    def delete_all(self, table: str) -> int:
        return self.delete_where(table)

    def count_rows(self, table: str) -> int:
        row_cls = _row_class(table)
        with self.unit_of_work() as session:
            return session.scalar(select(func.count()).select_from(row_cls))

    # -------------------------------------------------------------------------
    # Entity operations
    # -------------------------------------------------------------------------

    def _add(self, table: str, kind: str, records: Iterable[Any], external: bool) -> int:
        rows = [
            {f.name: getattr(r, f.name) for f in dataclass_fields(r)}
            for r in records
        ]
        validate_records(kind, rows)
        return self.insert_if_absent(table, rows, external)

    def add_countries(self, countries: Iterable[Country], external: bool = False) -> int:
        return self._add('countries', 'country', countries, external)

    def add_states(self, states: Iterable[State], external: bool = False) -> int:
        return self._add('states', 'state', states, external)

    def add_cities(self, cities: Iterable[City], external: bool = False) -> int:
        return self._add('cities', 'city', cities, external)

    def add_zips(self, zips: Iterable[Zip], external: bool = False) -> int:
        return self._add('zips', 'zip', zips, external)

    def add_queries(self, queries: Iterable[str], external: bool = True) -> int:
        return self._add('queries', 'query', [Query(query=q) for q in queries], external)

    def get_countries(self, target_country: str = NAV.ALL_COUNTRIES) -> List[Country]:
        if target_country == NAV.ALL_COUNTRIES:
            return self.select_where('countries')
        return self.select_where('countries', country_short=target_country)

    def get_states(self, country_codes: Sequence[str]) -> List[State]:
        if not country_codes:
            return []
        return self.select_where('states', country_short=list(country_codes))

    def get_cities(self, country_codes: Sequence[str]) -> List[City]:
        if not country_codes:
            return []
        return self.select_where('cities', country_short=list(country_codes))

    def get_zips(self, country_codes: Sequence[str]) -> List[Zip]:
        if not country_codes:
            return []
        return self.select_where('zips', country_short=list(country_codes))

    def get_queries(self) -> List[Query]:
        return self.select_where('queries', order_by=['id'])

    def load_entities(self, target_country: str = NAV.ALL_COUNTRIES) -> EntitySet:
        """Read every entity relevant to a target in one transaction."""
        with self.unit_of_work():
            countries = self.get_countries(target_country)
            codes = [c.country_short for c in countries]
            return EntitySet(
                countries=tuple(countries),
                states=tuple(self.get_states(codes)),
                cities=tuple(self.get_cities(codes)),
                zips=tuple(self.get_zips(codes)),
                queries=tuple(self.get_queries()),
            )

    def clear_queries(self) -> int:
        """Delete user-added queries."""
        return self.delete_where('queries', external=True)

    def count_total(self) -> int:
        """Number of stored countries; zero means the store was never seeded."""
        return self.count_rows('countries')

    def reset_usage(self) -> None:
        """Clear every ``used`` flag."""
        with self.unit_of_work():
            for table in ENTITY_TABLES:
                self.update_fields(table, {}, {'used': False})

    # -------------------------------------------------------------------------
    # Session rows
    # -------------------------------------------------------------------------

    def insert_session(self, nav_session: NavSession) -> NavSession:
        """Persist a new session row and return it with its id."""
        values = {f.name: getattr(nav_session, f.name) for f in dataclass_fields(nav_session) if f.name != 'id'}
        with self.unit_of_work() as session:
            row = NavSessionRow(**values)
            session.add(row)
            session.flush()
            return _to_record(row, NavSession)
