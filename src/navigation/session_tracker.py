"""Persisted navigation session.

At most one session row may be active (not completed) at a time. A session
is created when a step starts, mutated in place while its pages are
consumed, and left behind once completed; the next step gets a new row.
"""

import logging
from typing import Any, Dict, Optional

from src.navigation.entities import NavSession
from src.navigation.models import StepRefs
from src.shared.exceptions import SessionStateError
from src.store.entity_store import EntityStore

__all__ = [
    'SessionTracker',
]


_UPDATABLE = frozenset({
    'page', 'completed', 'format', 'query_id', 'zip_id', 'city_id', 'state_short', 'country_short',
})


class SessionTracker:
    """Session rows on top of the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def get_active(self) -> Optional[NavSession]:
        """Return the session that is not completed, if any."""
        active = self.store.select_where('nav_sessions', completed=False)
        if len(active) > 1:
            # Only reachable if something else wrote to the table
            logging.warning(f"Found {len(active)} active sessions, using the oldest (id={active[0].id})")
        return active[0] if active else None

    def get_latest(self) -> Optional[NavSession]:
        """Return the most recently written session, completed or not."""
        latest = self.store.select_where('nav_sessions', order_by=['-id'], limit=1)
        return latest[0] if latest else None

    def save(self, nav_session: NavSession) -> NavSession:
        """Persist a new session.

        Raises:
            SessionStateError: If an active session already exists and the
                new one is not completed
        """
        with self.store.unit_of_work():
            if not nav_session.completed:
                current = self.get_active()
                if current is not None:
                    raise SessionStateError(
                        f"Cannot start a new session while session {current.id} is active"
                    )
            saved = self.store.insert_session(nav_session)
        logging.info(f"Started session {saved.id} ({saved.format}, {saved.country_short})")
        return saved

    def update(self, session_id: int, **values: Any) -> None:
        """Change selected fields of an existing session.

        Raises:
            ValueError: If a field cannot be updated
            SessionStateError: If no session has that id
        """
        unknown = set(values) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        matched = self.store.update_fields('nav_sessions', {'id': session_id}, values)
        if not matched:
            raise SessionStateError(f"Session {session_id} does not exist")
        logging.debug(f"Updated session {session_id}: {sorted(values)}")

    def reset(self) -> int:
        """Delete every session row."""
        deleted = self.store.delete_all('nav_sessions')
        logging.info(f"Deleted {deleted} sessions")
        return deleted

    def mark_used(self, refs: StepRefs) -> None:
        """Flag the entities behind a step as consumed."""
        updates: Dict[str, Dict[str, Any]] = {
            'countries': {'country_short': refs.country_short},
        }
        if refs.query_id is not None:
            updates['queries'] = {'id': refs.query_id}
        if refs.zip_id is not None:
            updates['zips'] = {'id': refs.zip_id}
        if refs.city_id is not None:
            updates['cities'] = {'id': refs.city_id}
        if refs.state_short is not None:
            updates['states'] = {'state_short': refs.state_short, 'country_short': refs.country_short}

        with self.store.unit_of_work():
            for table, key in updates.items():
                self.store.update_fields(table, key, {'used': True})

    @staticmethod
    def session_for(nav_format: str, refs: StepRefs, page: Optional[str] = None) -> NavSession:
        """Build an unsaved session row for a step."""
        return NavSession(
            format=nav_format,
            country_short=refs.country_short,
            query_id=refs.query_id,
            zip_id=refs.zip_id,
            city_id=refs.city_id,
            state_short=refs.state_short,
            page=page,
            completed=False,
            external=True,
        )
