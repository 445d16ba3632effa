"""Tests for the navigation sequencer"""

import logging
from unittest.mock import patch

import pytest

from src.navigation.entities import City
from src.navigation.models import COMPLETED, NOT_STARTED, InProgress
from src.navigation.sequencer import Sequencer
from src.shared.exceptions import EntityValidationError, SessionStateError, StoreError
from src.store.entity_store import EntityStore


def _complete(sequencer):
    """Finish the current step in one declared page"""
    sequencer.set_pagination(1)
    sequencer.mark_page_done(1)


class TestLosAngelesScenario:
    """Single-city store: US / California / Los Angeles"""

    def test_single_step(self, seeded_store):
        sequencer = Sequencer(seeded_store)
        response = sequencer.init('city-state-country', 'US')

        assert len(sequencer.sequence) == 1
        assert response.nav.to_dict() == {
            'city': 'Los Angeles',
            'state': 'California',
            'state_short': 'CA',
            'country': 'US',
            'country_short': 'US',
        }
        assert response.placeholder == 'Los Angeles'
        assert response.has_next is False
        assert response.index == 0
        assert response.page is NOT_STARTED

    def test_restart_relocates_by_value(self, seeded_store, db_path, caplog):
        Sequencer(seeded_store).init('city-state-country', 'US')

        restarted_store = EntityStore(db_path)
        with caplog.at_level(logging.INFO):
            response = Sequencer(restarted_store).init('city-state-country', 'US')
        restarted_store.close()

        assert response.index == 0
        assert response.placeholder == 'Los Angeles'
        assert any("Restored session" in r.message for r in caplog.records)

    def test_first_init_persists_session(self, seeded_store):
        sequencer = Sequencer(seeded_store)
        sequencer.init('city-state-country', 'US')
        active = sequencer.tracker.get_active()
        assert active.format == 'city-state-country'
        assert active.state_short == 'CA'
        assert active.city_id == seeded_store.get_cities(['US'])[0].id


class TestInit:
    """Initialization and bootstrap"""

    def test_bootstrap_from_location_data(self, make_sequencer):
        sequencer = make_sequencer('city-state-country', 'all')
        assert [s.city for s in sequencer.sequence] == ['Berlin', 'Spandau', 'Los Angeles', 'San Diego', 'Austin']
        assert sequencer.store.count_total() == 2

    def test_bootstrap_marks_rows_internal(self, make_sequencer):
        sequencer = make_sequencer()
        assert not any(c.external for c in sequencer.store.get_countries())

    def test_bootstrap_runs_once(self, make_sequencer, location_file):
        make_sequencer()
        location_file.write_text('{"city_data": {"FR#France": {"IDF##Ile-de-France": ["Paris"]}}}')
        restarted = make_sequencer()
        assert [c.country_short for c in restarted.store.get_countries()] == ['DE', 'US']

    def test_target_country_filter(self, make_sequencer):
        sequencer = make_sequencer('state', 'us')
        assert sequencer.target_country == 'US'
        assert [s.state_short for s in sequencer.sequence] == ['CA', 'TX']

    def test_zip_format(self, make_sequencer):
        sequencer = make_sequencer('zip-country', 'US')
        assert [s.zip for s in sequencer.sequence] == ['73301', '90001']

    def test_empty_store_without_data(self, make_sequencer, caplog):
        with caplog.at_level(logging.WARNING):
            sequencer = make_sequencer(with_data=False)
        assert sequencer.current() is None
        assert sequencer.tracker.get_active() is None
        assert any("no location data source" in r.message for r in caplog.records)

    def test_invalid_format(self, store):
        with pytest.raises(ValueError):
            Sequencer(store).init('town', 'US')

    def test_invalid_target_country(self, store):
        with pytest.raises(ValueError):
            Sequencer(store).init('city', 'USA')

    def test_operations_require_init(self, store):
        sequencer = Sequencer(store)
        with pytest.raises(SessionStateError):
            sequencer.current()
        with pytest.raises(SessionStateError):
            sequencer.advance()


class TestAdvance:
    """Finish-what-you-started advancing"""

    def test_advance_is_noop_until_completed(self, make_sequencer):
        sequencer = make_sequencer()
        before = sequencer.current()
        after = sequencer.advance()
        assert after.index == before.index == 0
        assert after.nav == before.nav
        assert len(sequencer.store.select_where('nav_sessions')) == 1

    def test_advance_noop_with_pages_in_progress(self, make_sequencer):
        sequencer = make_sequencer()
        sequencer.set_pagination(2)
        sequencer.mark_page_done(1)
        assert sequencer.advance().index == 0

    def test_advance_after_completion(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        response = sequencer.advance()
        assert response.index == 1
        assert response.nav.city == 'Spandau'
        assert response.page is NOT_STARTED
        assert sequencer.tracker.get_active().city_id == response.nav.refs.city_id

    def test_advance_marks_finished_step_used(self, make_sequencer):
        sequencer = make_sequencer()
        store = sequencer.store
        _complete(sequencer)
        sequencer.advance()

        used_cities = {c.city for c in store.get_cities(['DE']) if c.used}
        assert used_cities == {'Berlin'}
        assert store.get_countries('DE')[0].used
        assert store.get_states(['DE'])[0].used

    def test_has_next(self, make_sequencer):
        sequencer = make_sequencer('state', 'US')
        assert sequencer.current().has_next is True
        _complete(sequencer)
        assert sequencer.advance().has_next is False

    def test_exhaustion(self, make_sequencer, caplog):
        sequencer = make_sequencer('state', 'US')
        _complete(sequencer)
        sequencer.advance()
        _complete(sequencer)
        with caplog.at_level(logging.INFO):
            assert sequencer.advance() is None
        assert sequencer.is_exhausted
        assert sequencer.current() is None
        assert sequencer.advance() is None
        assert sequencer.tracker.get_active() is None
        assert any("Sequence exhausted" in r.message for r in caplog.records)

    def test_advance_is_atomic(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        with patch.object(sequencer.tracker, 'save', side_effect=StoreError("disk full")):
            with pytest.raises(StoreError):
                sequencer.advance()
        assert sequencer.current_index == 0
        assert not sequencer.store.get_countries('DE')[0].used


class TestPagination:
    """Page tracking and auto-completion"""

    def test_set_pagination(self, make_sequencer):
        sequencer = make_sequencer()
        response = sequencer.set_pagination(3)
        assert response.page == InProgress(total=3)
        assert sequencer.tracker.get_active().page == '{"pages": [], "total": 3}'

    def test_pages_complete_in_any_order(self, make_sequencer, caplog):
        sequencer = make_sequencer()
        sequencer.set_pagination(3)
        sequencer.mark_page_done(3)
        sequencer.mark_page_done(1)
        with caplog.at_level(logging.INFO):
            response = sequencer.mark_page_done(2)

        assert response.page is COMPLETED
        assert sequencer.tracker.get_active() is None
        latest = sequencer.tracker.get_latest()
        assert latest.completed and latest.page == 'completed'
        assert sum("Step 0 completed" in r.message for r in caplog.records) == 1

    def test_marking_page_twice_is_noop(self, make_sequencer):
        sequencer = make_sequencer()
        sequencer.set_pagination(3)
        sequencer.mark_page_done(2)
        blob = sequencer.tracker.get_active().page
        with patch.object(sequencer.tracker, 'update') as mock_update:
            response = sequencer.mark_page_done(2)
        mock_update.assert_not_called()
        assert response.page == InProgress(pages=(2,), total=3)
        assert sequencer.tracker.get_active().page == blob

    def test_marking_completed_step_is_noop(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        assert sequencer.mark_page_done(1).page is COMPLETED

    def test_set_pagination_with_done_pages(self, make_sequencer):
        sequencer = make_sequencer()
        assert sequencer.set_pagination(3, [1, 2]).page == InProgress(pages=(1, 2), total=3)
        assert sequencer.set_pagination(2, [1, 2]).page is COMPLETED

    def test_set_pagination_keeps_marked_pages(self, make_sequencer):
        sequencer = make_sequencer()
        sequencer.set_pagination(3)
        sequencer.mark_page_done(1)
        assert sequencer.set_pagination(4).page == InProgress(pages=(1,), total=4)

    def test_page_outside_total(self, make_sequencer):
        sequencer = make_sequencer()
        sequencer.set_pagination(3)
        with pytest.raises(ValueError):
            sequencer.mark_page_done(4)
        with pytest.raises(ValueError):
            sequencer.mark_page_done(0)

    def test_non_positive_total(self, make_sequencer):
        sequencer = make_sequencer()
        with pytest.raises(ValueError):
            sequencer.set_pagination(0)

    def test_mark_page_without_pagination(self, make_sequencer):
        sequencer = make_sequencer()
        with pytest.raises(SessionStateError):
            sequencer.mark_page_done(1)

    def test_set_pagination_on_completed_step(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        with pytest.raises(SessionStateError):
            sequencer.set_pagination(5)

    def test_pagination_after_exhaustion(self, make_sequencer):
        sequencer = make_sequencer('state', 'DE')
        _complete(sequencer)
        sequencer.advance()
        with pytest.raises(SessionStateError):
            sequencer.set_pagination(1)


class TestRestore:
    """Resuming across process restarts"""

    def test_resumes_mid_sequence_with_pages(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        sequencer.advance()
        _complete(sequencer)
        sequencer.advance()
        sequencer.set_pagination(4, [1, 3])

        restarted = make_sequencer()
        response = restarted.current()
        assert response.index == 2
        assert response.nav.city == 'Los Angeles'
        assert response.page == InProgress(pages=(1, 3), total=4)

    def test_resumes_on_completed_step(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)

        restarted = make_sequencer()
        assert restarted.current().index == 0
        assert restarted.current().page is COMPLETED
        assert restarted.advance().index == 1

    def test_restart_after_exhaustion_stays_on_last_step(self, make_sequencer):
        sequencer = make_sequencer('state', 'DE')
        _complete(sequencer)
        sequencer.advance()

        response = make_sequencer('state', 'DE').current()
        assert response.index == 0
        assert response.has_next is False
        assert response.page is COMPLETED

    def test_relocates_when_entities_grew(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        sequencer.advance()
        # A city sorting before the cursor shifts its index
        sequencer.store.add_cities([City('Adlershof', 'BE', 'DE')])
        restarted = make_sequencer()
        assert restarted.current().nav.city == 'Spandau'
        assert restarted.current().index == 2

    def test_falls_back_to_first_step(self, make_sequencer, caplog):
        sequencer = make_sequencer()
        _complete(sequencer)
        sequencer.advance()
        spandau = sequencer.tracker.get_active().city_id
        sequencer.store.delete_where('cities', id=spandau)

        with caplog.at_level(logging.WARNING):
            restarted = make_sequencer()
        assert restarted.current().index == 0
        assert restarted.current().nav.city == 'Berlin'
        assert any("no longer matches" in r.message for r in caplog.records)

        active = restarted.tracker.get_active()
        assert active.city_id == restarted.sequence[0].refs.city_id
        assert active.page is None

    def test_fallback_repoints_session_format(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        sequencer.advance()
        spandau = sequencer.tracker.get_active().city_id
        sequencer.store.delete_where('cities', id=spandau)

        restarted = make_sequencer('city', 'all')
        assert restarted.current().index == 0
        active = restarted.tracker.get_active()
        assert active.format == 'city'
        assert active.city_id == restarted.sequence[0].refs.city_id

    def test_relocates_under_another_format(self, make_sequencer):
        sequencer = make_sequencer('city-state-country', 'US')
        assert sequencer.current().nav.city == 'Los Angeles'

        restarted = make_sequencer('city', 'all')
        assert restarted.current().nav.city == 'Los Angeles'
        assert restarted.current().index == 2

    def test_inconsistent_completed_blob_is_repaired(self, make_sequencer):
        sequencer = make_sequencer()
        active = sequencer.tracker.get_active()
        sequencer.tracker.update(active.id, page='completed')

        restarted = make_sequencer()
        assert restarted.current().page is COMPLETED
        assert restarted.advance().index == 1


class TestEntityMutations:
    """Adds and clears re-expand and re-locate the cursor"""

    def test_add_queries_grows_sequence_by_unit_count(self, make_sequencer):
        sequencer = make_sequencer('query-city-state', 'US')
        assert sequencer.sequence == ()
        assert sequencer.current() is None

        assert sequencer.add_queries(['Plumber']) == 1
        assert len(sequencer.sequence) == 3
        assert sequencer.current().placeholder == 'Plumber##Los Angeles'

        _complete(sequencer)
        sequencer.advance()
        assert sequencer.current().nav.city == 'San Diego'

        sequencer.add_queries(['Realtor'])
        assert len(sequencer.sequence) == 6
        assert sequencer.current().index == 1
        assert sequencer.current().nav.query == 'Plumber'

        la = next(c for c in sequencer.store.get_cities(['US']) if c.city == 'Los Angeles')
        assert la.used
        assert next(q for q in sequencer.store.get_queries() if q.query == 'Plumber').used

    def test_cursor_follows_its_step(self, make_sequencer):
        sequencer = make_sequencer('query-city-state', 'all')
        sequencer.add_query('Plumber')
        for _ in range(2):
            _complete(sequencer)
            sequencer.advance()
        assert sequencer.current().placeholder == 'Plumber##Los Angeles'
        assert sequencer.current_index == 2

        sequencer.add_query('Realtor')
        assert sequencer.current().placeholder == 'Plumber##Los Angeles'
        assert sequencer.current_index == 4

    def test_duplicate_queries_not_added(self, make_sequencer):
        sequencer = make_sequencer('query', 'US')
        sequencer.add_queries(['Realtor'])
        assert sequencer.add_queries(['Realtor', ' Realtor ']) == 0

    def test_blank_query_rejected(self, make_sequencer):
        sequencer = make_sequencer('query', 'US')
        with pytest.raises(EntityValidationError):
            sequencer.add_queries(['Realtor', ''])
        assert sequencer.store.get_queries() == []

    def test_clear_queries(self, make_sequencer, caplog):
        sequencer = make_sequencer('query-state', 'US')
        sequencer.add_queries(['Realtor', 'Plumber'])
        with caplog.at_level(logging.WARNING):
            assert sequencer.clear_queries() == 2
        assert sequencer.sequence == ()
        assert sequencer.current() is None

    def test_add_cities(self, make_sequencer):
        sequencer = make_sequencer('city-state', 'US')
        _complete(sequencer)
        sequencer.advance()
        assert sequencer.current().nav.city == 'San Diego'

        added = sequencer.add_cities([
            {'city': ' Fresno ', 'state': 'California', 'state_short': 'CA', 'country_short': 'us'},
        ])
        assert added == 1
        assert [s.city for s in sequencer.sequence] == ['Fresno', 'Los Angeles', 'San Diego', 'Austin']
        assert sequencer.current().nav.city == 'San Diego'
        assert sequencer.current_index == 2
        assert all(c.external for c in sequencer.store.get_cities(['US']) if c.city == 'Fresno')

    def test_add_cities_rejects_incomplete_batch(self, make_sequencer):
        sequencer = make_sequencer('city', 'US')
        with pytest.raises(EntityValidationError) as exc_info:
            sequencer.add_cities([
                {'city': 'Fresno', 'state': 'California', 'state_short': 'CA', 'country_short': 'US'},
                {'city': 'Nowhere', 'country_short': 'US'},
                {'city': 'Fresno', 'state_short': 'CA', 'country_short': 'US'},
            ])
        assert exc_info.value.problems == [
            "city #1: Missing required field: state",
            "city #1: Missing required field: state_short",
            "city #2: Missing required field: state",
        ]
        assert len(sequencer.sequence) == 3

    def test_add_cities_with_unknown_state(self, make_sequencer):
        sequencer = make_sequencer('city', 'US')
        added = sequencer.add_cities([{'city': 'Reno', 'state': 'Nevada', 'state_short': 'NV', 'country_short': 'US'}])
        assert added == 1
        assert len(sequencer.sequence) == 4
        assert 'Reno' in [s.city for s in sequencer.sequence]

        # Formats naming the state have nothing to resolve Reno against
        restarted = make_sequencer('city-state', 'US')
        assert [s.city for s in restarted.sequence] == ['Los Angeles', 'San Diego', 'Austin']

    def test_new_steps_after_exhaustion_are_reachable(self, make_sequencer):
        sequencer = make_sequencer('query-state', 'US')
        sequencer.add_queries(['Plumber'])
        _complete(sequencer)
        sequencer.advance()
        _complete(sequencer)
        assert sequencer.advance() is None
        assert sequencer.is_exhausted

        sequencer.add_queries(['Realtor'])
        assert not sequencer.is_exhausted
        response = sequencer.current()
        assert response.page is COMPLETED
        assert response.placeholder == 'Plumber##Texas'

        response = sequencer.advance()
        assert response.placeholder == 'Realtor##California'
        assert response.page is NOT_STARTED

    def test_exhausted_stays_exhausted_without_new_steps(self, make_sequencer):
        sequencer = make_sequencer('query-state', 'US')
        sequencer.add_queries(['Plumber'])
        for _ in range(2):
            _complete(sequencer)
            sequencer.advance()
        sequencer.add_queries(['Plumber'])
        assert sequencer.is_exhausted
        assert sequencer.current() is None

    def test_add_country_state_and_zips(self, make_sequencer):
        sequencer = make_sequencer('zip', 'all')
        sequencer.add_countries([{'country_short': 'FR', 'country': 'France'}])
        sequencer.add_states([{'state_short': 'IDF', 'state': 'Ile-de-France', 'country_short': 'FR'}])
        sequencer.add_zips([{'zip': '75001', 'country_short': 'FR'}])
        assert [s.zip for s in sequencer.sequence] == ['10115', '75001', '73301', '90001']
        assert sequencer.current().index == 0

    def test_first_entities_start_a_session(self, make_sequencer):
        sequencer = make_sequencer('state', 'all', with_data=False)
        assert sequencer.current() is None
        sequencer.add_countries([{'country_short': 'US', 'country': 'United States'}])
        sequencer.add_states([{'state_short': 'CA', 'state': 'California', 'country_short': 'US'}])
        assert sequencer.current().nav.state == 'California'
        assert sequencer.tracker.get_active() is not None


class TestResets:
    """Navigation and full resets"""

    def test_reset_nav_keeps_usage(self, make_sequencer):
        sequencer = make_sequencer()
        _complete(sequencer)
        sequencer.advance()

        response = sequencer.reset_nav()
        assert response.index == 0
        assert response.page is NOT_STARTED
        assert len(sequencer.store.select_where('nav_sessions')) == 1
        assert sequencer.store.get_countries('DE')[0].used

    def test_reset_all_clears_usage(self, make_sequencer):
        sequencer = make_sequencer('state', 'DE')
        _complete(sequencer)
        sequencer.advance()
        assert sequencer.is_exhausted

        response = sequencer.reset_all()
        assert response.index == 0
        assert not sequencer.is_exhausted
        assert not sequencer.store.get_countries('DE')[0].used
        assert sequencer.tracker.get_active() is not None

    def test_debug_info(self, make_sequencer):
        sequencer = make_sequencer('city', 'US')
        sequencer.set_pagination(2)
        info = sequencer.debug_info()
        assert info['format'] == 'city'
        assert info['target_country'] == 'US'
        assert info['index'] == 0
        assert info['sequence_length'] == 3
        assert info['page'] == {'pages': [], 'total': 2}
        assert info['entities']['cities'] == 3
