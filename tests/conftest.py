"""Pytest configuration and fixtures for navigator tests"""

import json
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from unittest.mock import Mock

from src.geodata.location_data import LocationDataSource
from src.navigation.entities import City, Country, State, Zip
from src.navigation.sequencer import Sequencer
from src.store.entity_store import EntityStore


@pytest.fixture
def mock_response_factory():
    """Factory for creating mock HTTP responses with various scenarios.

    Usage:
        response = mock_response_factory(status_code=200, json_data=[{"iso2": "US"}])
        response = mock_response_factory(status_code=404, text="Not Found")
        response = mock_response_factory(status_code=200, content=zip_bytes)
    """
    def _create_response(
        status_code: int = 200,
        text: str = "",
        json_data=None,
        content: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ):
        response = Mock()
        response.status_code = status_code
        response.text = text
        response.headers = headers or {}

        if content is not None:
            response.content = content
        else:
            response.content = text.encode('utf-8') if text else b''

        if json_data is not None:
            response.json.return_value = json_data
        else:
            response.json.side_effect = ValueError("No JSON data")

        return response

    return _create_response


@pytest.fixture
def sample_location_data():
    """Small bootstrap dataset: two countries, three states, five cities, zips.

    Also carries one malformed country key and zips for a country that has
    no city data, both of which parsing must skip.
    """
    return {
        'city_data': {
            'US#United States': {
                'CA##California': ['Los Angeles', 'San Diego'],
                'TX##Texas': ['Austin'],
            },
            'DE#Germany': {
                'BE##Berlin': ['Berlin', 'Spandau'],
            },
            'broken-key': {
                'XX##Nowhere': ['Ghost Town'],
            },
        },
        'zip_data': {
            'US': ['90001', '73301'],
            'DE': ['10115'],
            'ZZ': ['00000'],
        },
    }


@pytest.fixture
def location_file(tmp_path, sample_location_data):
    """The sample dataset written to a temporary JSON file"""
    path = tmp_path / 'location_data.json'
    path.write_text(json.dumps(sample_location_data), encoding='utf-8')
    return path


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'navigator.db')


@pytest.fixture
def store(db_path):
    """Empty SQLite-backed entity store in a temporary directory"""
    entity_store = EntityStore(db_path)
    yield entity_store
    entity_store.close()


@pytest.fixture
def seeded_store(store):
    """Store holding the Los Angeles example: US, California, one city, one zip"""
    store.add_countries([Country('US', 'US')])
    store.add_states([State('CA', 'California', 'US')])
    store.add_cities([City('Los Angeles', 'CA', 'US', county='Los Angeles County')])
    store.add_zips([Zip('90001', 'US')])
    return store


@pytest.fixture
def make_sequencer(db_path, location_file):
    """Factory for sequencers over the same database file.

    Each call builds a fresh store and sequencer, which is how a process
    restart looks to the sequencer.

    Usage:
        sequencer = make_sequencer('city-state-country', 'US')
        restarted = make_sequencer('city-state-country', 'US')
    """
    stores = []

    def _create(nav_format: str = 'city-state-country', target: str = 'all', with_data: bool = True):
        entity_store = EntityStore(db_path)
        stores.append(entity_store)
        source = LocationDataSource(location_file) if with_data else None
        sequencer = Sequencer(entity_store, source)
        sequencer.init(nav_format, target)
        return sequencer

    yield _create

    for entity_store in stores:
        entity_store.close()
