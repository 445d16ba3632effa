"""Bootstrap location dataset.

The dataset is a JSON file with two mappings:

    {
      "city_data": {"US#United States": {"CA##California": ["Los Angeles", ...]}},
      "zip_data": {"US": ["90001", ...]}
    }

Country keys are ``<ISO2>#<name>`` and state keys ``<code>##<name>``. A key
that does not split into exactly two non-empty parts is skipped.

The source is an explicit object handed to the sequencer, with its own
``load``/``invalidate`` calls, so tests and callers can point it anywhere.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from src.navigation.entities import City, Country, State, Zip
from src.shared.constants import DOWNLOAD, NAV
from src.shared.json_io import read_json

__all__ = [
    'LocationData',
    'LocationDataSource',
    'ParsedLocations',
    'parse_location_data',
    'split_country_key',
    'split_state_key',
]


def _split(key: Any, delimiter: str) -> Optional[Tuple[str, str]]:
    if not isinstance(key, str):
        return None
    parts = key.split(delimiter)
    if len(parts) != 2:
        return None
    code, name = parts[0].strip(), parts[1].strip()
    if not code or not name:
        return None
    return code, name


def split_country_key(key: str) -> Optional[Tuple[str, str]]:
    """Split ``US#United States`` into ``('US', 'United States')``."""
    parsed = _split(key, NAV.COUNTRY_KEY_DELIMITER)
    if parsed is None:
        return None
    return parsed[0].upper(), parsed[1]


def split_state_key(key: str) -> Optional[Tuple[str, str]]:
    """Split ``CA##California`` into ``('CA', 'California')``."""
    return _split(key, NAV.STATE_KEY_DELIMITER)


@dataclass
class LocationData:
    city_data: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    zip_data: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'LocationData':
        """Build from parsed JSON (accepts ``cityData``/``zipData`` keys too)."""
        city_data = data.get('city_data', data.get('cityData')) or {}
        zip_data = data.get('zip_data', data.get('zipData')) or {}
        if not isinstance(city_data, dict) or not isinstance(zip_data, dict):
            raise ValueError("Location data must map city_data and zip_data to objects")
        return cls(city_data=city_data, zip_data=zip_data)

    def to_dict(self) -> Dict[str, Any]:
        return {'city_data': self.city_data, 'zip_data': self.zip_data}

    @property
    def is_populated(self) -> bool:
        return bool(self.city_data) or bool(self.zip_data)


@dataclass
class ParsedLocations:
    countries: List[Country] = field(default_factory=list)
    states: List[State] = field(default_factory=list)
    cities: List[City] = field(default_factory=list)
    zips: List[Zip] = field(default_factory=list)


def parse_location_data(data: LocationData) -> ParsedLocations:
    """Turn the nested dataset into entity records.

    Malformed keys are skipped, as are zips for countries absent from the
    city data, each with a warning. Output order follows sorted keys so the
    same file always produces the same records.

    Args:
        data: Loaded dataset

    Returns:
        ParsedLocations with countries, states, cities and zips
    """
    parsed = ParsedLocations()
    skipped_keys = 0

    for country_key in sorted(data.city_data):
        country_parts = split_country_key(country_key)
        if country_parts is None:
            logging.warning(f"Skipping malformed country key: {country_key!r}")
            skipped_keys += 1
            continue
        country_short, country_name = country_parts
        parsed.countries.append(Country(country_short=country_short, country=country_name))

        states = data.city_data[country_key] or {}
        if not isinstance(states, dict):
            logging.warning(f"Skipping states of {country_short}: expected an object")
            continue

        for state_key in sorted(states):
            state_parts = split_state_key(state_key)
            if state_parts is None:
                logging.warning(f"Skipping malformed state key in {country_short}: {state_key!r}")
                skipped_keys += 1
                continue
            state_short, state_name = state_parts
            parsed.states.append(State(state_short=state_short, state=state_name, country_short=country_short))

            seen = set()
            for city_name in states[state_key] or []:
                if not isinstance(city_name, str) or not city_name.strip():
                    continue
                city_name = city_name.strip()
                if city_name in seen:
                    continue
                seen.add(city_name)
                parsed.cities.append(City(city=city_name, state_short=state_short, country_short=country_short))

    known = {c.country_short for c in parsed.countries}
    for raw_code in sorted(data.zip_data):
        country_short = str(raw_code).strip().upper()
        if country_short not in known:
            logging.warning(f"Skipping postal codes for {raw_code!r}: country not in city data")
            continue
        codes = sorted({str(z).strip() for z in data.zip_data[raw_code] or [] if str(z).strip()})
        parsed.zips.extend(Zip(zip=code, country_short=country_short) for code in codes)

    logging.info(
        f"Parsed location data: {len(parsed.countries)} countries, {len(parsed.states)} states, "
        f"{len(parsed.cities)} cities, {len(parsed.zips)} zips ({skipped_keys} malformed keys skipped)"
    )
    return parsed


class LocationDataSource:
    """Lazily loaded, explicitly invalidated reference to the dataset file.

    Usage:
        source = LocationDataSource('location_data.json')
        data = source.load()       # reads the file once
        source.invalidate()        # next load() re-reads it
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path or DOWNLOAD.DEFAULT_OUTPUT)
        self._cached: Optional[LocationData] = None

    @property
    def path(self) -> Path:
        return self._path

    def set_path(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self.invalidate()

    def invalidate(self) -> None:
        self._cached = None

    def load(self) -> LocationData:
        """Return the dataset, reading the file on first use.

        A missing or unreadable file yields an empty dataset, which is not
        cached so a later download is picked up.
        """
        if self._cached is not None:
            return self._cached

        raw = read_json(self._path)
        if raw is None:
            logging.warning(f"Location data not available at {self._path}")
            return LocationData()
        if not isinstance(raw, dict):
            logging.warning(f"Location data at {self._path} is not a JSON object")
            return LocationData()
        try:
            self._cached = LocationData.from_dict(raw)
        except ValueError as e:
            logging.warning(f"Invalid location data at {self._path}: {e}")
            return LocationData()

        logging.info(f"Loaded location data from {self._path}")
        return self._cached

    def is_populated(self) -> bool:
        return self.load().is_populated

    def available_countries(self) -> List[str]:
        codes = set()
        for key in self.load().city_data:
            parts = split_country_key(key)
            if parts:
                codes.add(parts[0])
        return sorted(codes)

    def cities_for(self, country_short: str, state_short: str) -> List[str]:
        for country_key, states in self.load().city_data.items():
            parts = split_country_key(country_key)
            if not parts or parts[0] != country_short.upper():
                continue
            for state_key, cities in (states or {}).items():
                state_parts = split_state_key(state_key)
                if state_parts and state_parts[0] == state_short:
                    return list(cities or [])
        return []

    def postal_codes_for(self, country_short: str) -> List[str]:
        return list(self.load().zip_data.get(country_short.upper()) or [])
