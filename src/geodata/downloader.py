"""Bootstrap dataset downloader.

Builds ``location_data.json`` from two public sources:

- countries and cities from the countries-states-cities dataset on GitHub
- postal codes per target country from the GeoNames export archives

Postal codes are standardized per country, checked against a country
pattern, de-duplicated and sorted before being written.
"""

import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import requests

from src.shared.constants import DOWNLOAD, HTTP
from src.shared.exceptions import DownloadError
from src.shared.http import create_session, get_with_retry
from src.shared.json_io import read_json, write_json_atomic

__all__ = [
    'DataDownloader',
    'POSTAL_CODE_PATTERNS',
    'ensure_location_data',
    'standardize_postal_code',
]


POSTAL_CODE_PATTERNS: Dict[str, re.Pattern] = {
    'US': re.compile(r'^\d{5}$'),
    'CA': re.compile(r'^[A-Z]\d[A-Z]\s?\d[A-Z]\d$'),
    'GB': re.compile(r'^(?:[A-Z]{1,2}\d{1,2}[A-Z]?|[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2})$'),
    'DE': re.compile(r'^\d{5}$'),
    'JP': re.compile(r'^\d{3}-\d{4}$'),
    'FR': re.compile(r'^\d{5}$'),
    'IN': re.compile(r'^\d{6}$'),
    'AU': re.compile(r'^\d{4}$'),
    'NL': re.compile(r'^\d{4}[A-Z]{2}$'),
    'IE': re.compile(r'^[A-Z0-9]{3}$'),
}

_CA_COMPACT = re.compile(r'^[A-Z]\d[A-Z]\d[A-Z]\d$')
_GB_SPLIT = re.compile(r'^([A-Z]{1,2}\d{1,2}[A-Z]?)(\d[A-Z]{2})$')


def standardize_postal_code(postal_code: str, country_code: str) -> str:
    """Bring a space-stripped postal code into its country's canonical form.

    Examples:
        >>> standardize_postal_code('1000001', 'JP')
        '100-0001'
        >>> standardize_postal_code('K1A0B1', 'CA')
        'K1A 0B1'
        >>> standardize_postal_code('SW1A1AA', 'GB')
        'SW1A 1AA'
    """
    if country_code == 'JP':
        if len(postal_code) == 7 and '-' not in postal_code:
            return f"{postal_code[:3]}-{postal_code[3:]}"
    elif country_code == 'CA':
        if _CA_COMPACT.match(postal_code):
            return f"{postal_code[:3]} {postal_code[3:]}"
    elif country_code == 'GB':
        return _GB_SPLIT.sub(r'\1 \2', postal_code)
    elif country_code == 'NL':
        return postal_code.replace(' ', '')
    return postal_code


class DataDownloader:
    """Downloads and assembles the bootstrap location dataset."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        target_countries: Optional[Sequence[str]] = None,
        timeout: Optional[int] = None,
    ):
        """
        Args:
            session: HTTP session (created with download headers if omitted)
            target_countries: ISO2 codes whose postal codes are fetched
            timeout: Per-request timeout in seconds
        """
        self.session = session or create_session()
        self.target_countries = [c.upper() for c in (target_countries or DOWNLOAD.TARGET_COUNTRIES)]
        self.timeout = timeout or HTTP.TIMEOUT

    # -------------------------------------------------------------------------
    # Countries and cities
    # -------------------------------------------------------------------------

    def download_location_data(self) -> Dict[str, Dict[str, List[str]]]:
        """Fetch countries and cities and nest them by country and state key.

        Raises:
            DownloadError: If either file cannot be fetched or parsed
        """
        logging.info("Downloading countries...")
        countries = self._download_json(f"{DOWNLOAD.LOCATION_BASE_URL}/countries.json")
        location_data = self.build_country_keys(countries)

        logging.info("Downloading cities...")
        cities = self._download_json(f"{DOWNLOAD.LOCATION_BASE_URL}/cities.json")
        self.process_cities(cities, location_data)

        logging.info(f"Location data download completed: {len(location_data)} countries")
        return location_data

    def _download_json(self, url: str) -> Any:
        response = get_with_retry(self.session, url, timeout=self.timeout)
        if response is None:
            raise DownloadError(f"Failed to download {url}")
        try:
            data = response.json()
        except ValueError as e:
            raise DownloadError(f"Invalid JSON from {url}: {e}") from e
        if not isinstance(data, list):
            raise DownloadError(f"Expected a JSON array from {url}")
        return data

    @staticmethod
    def build_country_keys(countries: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, List[str]]]:
        """Create an empty state mapping for every country with an ISO2 code."""
        location_data: Dict[str, Dict[str, List[str]]] = {}
        for country in countries:
            iso2 = str(country.get('iso2') or '').strip().upper()
            name = str(country.get('name') or '').strip()
            if not iso2 or not name:
                continue
            location_data[f"{iso2}#{name}"] = {}
        return location_data

    @staticmethod
    def process_cities(cities: Iterable[Dict[str, Any]], location_data: Dict[str, Dict[str, List[str]]]) -> int:
        """Add city names under their country and state keys.

        Cities without a state code or with an unknown country are skipped.
        The first state name seen for a state code wins.

        Returns:
            Number of cities added
        """
        country_keys = {key.split('#', 1)[0]: key for key in location_data}
        state_keys: Dict[str, Dict[str, str]] = {}
        added = 0

        for city in cities:
            country_code = str(city.get('country_code') or '').strip().upper()
            state_code = str(city.get('state_code') or '').strip().upper()
            name = str(city.get('name') or '').strip()
            if not state_code or not name:
                continue

            country_key = country_keys.get(country_code)
            if country_key is None:
                continue

            states = location_data[country_key]
            known = state_keys.setdefault(country_key, {
                key.split('##', 1)[0]: key for key in states
            })
            state_key = known.get(state_code)
            if state_key is None:
                state_key = f"{state_code}##{str(city.get('state_name') or '').strip()}"
                known[state_code] = state_key
                states[state_key] = []

            states[state_key].append(name)
            added += 1

        return added

    # -------------------------------------------------------------------------
    # Postal codes
    # -------------------------------------------------------------------------

    def download_postal_codes(self) -> Dict[str, List[str]]:
        """Fetch postal codes for every target country.

        Raises:
            DownloadError: If any country's archive cannot be fetched
        """
        zip_data: Dict[str, List[str]] = {}
        for country_code in self.target_countries:
            logging.info(f"Downloading postal codes for {country_code}...")
            codes = self.download_country_postal_codes(country_code)
            if codes:
                zip_data[country_code] = codes
            logging.info(f"Downloaded {len(codes)} postal codes for {country_code}")
        return zip_data

    def download_country_postal_codes(self, country_code: str) -> List[str]:
        suffix = '_full' if country_code in DOWNLOAD.FULL_FORMAT_COUNTRIES else ''
        archive_suffix = '_full.csv' if suffix else ''
        url = f"{DOWNLOAD.POSTAL_BASE_URL}/{country_code}{archive_suffix}.zip"

        response = get_with_retry(self.session, url, timeout=self.timeout)
        if response is None:
            raise DownloadError(f"Failed to download postal codes for {country_code} from {url}")

        text = self.extract_member(response.content, f"{country_code}{suffix}.txt")
        return self.parse_postal_codes(text, country_code)

    @staticmethod
    def extract_member(archive: bytes, member: str) -> str:
        """Read one text file out of a zip archive.

        Raises:
            DownloadError: If the archive is invalid or lacks the member
        """
        try:
            with zipfile.ZipFile(io.BytesIO(archive)) as zf:
                if member not in zf.namelist():
                    raise DownloadError(f"Target file {member} not found in ZIP archive")
                return zf.read(member).decode('utf-8', errors='replace')
        except zipfile.BadZipFile as e:
            raise DownloadError(f"Invalid ZIP archive while looking for {member}: {e}") from e

    @staticmethod
    def parse_postal_codes(text: str, country_code: str) -> List[str]:
        """Extract valid postal codes from a GeoNames tab-separated export.

        The postal code is the second column. Returns an empty list, with a
        warning, for a country without a known pattern.
        """
        pattern = POSTAL_CODE_PATTERNS.get(country_code)
        if pattern is None:
            logging.warning(f"No postal code format defined for {country_code}")
            return []

        codes = set()
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            columns = line.split('\t')
            if len(columns) < 2:
                continue
            postal_code = standardize_postal_code(columns[1].strip().replace(' ', ''), country_code)
            if pattern.match(postal_code):
                codes.add(postal_code)

        return sorted(codes)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def download_and_process(self, output_path: Union[str, Path] = DOWNLOAD.DEFAULT_OUTPUT) -> Path:
        """Download everything and write the bootstrap file.

        Returns:
            Absolute path of the written file

        Raises:
            DownloadError: If any source cannot be fetched
        """
        logging.info("Starting geographical data download...")
        city_data = self.download_location_data()
        zip_data = self.download_postal_codes()
        path = write_json_atomic({'city_data': city_data, 'zip_data': zip_data}, output_path)
        logging.info(f"Location data written to {path}")
        return path


def ensure_location_data(
    path: Union[str, Path] = DOWNLOAD.DEFAULT_OUTPUT,
    downloader: Optional[DataDownloader] = None,
) -> bool:
    """Download the bootstrap file only when it is missing or empty.

    Returns:
        True if a download was performed
    """
    existing = read_json(path)
    if isinstance(existing, dict) and (existing.get('city_data') or existing.get('zip_data')):
        logging.debug(f"Location data already present at {path}")
        return False

    logging.info(f"Location data missing at {path}; downloading")
    (downloader or DataDownloader()).download_and_process(path)
    return True
