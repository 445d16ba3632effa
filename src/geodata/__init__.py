"""Bootstrap location data: country codes, dataset file and downloader"""

from .countries import VALID_COUNTRY_CODES, normalize_target_country
from .location_data import LocationData, LocationDataSource, parse_location_data
from .downloader import DataDownloader, ensure_location_data

__all__ = [
    'DataDownloader',
    'LocationData',
    'LocationDataSource',
    'VALID_COUNTRY_CODES',
    'ensure_location_data',
    'normalize_target_country',
    'parse_location_data',
]
