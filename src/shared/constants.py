"""Centralized constants for the geographic navigation sequencer.

This module provides frozen dataclass-based configuration groups for all
magic values used throughout the codebase. Grouping them this way keeps
related defaults together and prevents accidental modification at runtime.

Usage:
    from src.shared.constants import NAV, STORE

    separator = NAV.PLACEHOLDER_SEPARATOR
    db_path = STORE.DEFAULT_DB_PATH
"""

from dataclasses import dataclass, field
from typing import Tuple

__all__ = [
    'DOWNLOAD',
    'DownloadDefaults',
    'HTTP',
    'HttpDefaults',
    'LOGGING',
    'LoggingDefaults',
    'NAV',
    'NavDefaults',
    'STORE',
    'StoreDefaults',
    'VALIDATION',
    'ValidationDefaults',
]


@dataclass(frozen=True)
class StoreDefaults:
    """Entity store settings.

    Controls where the SQLite database lives and how connections behave.
    """

    DEFAULT_DB_PATH: str = ".navigator.db"
    """Database file used when no path is configured."""

    JOURNAL_MODE: str = "WAL"
    """SQLite journal mode applied on every connection."""

    FOREIGN_KEYS: str = "ON"
    """SQLite foreign key enforcement applied on every connection."""


@dataclass(frozen=True)
class NavDefaults:
    """Navigation sequencing settings."""

    ALL_COUNTRIES: str = "all"
    """Target country sentinel selecting every stored country."""

    QUERY_PREFIX: str = "query-"
    """Format name prefix for variants crossed with stored queries."""

    PAGE_COMPLETED: str = "completed"
    """Persisted page blob for a fully consumed step."""

    PLACEHOLDER_SEPARATOR: str = "##"
    """Separator joining placeholder parts."""

    PLACEHOLDER_UNKNOWN: str = "Unknown"
    """Placeholder for a step carrying none of the displayable fields."""

    COUNTRY_KEY_DELIMITER: str = "#"
    """Delimiter inside bootstrap country keys (``US#United States``)."""

    STATE_KEY_DELIMITER: str = "##"
    """Delimiter inside bootstrap state keys (``CA##California``)."""


@dataclass(frozen=True)
class HttpDefaults:
    """HTTP request configuration defaults for dataset downloads."""

    MAX_RETRIES: int = 3
    """Maximum number of attempts for a failed download."""

    TIMEOUT: int = 240
    """Request timeout in seconds (the city dataset is large)."""

    RATE_LIMIT_BASE_WAIT: int = 30
    """Base wait time in seconds when receiving 429 responses."""

    SERVER_ERROR_WAIT: int = 10
    """Wait time in seconds after server errors or connection failures."""


@dataclass(frozen=True)
class DownloadDefaults:
    """Bootstrap dataset sources."""

    LOCATION_BASE_URL: str = (
        "https://raw.githubusercontent.com/dr5hn/"
        "countries-states-cities-database/refs/heads/master/json"
    )
    """Base URL for countries.json and cities.json."""

    POSTAL_BASE_URL: str = "https://download.geonames.org/export/zip"
    """Base URL for per-country postal code archives."""

    DEFAULT_OUTPUT: str = "location_data.json"
    """Default path of the downloaded bootstrap file."""

    TARGET_COUNTRIES: Tuple[str, ...] = field(
        default=("US", "CA", "GB", "DE", "JP", "FR", "IN", "AU", "NL", "IE")
    )
    """Countries whose postal codes are downloaded."""

    FULL_FORMAT_COUNTRIES: Tuple[str, ...] = field(default=("NL", "CA", "GB"))
    """Countries published as ``<CC>_full.csv.zip`` archives."""


@dataclass(frozen=True)
class LoggingDefaults:
    """Logging configuration.

    Controls log file rotation and console verbosity.
    """

    LOG_FILE: str = "logs/navigator.log"
    """Default log file path."""

    MAX_BYTES: int = 10 * 1024 * 1024
    """Maximum log file size before rotation (10MB)."""

    BACKUP_COUNT: int = 5
    """Number of backup log files to keep."""

    FORMAT: str = "%(asctime)s - %(levelname)s - %(message)s"
    """Record format shared by the file and console handlers."""

    CONSOLE_LEVEL: str = "WARNING"
    """Console threshold; stdout carries the JSON output, so only problems reach stderr."""


@dataclass(frozen=True)
class ValidationDefaults:
    """Batch validation settings."""

    COUNTRY_CODE_LENGTH: int = 2
    """Length of an ISO 3166-1 alpha-2 country code."""

    ERROR_LOG_LIMIT: int = 10
    """Maximum validation errors to include in a message before truncating."""


# Singleton instances for easy import
STORE = StoreDefaults()
NAV = NavDefaults()
HTTP = HttpDefaults()
DOWNLOAD = DownloadDefaults()
LOGGING = LoggingDefaults()
VALIDATION = ValidationDefaults()
