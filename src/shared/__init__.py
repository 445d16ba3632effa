"""Shared utilities for the navigation sequencer"""

from .constants import (
    DOWNLOAD,
    HTTP,
    LOGGING,
    NAV,
    STORE,
    VALIDATION,
)

from .exceptions import (
    DownloadError,
    EntityValidationError,
    NavigatorError,
    SessionStateError,
    StoreError,
)

from .logging_config import resolve_level, setup_logging

from .json_io import (
    read_json,
    write_json_atomic,
)

from .http import (
    create_session,
    get_headers,
    get_with_retry,
)

from .validation import (
    ValidationResult,
    validate_record,
    validate_records,
)

__all__ = [
    # Constants
    'DOWNLOAD',
    'HTTP',
    'LOGGING',
    'NAV',
    'STORE',
    'VALIDATION',
    # Exceptions
    'DownloadError',
    'EntityValidationError',
    'NavigatorError',
    'SessionStateError',
    'StoreError',
    # Logging
    'resolve_level',
    'setup_logging',
    # JSON files
    'read_json',
    'write_json_atomic',
    # HTTP
    'create_session',
    'get_headers',
    'get_with_retry',
    # Validation
    'ValidationResult',
    'validate_record',
    'validate_records',
]
