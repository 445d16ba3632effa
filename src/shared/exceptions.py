"""Exception hierarchy for the navigation sequencer."""

from typing import List, Optional

__all__ = [
    'DownloadError',
    'EntityValidationError',
    'NavigatorError',
    'SessionStateError',
    'StoreError',
]


class NavigatorError(Exception):
    """Base class for all sequencer errors."""


class StoreError(NavigatorError):
    """A read or write against the entity store failed.

    The resumable cursor may be out of sync with the database when this is
    raised, so it is never swallowed inside the package.
    """


class EntityValidationError(NavigatorError, ValueError):
    """A bulk-add batch contains at least one incomplete record.

    Attributes:
        problems: One message per offending record
    """

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class SessionStateError(NavigatorError):
    """A session operation would break the single-active-session invariant."""


class DownloadError(NavigatorError):
    """A bootstrap dataset file could not be fetched or unpacked."""
