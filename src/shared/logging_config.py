"""Logging setup for the navigator.

Everything goes to a rotating log file at the configured level. The console
handler writes to stderr and only shows warnings unless a lower console level
is asked for (run.py does this for --debug), so stdout stays clean JSON.
"""

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from src.shared.constants import LOGGING

__all__ = [
    'resolve_level',
    'setup_logging',
]


FILE_HANDLER_NAME = 'navigator.file'
CONSOLE_HANDLER_NAME = 'navigator.console'

_logging_lock = threading.Lock()


def resolve_level(level: Union[str, int]) -> int:
    """Turn a level name such as 'debug' or 'INFO' into its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def _find_handler(root: logging.Logger, name: str) -> Optional[logging.Handler]:
    return next((h for h in root.handlers if h.get_name() == name), None)


def _drop(root: logging.Logger, handler: logging.Handler) -> None:
    root.removeHandler(handler)
    handler.close()


def setup_logging(
    log_file: str = LOGGING.LOG_FILE,
    level: Union[str, int] = logging.INFO,
    console_level: Union[str, int, None] = None,
    max_bytes: int = LOGGING.MAX_BYTES,
    backup_count: int = LOGGING.BACKUP_COUNT,
) -> None:
    """Attach the navigator's file and console handlers to the root logger.

    Safe to call repeatedly: handlers are recognised by name, kept when
    their settings match and replaced when the file or rotation changed.
    Handlers installed by anyone else are left alone.

    Args:
        log_file: Path to the rotating log file
        level: Root and file level, as a name or number
        console_level: Console threshold (default: LOGGING.CONSOLE_LEVEL)
        max_bytes: File size before rotation
        backup_count: Rotated files to keep
    """
    file_level = resolve_level(level)
    console_threshold = resolve_level(console_level if console_level is not None else LOGGING.CONSOLE_LEVEL)
    log_path = Path(log_file)
    formatter = logging.Formatter(LOGGING.FORMAT)

    with _logging_lock:
        root = logging.getLogger()
        root.setLevel(min(file_level, console_threshold))

        file_handler = _find_handler(root, FILE_HANDLER_NAME)
        if file_handler is not None and (
            file_handler.baseFilename != str(log_path.absolute())
            or file_handler.maxBytes != max_bytes
            or file_handler.backupCount != backup_count
        ):
            _drop(root, file_handler)
            file_handler = None

        if file_handler is None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
            file_handler.set_name(FILE_HANDLER_NAME)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        file_handler.setLevel(file_level)

        console_handler = _find_handler(root, CONSOLE_HANDLER_NAME)
        if console_handler is None:
            console_handler = logging.StreamHandler()
            console_handler.set_name(CONSOLE_HANDLER_NAME)
            console_handler.setFormatter(formatter)
            root.addHandler(console_handler)
        console_handler.setLevel(console_threshold)
