"""Atomic JSON file helpers.

Used for the bootstrap location data file, which is large and expensive to
re-download, so a partially written file must never replace a good one.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

__all__ = [
    'read_json',
    'write_json_atomic',
]


def write_json_atomic(data: Any, filepath: Union[str, Path], indent: Optional[int] = 2) -> Path:
    """Write JSON using a temp file in the same directory plus ``os.replace``.

    Args:
        data: JSON-serializable data
        filepath: Destination path
        indent: Indentation passed to ``json.dump`` (None for compact output)

    Returns:
        Absolute path of the written file

    Raises:
        OSError: If the file cannot be written or renamed
        TypeError: If the data is not JSON serializable
    """
    path = Path(filepath).absolute()
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path = tempfile.mkstemp(
        suffix='.tmp',
        dir=path.parent,
        prefix=path.name + '.'
    )
    try:
        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
        os.replace(temp_path, str(path))
    except (OSError, TypeError, ValueError) as e:
        logging.error(f"Failed to write {path}: {e}")
        Path(temp_path).unlink(missing_ok=True)
        raise

    logging.info(f"Wrote {path}")
    return path


def read_json(filepath: Union[str, Path]) -> Optional[Any]:
    """Read a JSON file.

    Args:
        filepath: Path to the file

    Returns:
        Parsed data, or None if the file doesn't exist or is invalid
    """
    path = Path(filepath)
    if not path.exists():
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logging.warning(f"Failed to read {filepath}: {e}")
        return None
