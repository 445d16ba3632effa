"""
Database engine creation.

Provides SQLAlchemy engines for the SQLite entity store with PRAGMA
enforcement on every connection.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from src.shared.constants import STORE

__all__ = [
    'MEMORY_DB',
    'SQLITE_PRAGMAS',
    'create_engine',
]


MEMORY_DB = ":memory:"

SQLITE_PRAGMAS: Dict[str, Union[str, int]] = {
    "foreign_keys": STORE.FOREIGN_KEYS,
    "journal_mode": STORE.JOURNAL_MODE,
}


def create_engine(
    db_path: str = STORE.DEFAULT_DB_PATH,
    pragmas: Optional[Dict[str, Union[str, int]]] = None,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine for SQLite.

    An in-memory database gets a StaticPool so every session shares the one
    connection that holds the data.

    Args:
        db_path: Path to SQLite database file, or ":memory:"
        pragmas: PRAGMA settings applied on each connection.
                If None, uses SQLITE_PRAGMAS
        echo: If True, log all SQL statements

    Returns:
        Configured Engine instance
    """
    if pragmas is None:
        pragmas = SQLITE_PRAGMAS

    if db_path == MEMORY_DB:
        engine = sa_create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    else:
        Path(db_path).absolute().parent.mkdir(parents=True, exist_ok=True)
        engine = sa_create_engine(f"sqlite:///{db_path}", echo=echo)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            for pragma, value in pragmas.items():
                cursor.execute(f"PRAGMA {pragma}={value}")
        finally:
            cursor.close()

    logging.debug(f"Created engine for database: {db_path}")
    return engine
