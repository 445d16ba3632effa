"""SQLite entity store"""

from .engine import create_engine
from .entity_store import ENTITY_TABLES, EntityStore

__all__ = [
    'ENTITY_TABLES',
    'EntityStore',
    'create_engine',
]
