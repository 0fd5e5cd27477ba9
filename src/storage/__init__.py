"""Session persistence: store contract, implementations and migrations."""

from src.storage.base import (
    PersistenceError,
    SchemaVersionError,
    SessionNotFoundError,
    SessionStore,
    SessionSummary,
    StoreChange,
    StoreChangeType,
)
from src.storage.duckdb import DuckDBSessionStore
from src.storage.memory import InMemorySessionStore
from src.storage.migrations import load_session_document, migrate_document
from src.storage.sync import SessionSynchronizer

__all__ = [
    "DuckDBSessionStore",
    "InMemorySessionStore",
    "PersistenceError",
    "SchemaVersionError",
    "SessionNotFoundError",
    "SessionStore",
    "SessionSummary",
    "SessionSynchronizer",
    "StoreChange",
    "StoreChangeType",
    "load_session_document",
    "migrate_document",
]
