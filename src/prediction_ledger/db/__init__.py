"""Database connection and schema management."""

from prediction_ledger.db.backend import Cursor, Database, Row
from prediction_ledger.db.sqlite_backend import SQLiteBackend

try:
    from prediction_ledger.db.postgres_backend import PostgresBackend
except ImportError:
    PostgresBackend = None  # type: ignore[assignment,misc]

__all__ = ["Cursor", "Database", "PostgresBackend", "Row", "SQLiteBackend"]
