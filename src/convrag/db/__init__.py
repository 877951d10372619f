"""Database layer for convrag."""

from convrag.db.connection import Database, StorageError
from convrag.db.migrations import MigrationError, run_migrations

__all__ = ["Database", "MigrationError", "StorageError", "run_migrations"]
