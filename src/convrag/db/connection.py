"""SQLite database connection management."""

import asyncio
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any


class StorageError(Exception):
    """Raised when a storage operation fails.

    Wraps sqlite3 errors raised inside a transaction so callers only need to
    handle one exception type at the store boundary.
    """

    pass


class Database:
    """SQLite database wrapper with connection management.

    All mutations go through write_transaction(), which serializes writers
    behind a single lock and commits or rolls back as one unit. Reads use
    execute() directly and never see a partially applied write.
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._write_lock = asyncio.Lock()

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute SQL statement."""
        return self._conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[tuple[Any, ...]]) -> sqlite3.Cursor:
        """Execute SQL statement for multiple parameter sets."""
        return self._conn.executemany(sql, params_list)

    def executescript(self, sql: str) -> sqlite3.Cursor:
        """Execute multiple SQL statements as a script."""
        return self._conn.executescript(sql)

    def commit(self) -> None:
        """Commit current transaction."""
        self._conn.commit()

    def rollback(self) -> None:
        """Rollback current transaction."""
        self._conn.rollback()

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction is currently open."""
        return self._conn.in_transaction

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements as one atomic unit.

        Commits on success. On any exception the transaction is rolled back;
        sqlite3 errors are re-raised as StorageError.
        """
        if not self._conn.in_transaction:
            self._conn.execute("BEGIN")
        try:
            yield
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(str(e)) from e
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    @asynccontextmanager
    async def write_transaction(self) -> AsyncIterator[None]:
        """Acquire the single-writer lock and open a transaction."""
        async with self._write_lock:
            with self.transaction():
                yield

    def close(self) -> None:
        """Close database connection."""
        self._conn.close()
