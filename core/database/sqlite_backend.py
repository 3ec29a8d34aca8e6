"""
SQLite backend with per-call connections.

Each ``connection()`` opens a fresh connection, commits on success, rolls
back on any exception and always closes.  ``immediate=True`` takes the
write lock up front (BEGIN IMMEDIATE) so read-modify-write sequences do
not interleave with other writers.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional


class SQLiteCursor:
    """Thin wrapper so that a single object exposes execute + fetch."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._cursor: Optional[sqlite3.Cursor] = None

    def execute(self, sql: str, parameters: Any = ()) -> "SQLiteCursor":
        self._cursor = self._conn.execute(sql, parameters)
        return self

    def fetchone(self) -> Optional[sqlite3.Row]:
        if self._cursor is None:
            return None
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        if self._cursor is None:
            return []
        return self._cursor.fetchall()

    @property
    def rowcount(self) -> int:
        if self._cursor is None:
            return 0
        return self._cursor.rowcount


class SQLiteBackend:
    """SQLite database file with schema bootstrap and transactional connections."""

    def __init__(self, db_path: str | Path, timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    def init_schema(self, schema_sql: str) -> None:
        """Run idempotent DDL (CREATE ... IF NOT EXISTS)."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(schema_sql)
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def connection(self, immediate: bool = False) -> Iterator[SQLiteCursor]:
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        cursor = SQLiteCursor(conn)
        try:
            yield cursor
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
