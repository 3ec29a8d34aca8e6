"""
Database access for SQLite-backed collaborators.

Usage:
    from core.database import get_db_backend

    backend = get_db_backend("workflow")
    with backend.connection() as conn:
        conn.execute("SELECT 1")
"""

from .config import get_db_backend
from .sqlite_backend import SQLiteBackend, SQLiteCursor

__all__ = ["get_db_backend", "SQLiteBackend", "SQLiteCursor"]
