"""
Database configuration: maps a logical database name to a backend instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .sqlite_backend import SQLiteBackend


def get_db_backend(
    db_name: str,
    db_dir: Optional[Path] = None,
) -> SQLiteBackend:
    """
    Return a SQLiteBackend for ``<db_dir>/<db_name>.db``.

    Args:
        db_name: logical name, e.g. "workflow".
        db_dir:  directory for database files.  Defaults to settings.database_dir.
    """
    if db_dir is None:
        from config.settings import settings
        db_dir = settings.database_dir

    return SQLiteBackend(Path(db_dir) / f"{db_name}.db")
