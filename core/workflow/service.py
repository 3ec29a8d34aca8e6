"""
Publication Workflow Store

Tracks, per book:
  - the publication process instance and its variables
    (``metadataComplete`` is the one the chapter operations drive)
  - the last-published timestamp consulted by the change-detection gate
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from core.database import SQLiteBackend, get_db_backend

logger = logging.getLogger(__name__)

METADATA_COMPLETE_VAR = "metadataComplete"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS process_instances (
    process_ref TEXT PRIMARY KEY,
    book_id TEXT NOT NULL UNIQUE,
    completed INTEGER NOT NULL DEFAULT 0,
    variables TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS publication_state (
    book_id TEXT PRIMARY KEY,
    published_at TEXT NOT NULL
);
"""


class WorkflowService:
    """SQLite-backed publication workflow collaborator."""

    def __init__(self, backend: Optional[SQLiteBackend] = None):
        if backend is None:
            from config.settings import settings
            backend = get_db_backend(settings.workflow_db_name)
        self.backend = backend
        self.backend.init_schema(_SCHEMA)

    # ==================== PROCESS INSTANCES ====================

    def start_process(self, book_id: str, variables: Optional[Dict[str, Any]] = None) -> str:
        """Start (or return the existing) publication process for a book."""
        now = datetime.utcnow().isoformat()
        with self.backend.connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT process_ref FROM process_instances WHERE book_id = ?", (book_id,)
            ).fetchone()
            if row:
                return row["process_ref"]
            process_ref = f"bestpub-{uuid.uuid4().hex[:12]}"
            conn.execute(
                """
                INSERT INTO process_instances (process_ref, book_id, variables, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (process_ref, book_id, json.dumps(variables or {}), now, now),
            )
        logger.info(f"Started publication process {process_ref} for book {book_id}")
        return process_ref

    def get_process_ref(self, book_id: str) -> Optional[str]:
        with self.backend.connection() as conn:
            row = conn.execute(
                "SELECT process_ref FROM process_instances WHERE book_id = ?", (book_id,)
            ).fetchone()
        return row["process_ref"] if row else None

    def complete_process(self, process_ref: str) -> bool:
        with self.backend.connection(immediate=True) as conn:
            conn.execute(
                "UPDATE process_instances SET completed = 1, updated_at = ? WHERE process_ref = ?",
                (datetime.utcnow().isoformat(), process_ref),
            )
            return conn.rowcount > 0

    def get_variables(self, process_ref: str) -> Dict[str, Any]:
        with self.backend.connection() as conn:
            row = conn.execute(
                "SELECT variables FROM process_instances WHERE process_ref = ?", (process_ref,)
            ).fetchone()
        return json.loads(row["variables"]) if row else {}

    def set_metadata_complete_flag(self, process_ref: Optional[str], complete: bool) -> bool:
        """
        Set ``metadataComplete`` on a running process instance.

        Returns False without error when the instance is missing or has
        already completed; there is nothing left to update in that case.
        """
        if not process_ref:
            return False
        with self.backend.connection(immediate=True) as conn:
            row = conn.execute(
                "SELECT completed, variables FROM process_instances WHERE process_ref = ?",
                (process_ref,),
            ).fetchone()
            if row is None or row["completed"]:
                logger.debug(
                    f"Process {process_ref} missing or already completed, "
                    f"not setting {METADATA_COMPLETE_VAR}={complete}"
                )
                return False
            variables = json.loads(row["variables"])
            variables[METADATA_COMPLETE_VAR] = complete
            conn.execute(
                "UPDATE process_instances SET variables = ?, updated_at = ? WHERE process_ref = ?",
                (json.dumps(variables), datetime.utcnow().isoformat(), process_ref),
            )
        return True

    # ==================== PUBLICATION STATE ====================

    def get_publication_state(self, book_id: str) -> Optional[datetime]:
        """Last time the book was packaged, or None if never."""
        with self.backend.connection() as conn:
            row = conn.execute(
                "SELECT published_at FROM publication_state WHERE book_id = ?", (book_id,)
            ).fetchone()
        return datetime.fromisoformat(row["published_at"]) if row else None

    def set_published(self, book_id: str, published_at: datetime) -> None:
        with self.backend.connection(immediate=True) as conn:
            conn.execute(
                """
                INSERT INTO publication_state (book_id, published_at) VALUES (?, ?)
                ON CONFLICT(book_id) DO UPDATE SET published_at = excluded.published_at
                """,
                (book_id, published_at.isoformat()),
            )
