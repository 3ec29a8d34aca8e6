"""
Book Aggregate Updater

Keeps the ISBN folder's chapter count and metadata status in step with
chapter inserts/deletes, and records publishing on the book.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from core.store import NodeStore
from core.workflow import WorkflowService

from .models import (
    PROP_BOOK_METADATA_STATUS, PROP_NUMBER_OF_CHAPTERS, PROP_WEB_PUBLISHED_DATE,
    Book, BookMetadataStatus,
)

logger = logging.getLogger(__name__)


class BookAggregateUpdater:
    """Book-level bookkeeping applied after a chapter operation has fully succeeded."""

    def __init__(
        self,
        store: NodeStore,
        workflow: Optional[WorkflowService] = None,
        sync_workflow_flag: bool = True,
    ):
        self.store = store
        self.workflow = workflow
        self.sync_workflow_flag = sync_workflow_flag

    def after_insert(
        self, book: Book, chapter_metadata_complete: bool, count: Optional[int] = None
    ) -> int:
        """
        Count one more chapter; a chapter with incomplete metadata
        downgrades a COMPLETE book to PARTIAL.  Insert never upgrades, so a
        MISSING or PARTIAL book keeps its status.

        ``count`` replaces the increment with a recount of live chapters,
        which is what a resumed operation writes.
        """
        if not chapter_metadata_complete:
            if book.metadata_status == BookMetadataStatus.COMPLETE:
                self.store.set_property(
                    book.id, PROP_BOOK_METADATA_STATUS, BookMetadataStatus.PARTIAL.value
                )
                book.metadata_status = BookMetadataStatus.PARTIAL
            self._sync_workflow(book, complete=False)

        # Count goes last: a failure before this line leaves it untouched
        if count is None:
            count = self.current_count(book) + 1
        self.store.set_property(book.id, PROP_NUMBER_OF_CHAPTERS, count)
        book.chapter_count = count

        logger.debug(f"Book {book.isbn} now has {count} chapters")
        return count

    def after_delete(self, book: Book, count: Optional[int] = None) -> int:
        """Count one chapter fewer (or write ``count``).  Status is reconciled elsewhere."""
        if count is None:
            count = max(self.current_count(book) - 1, 0)
        self.store.set_property(book.id, PROP_NUMBER_OF_CHAPTERS, count)
        book.chapter_count = count
        logger.debug(f"Book {book.isbn} now has {count} chapters")
        return count

    def record_published(self, book: Book, published_at: datetime) -> None:
        """
        Stamp the published date without bumping the book's modified time,
        otherwise the gate would see every publish as a new change.
        """
        self.store.set_property(
            book.id, PROP_WEB_PUBLISHED_DATE, published_at.isoformat(), touch=False
        )
        if self.workflow is not None:
            self.workflow.set_published(book.isbn, published_at)

    def current_count(self, book: Book) -> int:
        value = self.store.get_property(book.id, PROP_NUMBER_OF_CHAPTERS)
        return int(value or 0)

    def _sync_workflow(self, book: Book, complete: bool) -> None:
        if not self.sync_workflow_flag or self.workflow is None:
            return
        process_ref = self.workflow.get_process_ref(book.isbn)
        self.workflow.set_metadata_complete_flag(process_ref, complete)
