"""
Chapter Folder Manager

Applies sequencer plans to the content store: renames and renumbers
chapter folders, creates and deletes them, and hands book-level
bookkeeping to the BookAggregateUpdater once the sequence is dense again.

Failure policy: if any renumber step (or the create/delete that goes with
it) fails, the book counters are left alone and PartialApplyFailure
carries the plan.  ``resume()`` re-runs that plan; each step writes the
final name and number directly, so steps that already landed are no-ops.
While a book is half-renumbered its numbering is not dense, which makes
every other insert/delete refuse to plan until it is resumed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from core.store import NodeStore

from .aggregate import BookAggregateUpdater
from .exceptions import InvalidInputError, PartialApplyFailure, PublishingError
from .models import (
    BOOK_INFO_ASPECT, CHAPTER_FOLDER_TYPE, CHAPTER_INFO_ASPECT,
    PROP_CHAPTER_AUTHOR, PROP_CHAPTER_METADATA_STATUS, PROP_CHAPTER_NUMBER,
    PROP_CHAPTER_TITLE, PROP_NAME,
    Book, Chapter, ChapterMetadataStatus, RenumberStep,
)
from .repository import BookRepository
from .sequencer import chapter_folder_name, plan_delete, plan_insert

logger = logging.getLogger(__name__)

OPERATION_INSERT = "insert"
OPERATION_DELETE = "delete"


class ChapterFolderManager:
    """Insert/delete chapter folders while keeping numbering dense."""

    def __init__(
        self,
        store: NodeStore,
        repository: BookRepository,
        updater: BookAggregateUpdater,
        folder_prefix: str = "chapter-",
        number_padding: int = 0,
        propagate_book_metadata: bool = True,
    ):
        self.store = store
        self.repository = repository
        self.updater = updater
        self.folder_prefix = folder_prefix
        self.number_padding = number_padding
        self.propagate_book_metadata = propagate_book_metadata

    def folder_name(self, number: int) -> str:
        return chapter_folder_name(number, self.folder_prefix, self.number_padding)

    # ==================== RENUMBERING ====================

    def apply_step(self, step: RenumberStep) -> None:
        """Write the step's final folder name and chapter number."""
        self.store.set_property(step.chapter_id, PROP_NAME, self.folder_name(step.new_number))
        self.store.set_property(step.chapter_id, PROP_CHAPTER_NUMBER, step.new_number)
        logger.debug(
            f"Renumbered chapter folder {step.chapter_id}: {step.old_number} -> {step.new_number}"
        )

    def apply_plan(
        self,
        book: Book,
        steps: Sequence[RenumberStep],
        operation: str,
        pending: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Apply steps in order; stop at the first failure with PartialApplyFailure."""
        for applied, step in enumerate(steps):
            try:
                self.apply_step(step)
            except (PublishingError, OSError) as e:
                logger.error(
                    f"Renumber failed for book {book.isbn} after {applied}/{len(steps)} steps "
                    f"[chapter={step.chapter_id}, {step.old_number}->{step.new_number}]: {e}"
                )
                raise PartialApplyFailure(
                    f"Renumbering of book {book.isbn} stopped after {applied} of {len(steps)} steps",
                    operation=operation,
                    steps=list(steps),
                    applied=applied,
                    pending=pending,
                    isbn=book.isbn,
                ) from e

    # ==================== INSERT ====================

    def insert_chapter(
        self,
        book: Book,
        requested_number: int,
        title: Optional[str],
        author: Optional[str],
    ) -> Chapter:
        """Make room at ``requested_number`` (coerced into 1..N+1) and create the folder."""
        chapters = self.repository.list_chapters(book)
        plan = plan_insert([(c.number, c.id) for c in chapters], requested_number)
        pending = {"number": plan.effective_number, "title": title, "author": author}

        self.apply_plan(book, plan.steps, OPERATION_INSERT, pending)
        return self._finish_insert(book, plan.steps, pending)

    def _finish_insert(
        self,
        book: Book,
        steps: List[RenumberStep],
        pending: Dict[str, Any],
        recount: bool = False,
    ) -> Chapter:
        number = int(pending["number"])
        title = pending.get("title")
        author = pending.get("author")
        status = (
            ChapterMetadataStatus.COMPLETE if title and author else ChapterMetadataStatus.MISSING
        )
        try:
            chapter_id = self._create_folder(book, number, title, author, status)
            count = self.repository.count_chapters(book) if recount else None
            self.updater.after_insert(book, status == ChapterMetadataStatus.COMPLETE, count)
        except (PublishingError, OSError) as e:
            logger.error(f"Creating chapter {number} of book {book.isbn} failed: {e}")
            raise PartialApplyFailure(
                f"Chapters of book {book.isbn} were renumbered but chapter {number} was not created",
                operation=OPERATION_INSERT,
                steps=list(steps),
                applied=len(steps),
                pending=pending,
                isbn=book.isbn,
            ) from e

        chapter, _ = self.repository.get_chapter(chapter_id)
        logger.debug(
            f"Added chapter folder {self.store.display_path(chapter_id)} [chapterTitle={title}]"
        )
        return chapter

    def _create_folder(
        self,
        book: Book,
        number: int,
        title: Optional[str],
        author: Optional[str],
        status: ChapterMetadataStatus,
    ) -> str:
        name = self.folder_name(number)
        # A resumed insert may find the folder it created before failing
        existing = self.store.find_child(book.id, name)
        if existing is not None and existing.properties.get(PROP_CHAPTER_NUMBER) in (None, number):
            chapter_id = existing.id
        else:
            chapter_id = self.store.create_child(book.id, name, CHAPTER_FOLDER_TYPE)

        self.store.attach_metadata(chapter_id, CHAPTER_INFO_ASPECT, {
            PROP_CHAPTER_NUMBER: number,
            PROP_CHAPTER_TITLE: title,
            PROP_CHAPTER_AUTHOR: author,
            PROP_CHAPTER_METADATA_STATUS: status.value,
        })
        if self.propagate_book_metadata:
            self.store.copy_metadata(book.id, chapter_id, [BOOK_INFO_ASPECT])
        return chapter_id

    # ==================== DELETE ====================

    def delete_chapter(self, book: Book, chapter: Chapter) -> int:
        """
        Delete a chapter folder and close the gap behind it.

        Returns the book's new chapter count.
        """
        chapters = self.repository.list_chapters(book)
        plan = plan_delete([(c.number, c.id) for c in chapters], chapter.number)

        # Free the name first so chapter-(k+1) can move into chapter-k
        self.store.delete_child(plan.chapter_id)
        logger.debug(f"Deleted chapter folder {chapter.name} of book {book.isbn}")

        pending = {"chapter_id": plan.chapter_id, "number": plan.number}
        self.apply_plan(book, plan.steps, OPERATION_DELETE, pending)
        return self._finish_delete(book, plan.steps, pending)

    def _finish_delete(
        self,
        book: Book,
        steps: List[RenumberStep],
        pending: Dict[str, Any],
        count: Optional[int] = None,
    ) -> int:
        try:
            return self.updater.after_delete(book, count)
        except (PublishingError, OSError) as e:
            raise PartialApplyFailure(
                f"Chapters of book {book.isbn} were renumbered but the chapter count was not updated",
                operation=OPERATION_DELETE,
                steps=list(steps),
                applied=len(steps),
                pending=pending,
                isbn=book.isbn,
            ) from e

    # ==================== RECOVERY ====================

    def resume(
        self,
        book: Book,
        operation: str,
        steps: Sequence[RenumberStep],
        pending: Optional[Dict[str, Any]] = None,
    ):
        """
        Re-run a plan reported by PartialApplyFailure and finish its operation.

        Every step must refer to a chapter of this book that currently sits
        at either its old or its new number; anything else means the plan
        is stale.

        Safe to call again after it succeeded: a finished operation is
        detected and left alone, and the chapter count is written from a
        recount of live chapters rather than adjusted by one.
        """
        pending = pending or {}
        if operation not in (OPERATION_INSERT, OPERATION_DELETE):
            raise InvalidInputError(f"Unknown operation: {operation}", operation=operation)
        if operation == OPERATION_INSERT and "number" not in pending:
            raise InvalidInputError("Insert recovery needs the pending chapter number")
        if operation == OPERATION_DELETE:
            deleted_id = pending.get("chapter_id")
            if not deleted_id:
                raise InvalidInputError("Delete recovery needs the deleted chapter id")
            # The folder is removed before any renumbering, so it must be gone already
            if self.store.exists(deleted_id):
                raise InvalidInputError(
                    f"Plan is stale: chapter {deleted_id} was never deleted", chapter_id=deleted_id
                )

        for step in steps:
            node = self.store.get_node(step.chapter_id)
            if node is None or node.parent_id != book.id:
                raise InvalidInputError(
                    f"Plan refers to a chapter that is not in book {book.isbn}",
                    chapter_id=step.chapter_id,
                )
            current = node.properties.get(PROP_CHAPTER_NUMBER)
            if current not in (step.old_number, step.new_number):
                raise InvalidInputError(
                    f"Plan is stale: chapter {step.chapter_id} is at {current}",
                    chapter_id=step.chapter_id,
                )

        self.apply_plan(book, steps, operation, pending)

        if operation == OPERATION_INSERT:
            return self._resume_insert(book, list(steps), pending)
        return self._resume_delete(book, list(steps), pending)

    def _resume_insert(self, book: Book, steps: List[RenumberStep], pending: Dict[str, Any]) -> Chapter:
        try:
            number = int(pending["number"])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Pending chapter number is not a number: {e}") from e

        existing = self.store.find_child(book.id, self.folder_name(number))
        if (
            existing is not None
            and existing.properties.get(PROP_CHAPTER_NUMBER) == number
            and self.updater.current_count(book) == self.repository.count_chapters(book)
        ):
            logger.info(f"Insert of chapter {number} in book {book.isbn} already finished")
            chapter, _ = self.repository.get_chapter(existing.id)
            return chapter

        return self._finish_insert(book, steps, pending, recount=True)

    def _resume_delete(self, book: Book, steps: List[RenumberStep], pending: Dict[str, Any]) -> int:
        deleted_id = pending["chapter_id"]
        live = self.repository.count_chapters(book)
        if self.updater.current_count(book) == live:
            logger.info(f"Delete of chapter {deleted_id} in book {book.isbn} already finished")
            return live

        return self._finish_delete(book, steps, pending, count=live)

    # ==================== CONTENT ====================

    def put_content(self, chapter: Chapter, data: bytes, mimetype: str) -> None:
        self.store.write_content(chapter.id, data, mimetype)
        logger.debug(f"Stored {len(data)} bytes ({mimetype}) in {self.store.display_path(chapter.id)}")
