"""
Publishing Service
Entry points for chapter lifecycle and EPub publishing.

Every operation that plans from, or writes to, a book's chapter list runs
under that book's lock, so two callers never renumber the same book at
the same time.  Input is validated before the lock is taken and before
anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from core.store import NodeStore, SqlNodeStore
from core.workflow import WorkflowService

from .aggregate import BookAggregateUpdater
from .assembler import (
    SUPPORTED_MIMETYPES, ArtifactAssembler, ArtifactSink, FileSystemSink, base_mimetype,
)
from .chapters import ChapterFolderManager
from .exceptions import InvalidInputError, NotFoundError
from .gate import needs_reassembly
from .isbn import validate_isbn
from .locks import BookLockRegistry
from .models import Book, Chapter, PackagedArtifact, RenumberStep
from .repository import BookRepository
from .sequencer import parse_chapter_number

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    isbn: str
    published: bool
    artifact: Optional[PackagedArtifact] = None


class PublishingService:
    """
    Service layer for books and chapters.

    Handles locking and validation, and coordinates the repository,
    chapter folder manager, gate and assembler.
    """

    def __init__(
        self,
        store: Optional[NodeStore] = None,
        workflow: Optional[WorkflowService] = None,
        sink: Optional[ArtifactSink] = None,
        locks: Optional[BookLockRegistry] = None,
        config=None,
    ):
        if config is None:
            from config.settings import settings as config

        self.config = config
        self.store = store or SqlNodeStore(str(config.store_db_path))
        self.workflow = workflow or WorkflowService()
        self.sink = sink or FileSystemSink(config.artifact_dir)
        self.locks = locks or BookLockRegistry(timeout=config.lock_timeout_seconds)

        self.repository = BookRepository(self.store)
        self.updater = BookAggregateUpdater(
            self.store, self.workflow, sync_workflow_flag=config.sync_workflow_metadata_flag
        )
        self.chapters = ChapterFolderManager(
            self.store,
            self.repository,
            self.updater,
            folder_prefix=config.chapter_folder_prefix,
            number_padding=config.chapter_number_padding,
            propagate_book_metadata=config.propagate_book_metadata,
        )
        self.assembler = ArtifactAssembler(
            self.store,
            self.repository,
            self.updater,
            language=config.epub_language,
            publisher=config.epub_publisher,
        )

    # ==================== BOOKS ====================

    def register_book(
        self,
        isbn: str,
        title: Optional[str] = None,
        subtitle: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> Book:
        """Create a book folder and start its publication workflow."""
        isbn = validate_isbn(isbn)
        with self.locks.hold(isbn):
            book = self.repository.register_book(isbn, title, subtitle, subject)
        self.workflow.start_process(isbn)
        return book

    def get_book(self, isbn: str) -> Book:
        return self.repository.find_book(isbn)

    def list_books(self) -> List[Book]:
        return self.repository.list_books()

    def list_chapters(self, isbn: str) -> List[Chapter]:
        return self.repository.list_chapters(self.repository.find_book(isbn))

    # ==================== CHAPTERS ====================

    def create_chapter(
        self,
        isbn: str,
        requested_number: Any,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Chapter:
        """
        Insert a chapter at ``requested_number``, shifting later chapters up.

        Numbers below 1 insert first; numbers past the end append.
        """
        isbn = validate_isbn(isbn)
        number = parse_chapter_number(requested_number)

        with self.locks.hold(isbn):
            book = self.repository.find_book(isbn)
            chapter = self.chapters.insert_chapter(book, number, title, author)

        logger.info(f"Created chapter {chapter.number} in book {isbn} [title={title}]")
        return chapter

    def delete_chapter(self, chapter_id: str) -> Dict[str, Any]:
        """Delete a chapter folder and shift later chapters down."""
        if not chapter_id or not str(chapter_id).strip():
            raise InvalidInputError("Chapter reference is missing")

        _, book = self.repository.get_chapter(chapter_id)
        with self.locks.hold(book.isbn):
            # Re-read under the lock, the number may have moved meanwhile
            chapter, book = self.repository.get_chapter(chapter_id)
            remaining = self.chapters.delete_chapter(book, chapter)

        logger.info(f"Deleted chapter {chapter.number} from book {book.isbn}")
        return {"isbn": book.isbn, "deleted_number": chapter.number, "chapter_count": remaining}

    def put_chapter_content(self, chapter_id: str, data: bytes, mimetype: str = "text/html") -> Chapter:
        """Store chapter content; it must be UTF-8 HTML, XHTML, markdown or plain text."""
        if not data:
            raise InvalidInputError("Chapter content is empty", chapter_id=chapter_id)
        if base_mimetype(mimetype) not in SUPPORTED_MIMETYPES:
            raise InvalidInputError(
                f"Unsupported content type: {mimetype}",
                chapter_id=chapter_id,
                supported=list(SUPPORTED_MIMETYPES),
            )
        try:
            data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(
                f"Chapter content is not valid UTF-8: {e}", chapter_id=chapter_id
            ) from e

        _, book = self.repository.get_chapter(chapter_id)
        with self.locks.hold(book.isbn):
            chapter, _ = self.repository.get_chapter(chapter_id)
            self.chapters.put_content(chapter, data, mimetype)
        return chapter

    def resume(
        self,
        isbn: str,
        operation: str,
        steps: Iterable[Dict[str, Any]],
        pending: Optional[Dict[str, Any]] = None,
    ):
        """Re-run the plan reported by a PartialApplyFailure and finish the operation."""
        isbn = validate_isbn(isbn)
        try:
            plan = [RenumberStep(**step) for step in steps]
        except TypeError as e:
            raise InvalidInputError(f"Malformed renumber step: {e}") from e

        with self.locks.hold(isbn):
            book = self.repository.find_book(isbn)
            result = self.chapters.resume(book, operation, plan, pending)

        logger.info(f"Resumed {operation} on book {isbn} ({len(plan)} steps)")
        return result

    # ==================== PUBLISHING ====================

    def last_published_at(self, book: Book):
        return self.workflow.get_publication_state(book.isbn) or book.last_published_at

    def check_needs_republish(self, isbn: str) -> bool:
        """True if the book was never published or changed since it was."""
        book = self.repository.find_book(isbn)
        chapters = self.repository.list_chapters(book)
        return needs_reassembly(book, chapters, self.last_published_at(book))

    def publish(self, isbn: str, force: bool = False) -> PublishResult:
        """Package the book if the gate says it changed (or ``force``)."""
        isbn = validate_isbn(isbn)
        with self.locks.hold(isbn):
            book = self.repository.find_book(isbn)
            chapters = self.repository.list_chapters(book)
            if not force and not needs_reassembly(book, chapters, self.last_published_at(book)):
                logger.info(f"Book {isbn} unchanged since last publish, skipping")
                return PublishResult(isbn=isbn, published=False)
            artifact = self.assembler.assemble(book, self.sink)

        return PublishResult(isbn=isbn, published=True, artifact=artifact)

    def artifact_path(self, isbn: str) -> Path:
        """Location of the last packaged EPub for a book."""
        isbn = validate_isbn(isbn)
        if not isinstance(self.sink, FileSystemSink):
            raise NotFoundError(f"No local EPub for book {isbn}", isbn=isbn)
        path = self.sink.path_for(isbn)
        if not path.exists():
            raise NotFoundError(f"Book {isbn} has not been published", isbn=isbn)
        return path


# Service singleton
_service: Optional[PublishingService] = None


def get_publishing_service() -> PublishingService:
    """Get publishing service instance."""
    global _service
    if _service is None:
        _service = PublishingService()
    return _service


def set_publishing_service(service: Optional[PublishingService]) -> None:
    """Swap the singleton (tests, alternative stores)."""
    global _service
    _service = service
