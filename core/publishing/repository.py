"""
Book Repository
Reads books and chapters out of the content store.

Layout in the store:

    /<isbn>                    bestpub:bookFolder    (bookInfo bundle)
    /<isbn>/chapter-1          bestpub:chapterFolder (chapterInfo bundle, content)
    /<isbn>/chapter-2          ...
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from core.store import NodeInfo, NodeStore

from .exceptions import InvalidPositionError, NotFoundError, StoreError
from .isbn import validate_isbn
from .models import (
    BOOK_FOLDER_TYPE, BOOK_INFO_ASPECT, CHAPTER_FOLDER_TYPE,
    PROP_BOOK_METADATA_STATUS, PROP_BOOK_SUBJECT, PROP_BOOK_SUBTITLE,
    PROP_BOOK_TITLE, PROP_CHAPTER_AUTHOR, PROP_CHAPTER_METADATA_STATUS,
    PROP_CHAPTER_NUMBER, PROP_CHAPTER_TITLE, PROP_ISBN,
    PROP_NUMBER_OF_CHAPTERS, PROP_WEB_PUBLISHED_DATE,
    Book, BookMetadataStatus, Chapter, ChapterMetadataStatus,
)

logger = logging.getLogger(__name__)


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class BookRepository:
    """Maps store nodes to Book and Chapter objects."""

    def __init__(self, store: NodeStore):
        self.store = store

    # ==================== BOOKS ====================

    def register_book(
        self,
        isbn: str,
        title: Optional[str] = None,
        subtitle: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> Book:
        """Create the ISBN folder with an empty chapter list."""
        isbn = validate_isbn(isbn)
        if self.store.find_child(None, isbn) is not None:
            raise StoreError(f"Book {isbn} already exists", isbn=isbn)

        book_id = self.store.create_child(None, isbn, BOOK_FOLDER_TYPE)
        self.store.attach_metadata(book_id, BOOK_INFO_ASPECT, {
            PROP_ISBN: isbn,
            PROP_BOOK_TITLE: title,
            PROP_BOOK_SUBTITLE: subtitle,
            PROP_BOOK_SUBJECT: subject,
        })
        # Counters stay outside the bundle so they are not copied onto chapters
        self.store.set_property(book_id, PROP_NUMBER_OF_CHAPTERS, 0)
        self.store.set_property(
            book_id, PROP_BOOK_METADATA_STATUS, BookMetadataStatus.MISSING.value
        )
        logger.info(f"Registered book folder /{isbn}")
        return self.get_book_by_id(book_id)

    def find_book(self, isbn: str) -> Book:
        """Look up a book by ISBN (validated first)."""
        isbn = validate_isbn(isbn)
        node = self.store.find_child(None, isbn)
        if node is None or node.type != BOOK_FOLDER_TYPE:
            raise NotFoundError(f"Book {isbn} not found", isbn=isbn)
        return self._to_book(node)

    def get_book_by_id(self, book_id: str) -> Book:
        node = self.store.get_node(book_id)
        if node is None or node.type != BOOK_FOLDER_TYPE:
            raise NotFoundError(f"Book node {book_id} not found", book_id=book_id)
        return self._to_book(node)

    def list_books(self) -> List[Book]:
        return [self._to_book(n) for n in self.store.list_children(None, BOOK_FOLDER_TYPE)]

    # ==================== CHAPTERS ====================

    def list_chapters(self, book: Book) -> List[Chapter]:
        """
        Chapters of a book sorted by chapter number.

        The store lists children by name ("chapter-10" before "chapter-2"),
        so the number property is parsed and sorted numerically here.
        """
        chapters = [
            self._to_chapter(node)
            for node in self.store.list_children(book.id, CHAPTER_FOLDER_TYPE)
        ]
        chapters.sort(key=lambda c: c.number)
        return chapters

    def get_chapter(self, chapter_id: str) -> Tuple[Chapter, Book]:
        """Chapter plus its owning book."""
        node = self.store.get_node(chapter_id)
        if node is None or node.type != CHAPTER_FOLDER_TYPE:
            raise NotFoundError(
                f"Chapter folder does not exist: {chapter_id}", chapter_id=chapter_id
            )
        return self._to_chapter(node), self.get_book_by_id(node.parent_id)

    def count_chapters(self, book: Book) -> int:
        """Live chapter folders, including ones whose metadata is not attached yet."""
        return len(self.store.list_children(book.id, CHAPTER_FOLDER_TYPE))

    # ==================== MAPPING ====================

    def _to_book(self, node: NodeInfo) -> Book:
        props = node.properties
        status = props.get(PROP_BOOK_METADATA_STATUS) or BookMetadataStatus.MISSING.value
        return Book(
            id=node.id,
            isbn=props.get(PROP_ISBN) or node.name,
            title=props.get(PROP_BOOK_TITLE),
            subtitle=props.get(PROP_BOOK_SUBTITLE),
            subject=props.get(PROP_BOOK_SUBJECT),
            chapter_count=int(props.get(PROP_NUMBER_OF_CHAPTERS) or 0),
            metadata_status=BookMetadataStatus(status),
            last_published_at=_parse_datetime(props.get(PROP_WEB_PUBLISHED_DATE)),
            modified_at=node.modified_at,
        )

    def _to_chapter(self, node: NodeInfo) -> Chapter:
        props = node.properties
        number = props.get(PROP_CHAPTER_NUMBER)
        if isinstance(number, bool) or not isinstance(number, int):
            raise InvalidPositionError(
                f"Chapter folder {node.name} has no usable chapter number: {number!r}",
                chapter_id=node.id,
            )
        status = props.get(PROP_CHAPTER_METADATA_STATUS) or ChapterMetadataStatus.MISSING.value
        return Chapter(
            id=node.id,
            number=number,
            name=node.name,
            title=props.get(PROP_CHAPTER_TITLE),
            author=props.get(PROP_CHAPTER_AUTHOR),
            status=ChapterMetadataStatus(status),
            modified_at=node.modified_at,
        )
