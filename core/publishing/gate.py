"""
Change-Detection Gate

Decides whether a book must be packaged again by comparing the last
published timestamp with the book's and its chapters' modification times.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from .models import Book, Chapter


def first_modified_after(
    book: Book,
    chapters: Iterable[Chapter],
    published_at: datetime,
) -> Optional[datetime]:
    """Return the first modification time later than ``published_at``, or None."""
    if book.modified_at is not None and book.modified_at > published_at:
        return book.modified_at
    for chapter in chapters:
        if chapter.modified_at is not None and chapter.modified_at > published_at:
            return chapter.modified_at
    return None


def needs_reassembly(
    book: Book,
    chapters: Iterable[Chapter],
    last_published_at: Optional[datetime],
) -> bool:
    """Never published, or anything changed strictly after the last publish."""
    if last_published_at is None:
        return True
    return first_modified_after(book, chapters, last_published_at) is not None
