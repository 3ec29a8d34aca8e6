"""
Book and chapter domain types.

Node type tags and property keys used in the content store live here too,
so the store adapter stays free of publishing vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ==================== STORE VOCABULARY ====================

BOOK_FOLDER_TYPE = "bestpub:bookFolder"
CHAPTER_FOLDER_TYPE = "bestpub:chapterFolder"

# Metadata bundles (aspects)
BOOK_INFO_ASPECT = "bestpub:bookInfo"
CHAPTER_INFO_ASPECT = "bestpub:chapterInfo"

# Property keys
PROP_NAME = "name"
PROP_ISBN = "isbn"
PROP_BOOK_TITLE = "bookTitle"
PROP_BOOK_SUBTITLE = "bookSubtitle"
PROP_BOOK_SUBJECT = "bookSubject"
PROP_NUMBER_OF_CHAPTERS = "bookNumberOfChapters"
PROP_BOOK_METADATA_STATUS = "bookMetadataStatus"
PROP_CHAPTER_NUMBER = "chapterNumber"
PROP_CHAPTER_TITLE = "chapterTitle"
PROP_CHAPTER_AUTHOR = "chapterAuthorName"
PROP_CHAPTER_METADATA_STATUS = "chapterMetadataStatus"
PROP_WEB_PUBLISHED_DATE = "webPublishedDate"


# ==================== ENUMS ====================

class BookMetadataStatus(str, Enum):
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    MISSING = "MISSING"


class ChapterMetadataStatus(str, Enum):
    COMPLETE = "COMPLETE"
    MISSING = "MISSING"


# ==================== AGGREGATE ====================

@dataclass
class Chapter:
    """One chapter folder as read from the store."""
    id: str
    number: int
    name: str
    title: Optional[str] = None
    author: Optional[str] = None
    status: ChapterMetadataStatus = ChapterMetadataStatus.MISSING
    modified_at: Optional[datetime] = None

    @property
    def metadata_complete(self) -> bool:
        return self.status == ChapterMetadataStatus.COMPLETE


@dataclass
class Book:
    """The ISBN folder and its book info metadata."""
    id: str
    isbn: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    subject: Optional[str] = None
    chapter_count: int = 0
    metadata_status: BookMetadataStatus = BookMetadataStatus.MISSING
    last_published_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


# ==================== SEQUENCER OUTPUT ====================

@dataclass(frozen=True)
class RenumberStep:
    """Move one chapter folder from ``old_number`` to ``new_number``."""
    chapter_id: str
    old_number: int
    new_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chapter_id": self.chapter_id,
            "old_number": self.old_number,
            "new_number": self.new_number,
        }


@dataclass
class InsertPlan:
    effective_number: int
    steps: List[RenumberStep] = field(default_factory=list)


@dataclass
class DeletePlan:
    chapter_id: str
    number: int
    steps: List[RenumberStep] = field(default_factory=list)


# ==================== PACKAGING ====================

@dataclass(frozen=True)
class ChapterDescriptor:
    """Per-chapter metadata record written next to the chapter content."""
    number: int
    title: str
    author: str
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "author": self.author,
            "status": self.status,
        }


@dataclass
class PackagedArtifact:
    """Point-in-time EPub snapshot of a book; never mutated once built."""
    isbn: str
    filename: str
    data: bytes
    entries: List[str]
    descriptors: List[ChapterDescriptor]
    sha256: str
    location: Optional[str] = None  # set by the sink

    @property
    def size(self) -> int:
        return len(self.data)
