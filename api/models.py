"""
Pydantic models for the publishing API.

Request bodies are validated here only for shape; ISBN checksums and
chapter number coercion happen in the service so that every caller gets
the same error kinds.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Requests
# =============================================================================

class BookCreateRequest(BaseModel):
    isbn: str = Field(..., description="ISBN-10 or ISBN-13, hyphens allowed")
    title: Optional[str] = None
    subtitle: Optional[str] = None
    subject: Optional[str] = None


class ChapterCreateRequest(BaseModel):
    """Insert a chapter; numbers below 1 go first, past the end append."""
    chapter_number: Any = Field(..., alias="chapterNumber")
    title: Optional[str] = Field(None, alias="chapterTitle")
    author: Optional[str] = Field(None, alias="chapterAuthorName")

    model_config = {"populate_by_name": True}


class RenumberStepModel(BaseModel):
    chapter_id: str
    old_number: int
    new_number: int


class RecoverRequest(BaseModel):
    """Plan reported in a partial_apply_failure error's context."""
    operation: str
    steps: List[RenumberStepModel] = Field(default_factory=list)
    pending: Dict[str, Any] = Field(default_factory=dict)


class PublishRequest(BaseModel):
    force: bool = False


# =============================================================================
# Responses
# =============================================================================

class BookResponse(BaseModel):
    id: str
    isbn: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    subject: Optional[str] = None
    chapter_count: int = 0
    metadata_status: str
    last_published_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @classmethod
    def from_book(cls, book) -> "BookResponse":
        return cls(
            id=book.id,
            isbn=book.isbn,
            title=book.title,
            subtitle=book.subtitle,
            subject=book.subject,
            chapter_count=book.chapter_count,
            metadata_status=book.metadata_status.value,
            last_published_at=book.last_published_at,
            modified_at=book.modified_at,
        )


class ChapterResponse(BaseModel):
    id: str
    number: int
    name: str
    title: Optional[str] = None
    author: Optional[str] = None
    status: str
    modified_at: Optional[datetime] = None

    @classmethod
    def from_chapter(cls, chapter) -> "ChapterResponse":
        return cls(
            id=chapter.id,
            number=chapter.number,
            name=chapter.name,
            title=chapter.title,
            author=chapter.author,
            status=chapter.status.value,
            modified_at=chapter.modified_at,
        )


class ChapterListResponse(BaseModel):
    isbn: str
    chapters: List[ChapterResponse]
    total: int


class ChapterDeleteResponse(BaseModel):
    success: bool = True
    isbn: str
    deleted_number: int
    chapter_count: int


class MetadataUpdatedResponse(BaseModel):
    success: bool = True
    is_metadata_updated: bool = Field(..., serialization_alias="isMetadataUpdated")


class ArtifactInfo(BaseModel):
    filename: str
    size: int
    sha256: str
    location: Optional[str] = None
    chapters: List[Dict[str, Any]] = Field(default_factory=list)


class PublishResponse(BaseModel):
    isbn: str
    publishing_initiated: bool = Field(True, serialization_alias="publishingInitiated")
    published: bool
    artifact: Optional[ArtifactInfo] = None


class ErrorDetail(BaseModel):
    kind: str
    message: str
    context: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
