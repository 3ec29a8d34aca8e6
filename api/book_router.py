"""
Book Publishing API Router
FastAPI endpoints for books, chapter folders and EPub publishing.

Handlers are plain ``def`` on purpose: the service blocks on per-book
locks and SQLite, so FastAPI runs them in its threadpool.
Errors propagate as PublishingError and are rendered by the handler
registered in api.main.
"""
from fastapi import APIRouter, Body, Request
from fastapi.responses import FileResponse
from typing import List, Optional
import logging

from core.publishing.models import Chapter
from core.publishing.service import PublishingService, get_publishing_service

from api.models import (
    BookCreateRequest, BookResponse,
    ChapterCreateRequest, ChapterResponse, ChapterListResponse, ChapterDeleteResponse,
    RecoverRequest, PublishRequest, PublishResponse, ArtifactInfo,
    MetadataUpdatedResponse,
)
from api.rate_limiter import limiter, rate_limit_config

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Publishing"])


def get_service() -> PublishingService:
    """Get publishing service instance."""
    return get_publishing_service()


# =============================================================================
# Books
# =============================================================================

@router.post("/api/books", response_model=BookResponse, status_code=201)
@limiter.limit(rate_limit_config.get_limit("chapter_write"))
def create_book(request: Request, data: BookCreateRequest):
    """
    Register a book folder.

    - **isbn**: ISBN-10 or ISBN-13 (checksum verified)
    - **title**, **subtitle**, **subject**: optional book info
    """
    book = get_service().register_book(data.isbn, data.title, data.subtitle, data.subject)
    return BookResponse.from_book(book)


@router.get("/api/books", response_model=List[BookResponse])
def list_books():
    """List registered books."""
    return [BookResponse.from_book(b) for b in get_service().list_books()]


@router.get("/api/books/{isbn}", response_model=BookResponse)
def get_book(isbn: str):
    """Get a book by ISBN."""
    return BookResponse.from_book(get_service().get_book(isbn))


# =============================================================================
# Chapters
# =============================================================================

@router.get("/api/books/{isbn}/chapters", response_model=ChapterListResponse)
def list_chapters(isbn: str):
    """Chapters of a book in chapter-number order."""
    chapters = get_service().list_chapters(isbn)
    return ChapterListResponse(
        isbn=isbn,
        chapters=[ChapterResponse.from_chapter(c) for c in chapters],
        total=len(chapters),
    )


@router.post("/api/books/{isbn}/chapters", response_model=ChapterResponse, status_code=201)
@limiter.limit(rate_limit_config.get_limit("chapter_write"))
def create_chapter(request: Request, isbn: str, data: ChapterCreateRequest):
    """
    Insert a chapter folder.

    Chapters at or after **chapterNumber** move up by one.  Numbers below 1
    insert first; numbers past the end append.
    """
    chapter = get_service().create_chapter(isbn, data.chapter_number, data.title, data.author)
    return ChapterResponse.from_chapter(chapter)


@router.delete("/api/chapters/{chapter_id}", response_model=ChapterDeleteResponse)
@limiter.limit(rate_limit_config.get_limit("chapter_write"))
def delete_chapter(request: Request, chapter_id: str):
    """Delete a chapter folder; later chapters move down by one."""
    result = get_service().delete_chapter(chapter_id)
    return ChapterDeleteResponse(**result)


@router.put("/api/chapters/{chapter_id}/content", response_model=ChapterResponse)
@limiter.limit(rate_limit_config.get_limit("chapter_write"))
def put_chapter_content(request: Request, chapter_id: str, body: bytes = Body(..., media_type="text/html")):
    """
    Replace a chapter's content.

    The body must be UTF-8.  The request Content-Type is stored with it
    (text/html, application/xhtml+xml, text/markdown or text/plain).
    """
    mimetype = request.headers.get("content-type", "text/html")
    chapter = get_service().put_chapter_content(chapter_id, body, mimetype)
    return ChapterResponse.from_chapter(chapter)


@router.post("/api/books/{isbn}/recover")
@limiter.limit(rate_limit_config.get_limit("chapter_write"))
def recover_book(request: Request, isbn: str, data: RecoverRequest):
    """
    Re-run a renumber plan after a partial_apply_failure.

    Send back the ``operation``, ``steps`` and ``pending`` from the error
    context unchanged.
    """
    result = get_service().resume(
        isbn, data.operation, [s.model_dump() for s in data.steps], data.pending
    )
    if isinstance(result, Chapter):
        return {"success": True, "operation": data.operation,
                "chapter": ChapterResponse.from_chapter(result).model_dump(mode="json")}
    return {"success": True, "operation": data.operation, "chapter_count": result}


# =============================================================================
# Publishing
# =============================================================================

@router.get("/api/books/{isbn}/metadata-updates", response_model=MetadataUpdatedResponse)
def check_metadata_updates(isbn: str):
    """Whether the book or any chapter changed since it was last published."""
    updated = get_service().check_needs_republish(isbn)
    return MetadataUpdatedResponse(is_metadata_updated=updated)


@router.post("/api/books/{isbn}/publish", response_model=PublishResponse)
@limiter.limit(rate_limit_config.get_limit("publish"))
def publish_book(request: Request, isbn: str, data: Optional[PublishRequest] = None):
    """
    Package the book as EPub if anything changed since the last publish.

    - **force**: package even when nothing changed
    """
    force = data.force if data else False
    result = get_service().publish(isbn, force=force)

    artifact = None
    if result.artifact is not None:
        artifact = ArtifactInfo(
            filename=result.artifact.filename,
            size=result.artifact.size,
            sha256=result.artifact.sha256,
            location=result.artifact.location,
            chapters=[d.to_dict() for d in result.artifact.descriptors],
        )
    return PublishResponse(isbn=result.isbn, published=result.published, artifact=artifact)


@router.get("/api/books/{isbn}/download")
def download_epub(isbn: str):
    """Download the last packaged EPub."""
    path = get_service().artifact_path(isbn)
    return FileResponse(path, media_type="application/epub+zip", filename=path.name)
