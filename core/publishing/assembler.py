"""
Artifact Assembler

Walks a book's chapters in chapter-number order and packages them into a
single EPub with one metadata descriptor per chapter.  Assembly is
all-or-nothing: every chapter's content is read and rendered before a
single byte reaches the sink.
"""

from __future__ import annotations

import hashlib
import html
import logging
import os
from pathlib import Path
from typing import List, Optional, Protocol

import markdown

from core.export.epub_exporter import EpubChapter, EpubExporter, EpubMetadata
from core.store import NodeStore, StoredContent
from core.store.models import utcnow

from .aggregate import BookAggregateUpdater
from .exceptions import AssemblyIOError, IncompleteChapterError, InvalidInputError
from .models import Book, ChapterDescriptor, PackagedArtifact
from .repository import BookRepository
from .sequencer import check_dense

logger = logging.getLogger(__name__)


# ==================== SINKS ====================

class ArtifactSink(Protocol):
    """Destination for packaged artifacts; returns where the artifact went."""

    def write(self, artifact: PackagedArtifact) -> str: ...


class FileSystemSink:
    """Writes ``<root>/<isbn>.epub``, replacing the previous package atomically."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, isbn: str) -> Path:
        return self.root / f"{isbn}.epub"

    def write(self, artifact: PackagedArtifact) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.root / artifact.filename
        tmp = target.with_name(f".{target.name}.tmp")
        try:
            tmp.write_bytes(artifact.data)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()
        return str(target)


# ==================== CONTENT RENDERING ====================

SUPPORTED_MIMETYPES = ("text/html", "application/xhtml+xml", "text/markdown", "text/plain")


def base_mimetype(mimetype: str) -> str:
    """``"text/html; charset=utf-8"`` -> ``"text/html"``"""
    return (mimetype or "").split(";")[0].strip().lower()


def render_content(content: StoredContent) -> str:
    """Turn stored chapter content into an XHTML body fragment."""
    text = content.data.decode("utf-8")
    mimetype = base_mimetype(content.mimetype)

    if mimetype in ("text/html", "application/xhtml+xml"):
        return text
    if mimetype == "text/markdown":
        return markdown.markdown(text, extensions=["extra"], output_format="xhtml")

    # Plain text: blank-line separated paragraphs
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    return "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)


# ==================== ASSEMBLER ====================

class ArtifactAssembler:
    """Builds and stores the EPub for a book."""

    def __init__(
        self,
        store: NodeStore,
        repository: BookRepository,
        updater: BookAggregateUpdater,
        exporter: Optional[EpubExporter] = None,
        language: str = "en",
        publisher: str = "",
    ):
        self.store = store
        self.repository = repository
        self.updater = updater
        self.exporter = exporter or EpubExporter()
        self.language = language
        self.publisher = publisher

    def build(self, book: Book) -> PackagedArtifact:
        """
        Package the book without side effects.

        Raises:
            InvalidInputError: the book has no chapters.
            InvalidPositionError: chapter numbering is not dense.
            IncompleteChapterError: a chapter has no content.
        """
        chapters = self.repository.list_chapters(book)
        if not chapters:
            raise InvalidInputError(f"Book {book.isbn} has no chapters to publish", isbn=book.isbn)
        check_dense((c.number, c.id) for c in chapters)

        epub_chapters: List[EpubChapter] = []
        descriptors: List[ChapterDescriptor] = []
        authors: List[str] = []
        for chapter in chapters:
            content = self.store.read_content(chapter.id)
            if content is None or not content.data.strip():
                raise IncompleteChapterError(chapter.number, isbn=book.isbn, chapter_id=chapter.id)

            descriptor = ChapterDescriptor(
                number=chapter.number,
                title=chapter.title or f"Chapter {chapter.number}",
                author=chapter.author or "",
                status=chapter.status.value,
            )
            try:
                body = render_content(content)
            except UnicodeDecodeError as e:
                raise IncompleteChapterError(
                    chapter.number,
                    reason="content is not valid UTF-8",
                    isbn=book.isbn,
                    chapter_id=chapter.id,
                ) from e

            descriptors.append(descriptor)
            epub_chapters.append(EpubChapter(
                number=chapter.number,
                title=descriptor.title,
                content=body,
                descriptor=descriptor.to_dict(),
            ))
            if chapter.author and chapter.author not in authors:
                authors.append(chapter.author)

        metadata = EpubMetadata(
            identifier=f"urn:isbn:{book.isbn}",
            title=book.title or book.isbn,
            subtitle=book.subtitle or "",
            author=", ".join(authors),
            language=self.language,
            publisher=self.publisher,
            subject=book.subject or "",
            modified=book.modified_at,
        )
        data = self.exporter.build(epub_chapters, metadata)

        entries = ["mimetype", "META-INF/container.xml", "OEBPS/content.opf",
                   "OEBPS/toc.ncx", "OEBPS/nav.xhtml", "OEBPS/style.css"]
        for ch in epub_chapters:
            entries.append(f"OEBPS/{ch.filename}")
            entries.append(f"OEBPS/{ch.descriptor_filename}")

        return PackagedArtifact(
            isbn=book.isbn,
            filename=f"{book.isbn}.epub",
            data=data,
            entries=entries,
            descriptors=descriptors,
            sha256=hashlib.sha256(data).hexdigest(),
        )

    def assemble(self, book: Book, sink: ArtifactSink) -> PackagedArtifact:
        """
        Build, hand to the sink, then stamp the book as published.

        Raises:
            AssemblyIOError: the sink failed; the published date is unchanged.
        """
        artifact = self.build(book)
        try:
            artifact.location = sink.write(artifact)
        except OSError as e:
            logger.error(f"Writing EPub for book {book.isbn} failed: {e}")
            raise AssemblyIOError(
                f"Could not store EPub for book {book.isbn}: {e}", isbn=book.isbn
            ) from e

        self.updater.record_published(book, utcnow())
        logger.info(
            f"Packaged book {book.isbn}: {len(artifact.descriptors)} chapters, "
            f"{artifact.size} bytes -> {artifact.location}"
        )
        return artifact
