#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
EPUB Exporter

Builds the EPub (ZIP) package for a book.  Output is byte-for-byte
reproducible: entries are written in a fixed order with a fixed ZIP
timestamp, and nothing time- or random-dependent goes into the package
beyond what the caller passes in.
"""

import html
import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Earliest timestamp a ZIP entry can carry; used for every entry
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass
class EpubChapter:
    """One chapter document in the package."""
    number: int
    title: str
    content: str  # XHTML body fragment
    descriptor: Dict[str, Any] = field(default_factory=dict)
    filename: str = ""

    def __post_init__(self):
        if not self.filename:
            self.filename = f"chapter-{self.number:03d}.xhtml"

    @property
    def item_id(self) -> str:
        return f"chapter-{self.number:03d}"

    @property
    def descriptor_filename(self) -> str:
        return f"metadata/{self.item_id}.json"


@dataclass
class EpubMetadata:
    """EPUB metadata."""
    identifier: str              # urn:isbn:...
    title: str = "Untitled"
    subtitle: str = ""
    author: str = ""
    language: str = "en"
    publisher: str = ""
    subject: str = ""
    modified: Optional[datetime] = None


class EpubExporter:
    """
    Writes content to EPUB format.

    EPUB structure:
    - mimetype
    - META-INF/container.xml
    - OEBPS/
        - content.opf (package document)
        - toc.ncx (navigation)
        - nav.xhtml (EPUB3 navigation)
        - style.css
        - chapter-001.xhtml, ...
        - metadata/chapter-001.json, ...
    """

    def build(self, chapters: List[EpubChapter], metadata: EpubMetadata) -> bytes:
        """
        Build the EPUB in memory.

        Chapters are packaged in the order given; callers sort them.

        Returns:
            The ZIP bytes
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as epub:
            # mimetype must be first and uncompressed
            self._write(epub, "mimetype", "application/epub+zip", zipfile.ZIP_STORED)

            self._write(epub, "META-INF/container.xml", self._generate_container())
            self._write(epub, "OEBPS/content.opf", self._generate_opf(chapters, metadata))
            self._write(epub, "OEBPS/toc.ncx", self._generate_ncx(chapters, metadata))
            self._write(epub, "OEBPS/nav.xhtml", self._generate_nav(chapters, metadata))
            self._write(epub, "OEBPS/style.css", self._generate_css())

            for chapter in chapters:
                self._write(
                    epub,
                    f"OEBPS/{chapter.filename}",
                    self._generate_chapter_xhtml(chapter, metadata),
                )
                self._write(
                    epub,
                    f"OEBPS/{chapter.descriptor_filename}",
                    json.dumps(chapter.descriptor, indent=2, sort_keys=True, ensure_ascii=False),
                )

        data = buffer.getvalue()
        logger.info(f"EPUB built: {metadata.identifier} ({len(chapters)} chapters, {len(data)} bytes)")
        return data

    @staticmethod
    def _write(epub: zipfile.ZipFile, name: str, text: str,
               compress_type: int = zipfile.ZIP_DEFLATED) -> None:
        info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
        info.compress_type = compress_type
        info.external_attr = 0o644 << 16
        epub.writestr(info, text.encode("utf-8"))

    def _generate_container(self) -> str:
        """Generate META-INF/container.xml."""
        return '''<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>'''

    def _generate_opf(self, chapters: List[EpubChapter], meta: EpubMetadata) -> str:
        """Generate OEBPS/content.opf."""
        items = [
            '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>',
            '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
            '<item id="style" href="style.css" media-type="text/css"/>',
        ]
        spine = []

        for chapter in chapters:
            items.append(
                f'<item id="{chapter.item_id}" href="{chapter.filename}" media-type="application/xhtml+xml"/>'
            )
            items.append(
                f'<item id="{chapter.item_id}-meta" href="{chapter.descriptor_filename}" '
                f'media-type="application/json"/>'
            )
            spine.append(f'<itemref idref="{chapter.item_id}"/>')

        optional = []
        if meta.subject:
            optional.append(f"<dc:subject>{html.escape(meta.subject)}</dc:subject>")
        if meta.subtitle:
            optional.append(f"<dc:description>{html.escape(meta.subtitle)}</dc:description>")
        if meta.author:
            optional.append(f"<dc:creator>{html.escape(meta.author)}</dc:creator>")
        if meta.publisher:
            optional.append(f"<dc:publisher>{html.escape(meta.publisher)}</dc:publisher>")
        modified = (meta.modified or datetime(1980, 1, 1)).strftime("%Y-%m-%dT%H:%M:%SZ")

        return f'''<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="BookId">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="BookId">{html.escape(meta.identifier)}</dc:identifier>
    <dc:title>{html.escape(meta.title)}</dc:title>
    <dc:language>{html.escape(meta.language)}</dc:language>
    {chr(10).join(optional)}
    <meta property="dcterms:modified">{modified}</meta>
  </metadata>
  <manifest>
    {chr(10).join(items)}
  </manifest>
  <spine toc="ncx">
    {chr(10).join(spine)}
  </spine>
</package>'''

    def _generate_ncx(self, chapters: List[EpubChapter], meta: EpubMetadata) -> str:
        """Generate OEBPS/toc.ncx (EPUB2 navigation)."""
        nav_points = []
        for chapter in chapters:
            nav_points.append(f'''
    <navPoint id="navPoint-{chapter.number}" playOrder="{chapter.number}">
      <navLabel><text>{html.escape(chapter.title)}</text></navLabel>
      <content src="{chapter.filename}"/>
    </navPoint>''')

        return f'''<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="{html.escape(meta.identifier)}"/>
    <meta name="dtb:depth" content="1"/>
    <meta name="dtb:totalPageCount" content="0"/>
    <meta name="dtb:maxPageNumber" content="0"/>
  </head>
  <docTitle><text>{html.escape(meta.title)}</text></docTitle>
  <navMap>
    {''.join(nav_points)}
  </navMap>
</ncx>'''

    def _generate_nav(self, chapters: List[EpubChapter], meta: EpubMetadata) -> str:
        """Generate OEBPS/nav.xhtml (EPUB3 navigation)."""
        toc_items = []
        for chapter in chapters:
            toc_items.append(f'<li><a href="{chapter.filename}">{html.escape(chapter.title)}</a></li>')

        return f'''<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" lang="{meta.language}">
<head>
  <title>Contents</title>
  <link rel="stylesheet" type="text/css" href="style.css"/>
</head>
<body>
  <nav epub:type="toc" id="toc">
    <h1>Contents</h1>
    <ol>
      {''.join(toc_items)}
    </ol>
  </nav>
</body>
</html>'''

    def _generate_chapter_xhtml(self, chapter: EpubChapter, meta: EpubMetadata) -> str:
        """Generate chapter XHTML file."""
        return f'''<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" lang="{meta.language}">
<head>
  <title>{html.escape(chapter.title)}</title>
  <link rel="stylesheet" type="text/css" href="style.css"/>
</head>
<body>
  <section class="chapter" id="{chapter.item_id}">
    <h1 class="chapter-title">{html.escape(chapter.title)}</h1>
    {chapter.content}
  </section>
</body>
</html>'''

    def _generate_css(self) -> str:
        """Generate stylesheet."""
        return '''
/* EPUB Stylesheet - Best Publishing */

body {
  font-family: serif;
  font-size: 1em;
  line-height: 1.6;
  margin: 1em;
  padding: 0;
}

h1, h2, h3, h4, h5, h6 {
  font-family: sans-serif;
  font-weight: bold;
  margin-top: 1.5em;
  margin-bottom: 0.5em;
}

h1 { font-size: 1.8em; text-align: center; }
h2 { font-size: 1.5em; }
h3 { font-size: 1.3em; }

p {
  margin: 0.5em 0;
  text-align: justify;
  text-indent: 1.5em;
}

p:first-of-type {
  text-indent: 0;
}

.chapter-title {
  page-break-before: always;
}
'''
