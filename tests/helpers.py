"""Test helpers shared across modules."""

ISBN = "9780140449136"
OTHER_ISBN = "9780306406157"


def add_chapters(service, isbn, count, with_content=False):
    """Append ``count`` chapters titled "Chapter <n>"; returns them in order."""
    chapters = []
    for n in range(1, count + 1):
        chapter = service.create_chapter(isbn, n, f"Chapter {n}", "Homer")
        if with_content:
            service.put_chapter_content(chapter.id, f"<p>Text of chapter {n}</p>".encode(), "text/html")
        chapters.append(chapter)
    return chapters


def numbers_and_titles(service, isbn):
    return [(c.number, c.title) for c in service.list_chapters(isbn)]
