"""
Chapter Sequencer

Pure planning for chapter insert/delete.  Chapters are identified by
(number, chapter_id) pairs that must form a dense 1..N run; the planner
returns the renumber steps needed to keep the run dense after the
operation, in the order they must be applied:

- insert shifts the suffix up by one, highest number first
- delete shifts the suffix down by one, lowest number first

Either order guarantees that no two chapters ever hold the same number
while the steps are applied one at a time.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

from .exceptions import InvalidInputError, InvalidPositionError, NotFoundError
from .models import DeletePlan, InsertPlan, RenumberStep

ChapterKey = Tuple[int, str]


def parse_chapter_number(value) -> int:
    """Accept an int or a numeric string ("3", " 3 ", "-1"); reject anything else."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Provided chapter number is not a number: {value}")
    if isinstance(value, int):
        return value
    text = str(value).strip() if value is not None else ""
    try:
        return int(text)
    except ValueError:
        raise InvalidInputError(
            f"Provided chapter number is not a number: {value}", chapter_number=value
        ) from None


def check_dense(existing: Iterable[ChapterKey]) -> List[ChapterKey]:
    """
    Sort chapters by number and verify they are exactly 1..N.

    Raises:
        InvalidPositionError: on a gap, a duplicate, or a number < 1.
    """
    ordered = sorted(existing, key=lambda entry: entry[0])
    for expected, (number, _chapter_id) in enumerate(ordered, start=1):
        if number != expected:
            numbers = [n for n, _ in ordered]
            raise InvalidPositionError(
                f"Chapter numbering is not dense: expected {expected}, found {number}",
                numbers=numbers,
            )
    return ordered


def plan_insert(existing: Iterable[ChapterKey], requested_number: int) -> InsertPlan:
    """
    Plan the insertion of a new chapter at ``requested_number``.

    Numbers below 1 mean "first", numbers past the end mean "append".
    Existing chapters at or after the effective number move up by one,
    walking from the last chapter down to the insertion point.
    """
    ordered = check_dense(existing)
    count = len(ordered)

    effective = max(requested_number, 1)
    if effective > count:
        return InsertPlan(effective_number=count + 1)

    steps: List[RenumberStep] = []
    for number, chapter_id in reversed(ordered):
        steps.append(RenumberStep(chapter_id, number, number + 1))
        if number == effective:
            break

    return InsertPlan(effective_number=effective, steps=steps)


def plan_delete(existing: Iterable[ChapterKey], number_to_delete: int) -> DeletePlan:
    """
    Plan the deletion of chapter ``number_to_delete``.

    Every chapter after it moves down by one, walking upwards from the
    deleted position.

    Raises:
        NotFoundError: no chapter has that number.
    """
    ordered = check_dense(existing)

    target_id = None
    for number, chapter_id in ordered:
        if number == number_to_delete:
            target_id = chapter_id
            break
    if target_id is None:
        raise NotFoundError(
            f"No chapter number {number_to_delete}", chapter_number=number_to_delete
        )

    steps = [
        RenumberStep(chapter_id, number, number - 1)
        for number, chapter_id in ordered
        if number > number_to_delete
    ]
    return DeletePlan(chapter_id=target_id, number=number_to_delete, steps=steps)


def chapter_folder_name(number: int, prefix: str = "chapter-", padding: int = 0) -> str:
    """Folder name for a chapter number: ``chapter-3`` or, padded, ``chapter-003``."""
    if padding:
        return f"{prefix}{number:0{padding}d}"
    return f"{prefix}{number}"
