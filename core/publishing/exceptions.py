"""
Publishing exceptions.

Every error carries a stable machine-readable ``kind`` plus a ``context``
dict (ISBN, chapter numbers, node ids) so the HTTP layer can report it
without parsing messages.
"""

from typing import Any, Dict, List, Optional


class PublishingError(Exception):
    """Base exception for book/chapter operations"""
    kind = "publishing_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "context": self.context}


class InvalidInputError(PublishingError):
    """Malformed ISBN, non-numeric chapter number, missing parameter"""
    kind = "invalid_input"


class NotFoundError(PublishingError):
    """Referenced book or chapter does not exist"""
    kind = "not_found"


class InvalidPositionError(PublishingError):
    """Existing chapter numbering is not a dense 1..N run"""
    kind = "invalid_position"

    def __init__(self, message: str, numbers: Optional[List[int]] = None, **context: Any):
        self.numbers = numbers or []
        super().__init__(message, numbers=self.numbers, **context)


class PartialApplyFailure(PublishingError):
    """
    A renumber step failed after earlier steps were written.

    ``steps`` is the full plan; re-running it is safe because each step
    overwrites name and number directly.  ``pending`` holds whatever the
    operation still has to do once the plan is through (for an insert:
    the new chapter's number, title and author).
    """
    kind = "partial_apply_failure"

    def __init__(
        self,
        message: str,
        operation: str,
        steps: list,
        applied: int,
        pending: Optional[Dict[str, Any]] = None,
        **context: Any,
    ):
        self.operation = operation
        self.steps = steps
        self.applied = applied
        self.pending = pending or {}
        super().__init__(
            message,
            operation=operation,
            applied=applied,
            planned=len(steps),
            steps=[step.to_dict() for step in steps],
            pending=self.pending,
            **context,
        )


class IncompleteChapterError(PublishingError):
    """A chapter has no content to package"""
    kind = "incomplete_chapter"

    def __init__(self, number: int, reason: str = "has no content", **context: Any):
        self.number = number
        super().__init__(f"Chapter {number} {reason}", number=number, **context)


class AssemblyIOError(PublishingError):
    """Writing the packaged artifact to its sink failed"""
    kind = "assembly_io_failure"


class LockTimeoutError(PublishingError):
    """Another operation holds the book for longer than the lock timeout"""
    kind = "busy"


class StoreError(PublishingError):
    """Content store failure that is not one of the cases above"""
    kind = "store_error"


class TransientStoreError(StoreError):
    """Store call failed for a reason worth retrying (locked database, I/O hiccup)"""
    kind = "store_busy"
