"""
Per-book mutual exclusion.

Insert, delete and publish for one ISBN run one at a time; different
ISBNs never wait on each other.  Lock entries are reference counted and
dropped when nobody holds or waits on them.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class BookLockRegistry:
    """Registry of one lock per book key."""

    def __init__(self, timeout: Optional[float] = None):
        self._guard = threading.Lock()
        self._entries: Dict[str, _LockEntry] = {}
        self.timeout = timeout

    def _checkout(self, key: str) -> _LockEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: the lock was not free within ``timeout`` seconds.
        """
        wait = self.timeout if timeout is None else timeout
        entry = self._checkout(key)
        try:
            acquired = entry.lock.acquire(timeout=-1 if wait is None else wait)
            if not acquired:
                raise LockTimeoutError(
                    f"Book {key} is busy with another operation", isbn=key, timeout=wait
                )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
