"""
ISBN-10 / ISBN-13 format and checksum rules.

Book folders are named by their normalized ISBN (digits only, upper-case X).
"""

import re

from .exceptions import InvalidInputError

_SEPARATORS = re.compile(r"[\s-]")
_ISBN10 = re.compile(r"^\d{9}[\dX]$")
_ISBN13 = re.compile(r"^97[89]\d{10}$")


def normalize_isbn(value: str) -> str:
    """Strip hyphens/spaces and upper-case a trailing x."""
    return _SEPARATORS.sub("", value or "").upper()


def _isbn10_ok(digits: str) -> bool:
    total = 0
    for weight, ch in zip(range(10, 0, -1), digits):
        total += weight * (10 if ch == "X" else int(ch))
    return total % 11 == 0


def _isbn13_ok(digits: str) -> bool:
    total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(digits[:12]))
    return (10 - total % 10) % 10 == int(digits[12])


def is_isbn(value: str) -> bool:
    """True when ``value`` is a well-formed ISBN-10 or ISBN-13 with a valid check digit."""
    digits = normalize_isbn(value)
    if _ISBN13.match(digits):
        return _isbn13_ok(digits)
    if _ISBN10.match(digits):
        return _isbn10_ok(digits)
    return False


def validate_isbn(value: str) -> str:
    """Return the normalized ISBN or raise InvalidInputError."""
    if not value or not str(value).strip():
        raise InvalidInputError("ISBN is missing")
    if not is_isbn(value):
        raise InvalidInputError(f"Not a valid ISBN: {value}", isbn=value)
    return normalize_isbn(value)
