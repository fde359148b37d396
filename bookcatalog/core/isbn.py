"""ISBN-10 / ISBN-13 checksum validation."""

from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[\s-]")
_ISBN10 = re.compile(r"^\d{9}[\dX]$")
_ISBN13 = re.compile(r"^\d{13}$")


def compact(isbn: str) -> str:
    """Strip hyphens and whitespace and upper-case a trailing ``x``."""
    return _SEPARATORS.sub("", isbn).upper()


def _isbn10_ok(digits: str) -> bool:
    total = 0
    for weight, ch in zip(range(10, 0, -1), digits):
        total += weight * (10 if ch == "X" else int(ch))
    return total % 11 == 0


def _isbn13_ok(digits: str) -> bool:
    total = sum((1 if i % 2 == 0 else 3) * int(ch) for i, ch in enumerate(digits))
    return total % 10 == 0


def is_valid_isbn(isbn: str) -> bool:
    """Return True if *isbn* is a well-formed ISBN-10 or ISBN-13.

    Hyphens and spaces are ignored, so ``978-0-441-01359-3`` and
    ``9780441013593`` are both accepted.
    """
    digits = compact(isbn)
    if _ISBN10.match(digits):
        return _isbn10_ok(digits)
    if _ISBN13.match(digits):
        return _isbn13_ok(digits)
    return False
