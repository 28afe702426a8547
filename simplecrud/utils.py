# File: simplecrud/utils.py
"""
SimpleCRUD - Utility Functions & Helpers
=========================================
Identifier checks, label prettifying, query-string coercion and a small
profiling timer shared by the compiler, renderer and route layer.

Performance strategy:
- String conversions that run once per header or field per request are
  decorated with ``@lru_cache(maxsize=None)``; the set of distinct column
  names in an application is small and bounded.
- No external dependencies beyond the Python standard library.
"""

from __future__ import annotations

import functools
import logging
import re
import time
from typing import Any, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

# The only characters ever interpolated into SQL text as identifiers.
IDENTIFIER_RE: re.Pattern[str] = re.compile(r"[A-Za-z0-9_-]+")

_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_UNSAFE_TOKEN_RE: re.Pattern[str] = re.compile(r"[^A-Za-z0-9_-]+")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)
_DIGITS_RE: re.Pattern[str] = re.compile(r"[0-9]+")


# ---------------------------------------------------------------------------
# Identifier safety
# ---------------------------------------------------------------------------


def is_safe_identifier(name: Any) -> bool:
    """True when *name* is a non-empty string of ``[A-Za-z0-9_-]`` only."""
    return isinstance(name, str) and bool(IDENTIFIER_RE.fullmatch(name))


def check_identifier(name: str, what: str = "identifier") -> str:
    """
    Return *name* unchanged, or raise ``ValueError`` if it is not safe.

    A ``--`` sequence is rejected explicitly even though the pattern would
    accept it, since it opens an SQL comment in most dialects.
    """
    if not is_safe_identifier(name) or "--" in name:
        raise ValueError(
            f"Invalid {what} {name!r}: only letters, digits, '_' and '-' "
            "are allowed."
        )
    return name


def split_qualified(name: str) -> Tuple[Optional[str], str]:
    """
    Split ``table.column`` into ``(table, column)``.

    Examples:
        >>> split_qualified("users.id")
        ('users', 'id')
        >>> split_qualified("id")
        (None, 'id')
    """
    if "." in name:
        table, _, column = name.partition(".")
        return table, column
    return None, name


def check_qualified(name: str, what: str = "column") -> str:
    """Validate a bare or ``table.column`` name component-wise."""
    table, column = split_qualified(name)
    if table is not None:
        check_identifier(table, f"table in {what}")
    check_identifier(column, what)
    return name


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """Split any casing style into a tuple of lowercase words."""
    cleaned: str = _NON_ALPHANUM_RE.sub(" ", name)
    words: List[str] = _SPLIT_WORDS_RE.findall(cleaned)
    return tuple(w.lower() for w in words if w)


@functools.lru_cache(maxsize=None)
def to_title_human(name: str) -> str:
    """
    Convert a column name to a human-readable label.

    Examples:
        >>> to_title_human("first_name")
        'First Name'
        >>> to_title_human("createdAt")
        'Created At'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    if not words:
        return name
    return " ".join(w.capitalize() for w in words)


def sanitize_token(value: Any) -> str:
    """
    Reduce *value* to a filesystem-safe token.

    Runs of anything outside ``[A-Za-z0-9_-]`` collapse to one underscore;
    leading/trailing underscores are dropped.
    """
    if value is None:
        return ""
    return _UNSAFE_TOKEN_RE.sub("_", str(value)).strip("_")


# ---------------------------------------------------------------------------
# Query-string coercion
# ---------------------------------------------------------------------------


def parse_page_number(raw: Any) -> int:
    """
    Coerce a page parameter to a non-negative int.

    Garbage, negative numbers, and missing values all become 0.
    """
    if raw is None:
        return 0
    text: str = str(raw).strip()
    if not _DIGITS_RE.fullmatch(text):
        return 0
    return int(text)


def is_numeric_id(raw: Any) -> bool:
    """True for a string of ASCII digits (non-negative integer ids)."""
    return raw is not None and bool(_DIGITS_RE.fullmatch(str(raw)))


def blank_to_none(value: Any) -> Any:
    """Map ``""`` (and whitespace-only strings) to None."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling request steps.

    Usage:
        with Timer("render /users") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug(
            "Timer [%s]: %.4f seconds",
            self.label,
            self.elapsed,
        )

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


__all__: List[str] = [
    "IDENTIFIER_RE",
    "is_safe_identifier",
    "check_identifier",
    "check_qualified",
    "split_qualified",
    "to_title_human",
    "sanitize_token",
    "parse_page_number",
    "is_numeric_id",
    "blank_to_none",
    "Timer",
]
