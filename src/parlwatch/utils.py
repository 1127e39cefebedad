"""
Shared helpers for the fetch, scrape and transform modules.

Usage:
    from parlwatch.utils import configure_utf8, unwrap_list, chunked, utcnow
"""

import sys
import unicodedata
from datetime import datetime, timezone
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")


def configure_utf8() -> None:
    """Force UTF-8 stdout on Windows to avoid cp1252 encoding errors.

    Call once at CLI start-up. Safe to call multiple times.
    """
    if sys.stdout.encoding and sys.stdout.encoding.lower() != "utf-8":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")


def unwrap_list(obj: list | dict | None) -> list:
    """Return a guaranteed list.

    The Parliament JSON exports are produced from XML and occasionally collapse
    a one-element array into a bare object. This guard normalises all three
    cases:
      None  → []
      dict  → [dict]
      list  → list (unchanged)
    """
    if obj is None:
        return []
    if isinstance(obj, dict):
        return [obj]
    return list(obj)


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive lists of at most ``size`` items, in source order."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    batch: list[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


def strip_accents(text: str) -> str:
    """Remove combining diacritics ("Conceição" → "Conceicao")."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_int(val) -> int | None:
    """Safely convert a feed value to int; return None on failure."""
    try:
        return int(val) if val not in (None, "") else None
    except (ValueError, TypeError):
        return None
