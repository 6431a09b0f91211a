"""Subnode path handling for the per-user node tree.

Paths are '/'-delimited sequences of non-empty segments. The root of a
user's tree is the ROOT sentinel (None), never an empty-string segment.

Prefix matching compares whole segments, so "a" contains "a/b" but not "ab".
"""

from __future__ import annotations

from collections.abc import Iterable

SEPARATOR = "/"

ROOT: str | None = None

# Storage encoding of ROOT. A normalized non-root path is never empty.
_ROOT_COLUMN = ""


def segments(path: str | None) -> tuple[str, ...]:
    """Split a path into its non-empty segments."""
    if path is None:
        return ()
    return tuple(part for part in path.split(SEPARATOR) if part)


def normalize(path: str | None) -> str | None:
    """Normalize a path: drop empty segments and trailing separators.

    Returns ROOT when the path has no segments.
    """
    parts = segments(path)
    if not parts:
        return ROOT
    return SEPARATOR.join(parts)


def is_within(path: str | None, ancestor: str | None) -> bool:
    """True if `path` equals `ancestor` or lies below it on a segment boundary."""
    prefix = segments(ancestor)
    return segments(path)[: len(prefix)] == prefix


def immediate_child(path: str | None, parent: str | None) -> str | None:
    """The segment directly below `parent` on the way to `path`, if any."""
    prefix = segments(parent)
    parts = segments(path)
    if len(parts) <= len(prefix) or parts[: len(prefix)] != prefix:
        return None
    return parts[len(prefix)]


def unique(values: Iterable[str]) -> list[str]:
    """De-duplicate while keeping first-seen order."""
    return list(dict.fromkeys(values))


def to_column(path: str | None) -> str:
    """Encode a path for the `node` column."""
    normalized = normalize(path)
    return _ROOT_COLUMN if normalized is ROOT else normalized


def from_column(value: str) -> str | None:
    """Decode a `node` column value."""
    return ROOT if value == _ROOT_COLUMN else value
