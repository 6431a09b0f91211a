"""Result Set Management (RSM) paging.

Turns an abstract page request into a concrete (skip, limit) window over an
ordered result of known size, and builds the response cursors.

A request is resolved in this order:
    1. `after` cursor:  skip = position(after) + 1, limit = max
    2. `before` cursor: skip = position(before) - max; when that is negative,
       skip = 0 and limit = position(before) so the page still ends at `before`
    3. `want_last`:     skip = max(count - max, 0), limit = max
    4. otherwise:       skip = index or 0, limit = max

Cursors are absolute ordinal positions rendered as strings. A window past
the end of the result is legal and yields an empty page.

Counting and fetching are separate passes against the store, so the count
and the returned page may disagree when writers run in between.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

DEFAULT_MAX = 100


@dataclass(frozen=True)
class RSMRequest:
    """A page request."""

    max: int = DEFAULT_MAX
    index: int | None = None
    after: str | None = None
    before: str | None = None
    want_last: bool = False
    """Request the last page (an empty `before` element)."""

    def __post_init__(self) -> None:
        if self.max < 1:
            raise ValueError(f"RSM max must be positive, got {self.max}")
        if self.index is not None and self.index < 0:
            raise ValueError(f"RSM index must be non-negative, got {self.index}")


@dataclass(frozen=True)
class Window:
    """Concrete skip/limit window."""

    skip: int
    limit: int


@dataclass
class RSMResponse(Generic[T]):
    """A resolved page."""

    count: int
    index: int
    first: str | None = None
    last: str | None = None
    items: list[T] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "index": self.index,
            "first": self.first,
            "last": self.last,
        }


def cursor_position(cursor: str) -> int:
    """Position encoded in a cursor."""
    try:
        position = int(cursor)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid RSM cursor: {cursor!r}") from None
    if position < 0:
        raise ValueError(f"Invalid RSM cursor: {cursor!r}")
    return position


def resolve_window(count: int, request: RSMRequest) -> Window:
    """Compute the skip/limit window for `request` over `count` items."""
    limit = request.max

    if request.after is not None:
        return Window(skip=cursor_position(request.after) + 1, limit=limit)

    if request.before is not None:
        before = cursor_position(request.before)
        skip = before - request.max
        if skip < 0:
            return Window(skip=0, limit=before)
        return Window(skip=skip, limit=limit)

    if request.want_last:
        return Window(skip=max(count - request.max, 0), limit=limit)

    return Window(skip=request.index or 0, limit=limit)


def build_response(
    count: int,
    window: Window,
    items: list[T],
    returned: int | None = None,
) -> RSMResponse[T]:
    """Build the response for a fetched window.

    Args:
        count: Total matching items from the count pass.
        window: The window that was fetched.
        items: Items to return.
        returned: Number of positions consumed by the page. Defaults to
            len(items); differs when one stored record expands to several items.
    """
    if returned is None:
        returned = len(items)
    response: RSMResponse[T] = RSMResponse(count=count, index=window.skip, items=items)
    if returned > 0:
        response.first = str(window.skip)
        response.last = str(window.skip + returned - 1)
    return response
