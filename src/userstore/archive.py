"""Append-only conversation archive.

Messages are stored with their owner, buddy, direction, timestamp and a day
bucket (timestamp truncated to the start of its UTC day). Two listings are
supported, both paged with RSM:

- Collections: one entry per (day, buddy) group, ordered by day then buddy.
- Items: the messages of one conversation, ordered by timestamp.

Each listing runs a count pass and a window pass. Nothing isolates the two,
so under concurrent ingestion `count` may not match the page returned.

Ingestion is fire-and-forget: `archive_message` logs and counts failures in
`metrics` and never raises.
"""

from __future__ import annotations

import logging
import sqlite3
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from uuid_extensions import uuid7 as make_uuid7

from . import payload as payloads
from .db import _rows_to_dicts
from .errors import StoreError
from .identity import canonical_user, derive_key
from .metrics import metrics, timed_store_operation
from .rsm import RSMRequest, RSMResponse, Window, build_response, resolve_window

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class Direction(str, Enum):
    """Direction of an archived message relative to its owner."""

    SENT = "sent"
    RECEIVED = "received"


@dataclass(frozen=True)
class Collection:
    """A conversation: messages with one buddy on one UTC day."""

    buddy: str
    start: datetime
    """Timestamp of the earliest message in the group."""

    def to_dict(self) -> dict[str, Any]:
        return {"with": self.buddy, "start": self.start.isoformat()}


@dataclass(frozen=True)
class ArchivedItem:
    """One message fragment from the archive."""

    direction: Direction
    timestamp: datetime
    element: ET.Element
    secs: int
    """Seconds between the query start and this message."""

    def to_xml(self) -> str:
        return payloads.serialize(self.element)

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "timestamp": self.timestamp.isoformat(),
            "secs": self.secs,
            "message": self.to_xml(),
        }


# --- Time helpers ---


def to_millis(ts: datetime) -> int:
    """UTC epoch milliseconds. Naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def from_millis(ms: int) -> datetime:
    """Aware UTC datetime from epoch milliseconds."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def day_bucket(ms: int) -> int:
    """Start of the UTC day containing `ms`."""
    return ms - ms % DAY_MS


def _criteria(
    owner: str,
    buddy: str | None,
    start: datetime | None,
    end: datetime | None,
) -> tuple[str, list[Any]]:
    """WHERE clause for an owner, optional buddy and inclusive time range."""
    clauses = ["owner_id = ?", "owner = ?"]
    params: list[Any] = [derive_key(owner), canonical_user(owner)]

    if buddy is not None:
        clauses += ["buddy_id = ?", "buddy = ?"]
        params += [derive_key(buddy), canonical_user(buddy)]

    if start is not None:
        clauses.append("ts >= ?")
        params.append(to_millis(start))

    if end is not None:
        clauses.append("ts <= ?")
        params.append(to_millis(end))

    return " AND ".join(clauses), params


# --- Ingestion ---


def archive_message(
    conn: sqlite3.Connection,
    owner: str,
    buddy: str,
    direction: Direction | str,
    timestamp: datetime,
    payload: ET.Element | str,
) -> str | None:
    """Append a message to the archive.

    Never raises. Failures are logged and recorded under the
    "archive_message" failure counter.

    Returns:
        The new message ID, or None if the message was not stored.
    """
    try:
        with timed_store_operation("archive_message"):
            ts = to_millis(timestamp)
            mid = str(make_uuid7())
            conn.execute(
                """INSERT INTO messages
                   (mid, owner_id, owner, buddy_id, buddy, direction, ts, day, type, msg)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    mid,
                    derive_key(owner),
                    canonical_user(owner),
                    derive_key(buddy),
                    canonical_user(buddy),
                    Direction(direction).value,
                    ts,
                    day_bucket(ts),
                    payloads.message_type(payload),
                    payloads.serialize(payload),
                ),
            )
            conn.commit()
            return mid
    except Exception:
        logger.warning(f"Problem adding new entry to archive for {owner!r}", exc_info=True)
        metrics.record_failure("archive_message")
        return None


# --- Collections ---


def _count_collections(conn: sqlite3.Connection, where: str, params: list[Any]) -> int:
    with timed_store_operation("count_collections"):
        cursor = conn.execute(
            f"SELECT COUNT(*) FROM (SELECT 1 FROM messages WHERE {where} GROUP BY day, buddy)",
            params,
        )
        return cursor.fetchone()[0]


def _fetch_collections(
    conn: sqlite3.Connection,
    where: str,
    params: list[Any],
    window: Window,
) -> list[Collection]:
    with timed_store_operation("fetch_collections"):
        cursor = conn.execute(
            f"""SELECT buddy, MIN(ts) AS ts FROM messages WHERE {where}
                GROUP BY day, buddy
                ORDER BY day, buddy
                LIMIT ? OFFSET ?""",
            params + [window.limit, window.skip],
        )
        rows = _rows_to_dicts(cursor.description, cursor.fetchall())
    return [Collection(buddy=row["buddy"], start=from_millis(row["ts"])) for row in rows]


def get_collections(
    conn: sqlite3.Connection,
    owner: str,
    buddy: str | None,
    start: datetime | None,
    end: datetime | None,
    rsm: RSMRequest,
) -> RSMResponse[Collection]:
    """List conversations, one per (day, buddy) group.

    Args:
        owner: Archive owner.
        buddy: Only conversations with this buddy, if given.
        start: Inclusive lower timestamp bound, if given.
        end: Inclusive upper timestamp bound, if given.
        rsm: Page request.

    Raises:
        StoreError: If the store query fails.
        ValueError: If an RSM cursor is malformed.
    """
    where, params = _criteria(owner, buddy, start, end)
    try:
        count = _count_collections(conn, where, params)
        window = resolve_window(count, rsm)
        collections = _fetch_collections(conn, where, params, window) if count > 0 else []
    except sqlite3.Error as e:
        raise StoreError("Could not retrieve collections") from e
    return build_response(count, window, collections)


# --- Items ---


def _count_items(conn: sqlite3.Connection, where: str, params: list[Any]) -> int:
    with timed_store_operation("count_items"):
        cursor = conn.execute(f"SELECT COUNT(*) FROM messages WHERE {where}", params)
        return cursor.fetchone()[0]


def _fetch_items(
    conn: sqlite3.Connection,
    where: str,
    params: list[Any],
    window: Window,
) -> list[dict]:
    with timed_store_operation("fetch_items"):
        cursor = conn.execute(
            f"""SELECT ts, direction, msg FROM messages WHERE {where}
                ORDER BY ts, mid
                LIMIT ? OFFSET ?""",
            params + [window.limit, window.skip],
        )
        return _rows_to_dicts(cursor.description, cursor.fetchall())


def get_items(
    conn: sqlite3.Connection,
    owner: str,
    buddy: str,
    start: datetime,
    end: datetime | None,
    rsm: RSMRequest,
) -> RSMResponse[ArchivedItem]:
    """List the messages exchanged with one buddy, oldest first.

    Every top-level element of a stored payload is returned as a separate
    item; repeated fragments are returned as many times as they are stored.

    Cursors count stored messages, not fragments: `last` is the position of
    the last message in the page even when its payload expanded to several
    items. Older archive servers advanced `last` by the number of fragments,
    which made `after=last` skip messages; this deliberately differs so the
    next page always starts at the following stored message.

    Raises:
        StoreError: If the store query fails or a stored payload is malformed.
        ValueError: If an RSM cursor is malformed.
    """
    where, params = _criteria(owner, buddy, start, end)
    start_ms = to_millis(start)
    try:
        count = _count_items(conn, where, params)
        window = resolve_window(count, rsm)
        rows = _fetch_items(conn, where, params, window)
        items = []
        for row in rows:
            direction = Direction(row["direction"])
            for element in payloads.parse_fragments(row["msg"]):
                items.append(
                    ArchivedItem(
                        direction=direction,
                        timestamp=from_millis(row["ts"]),
                        element=element,
                        secs=(row["ts"] - start_ms) // 1000,
                    )
                )
    except (sqlite3.Error, ET.ParseError) as e:
        raise StoreError("Could not retrieve items") from e
    return build_response(count, window, items, returned=len(rows))


# --- Removal ---


def remove_items(
    conn: sqlite3.Connection,
    owner: str,
    buddy: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    """Delete the messages exchanged with `buddy` in [start, end].

    An omitted bound leaves that side of the range open.

    Returns:
        Number of messages removed.

    Raises:
        StoreError: If the store delete fails.
    """
    where, params = _criteria(owner, buddy, start, end)
    try:
        with timed_store_operation("remove_items"):
            cursor = conn.execute(f"DELETE FROM messages WHERE {where}", params)
            conn.commit()
    except sqlite3.Error as e:
        raise StoreError("Could not remove items") from e
    return cursor.rowcount
