"""Per-user hierarchical key/value node storage.

Each entry is addressed by (user key, node path, key) and holds either a
scalar `value` or a list in `vals`, never both.

Writing a list replaces any prior entry for the triple: the old row is deleted
and the new one inserted, committed together. On stores that do not isolate
concurrent readers, a reader between the two statements sees the entry as
absent.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from . import paths
from .db import DEFAULT_BATCH_SIZE, iter_rows
from .identity import derive_key
from .metrics import timed_operation


def _subtree_clause(path: str | None) -> tuple[str, list[Any]]:
    """SQL condition matching `path` and every node below it."""
    node = paths.to_column(path)
    if paths.from_column(node) is paths.ROOT:
        return "", []
    prefix = node + paths.SEPARATOR
    return " AND (node = ? OR substr(node, 1, ?) = ?)", [node, len(prefix), prefix]


def _descendants_clause(path: str | None) -> tuple[str, list[Any]]:
    """SQL condition matching nodes strictly below `path`."""
    node = paths.to_column(path)
    if paths.from_column(node) is paths.ROOT:
        return " AND node != ''", []
    prefix = node + paths.SEPARATOR
    return " AND substr(node, 1, ?) = ?", [len(prefix), prefix]


@timed_operation("set_data")
def set_data(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
    value: str,
) -> None:
    """Set a scalar value, replacing any list stored for the same key."""
    conn.execute(
        """INSERT INTO nodes (uid, node, key, value, vals) VALUES (?, ?, ?, ?, NULL)
           ON CONFLICT (uid, node, key) DO UPDATE SET value = excluded.value, vals = NULL""",
        (derive_key(user), paths.to_column(path), key, value),
    )
    conn.commit()


@timed_operation("set_data_list")
def set_data_list(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
    values: list[str],
) -> None:
    """Replace the list stored for a key. Never merges with prior values.

    On failure nothing is left pending: the previous list survives.
    """
    params = (derive_key(user), paths.to_column(path), key)
    vals = json.dumps(list(values))
    try:
        conn.execute("DELETE FROM nodes WHERE uid = ? AND node = ? AND key = ?", params)
        conn.execute(
            "INSERT INTO nodes (uid, node, key, value, vals) VALUES (?, ?, ?, NULL, ?)",
            params + (vals,),
        )
    except Exception:
        conn.rollback()
        raise
    conn.commit()


@timed_operation("add_data_list")
def add_data_list(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
    values: list[str],
) -> None:
    """Append values to the list stored for a key.

    The merge happens inside a single statement, so appends from other
    connections are never lost. A stored scalar becomes the first element.
    """
    conn.execute(
        """INSERT INTO nodes (uid, node, key, value, vals) VALUES (?, ?, ?, NULL, ?)
           ON CONFLICT (uid, node, key) DO UPDATE SET
               value = NULL,
               vals = (
                   SELECT json_group_array(merged.value) FROM (
                       SELECT 0 AS part, prior.key AS pos, prior.value AS value
                           FROM json_each(COALESCE(nodes.vals, json_array(nodes.value))) AS prior
                       UNION ALL
                       SELECT 1, added.key, added.value
                           FROM json_each(excluded.vals) AS added
                       ORDER BY part, pos
                   ) AS merged
               )""",
        (derive_key(user), paths.to_column(path), key, json.dumps(list(values))),
    )
    conn.commit()


@timed_operation("get_data")
def get_data(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
) -> str | None:
    """Get a scalar value. Returns None if absent or if a list is stored."""
    cursor = conn.execute(
        "SELECT value FROM nodes WHERE uid = ? AND node = ? AND key = ?",
        (derive_key(user), paths.to_column(path), key),
    )
    row = cursor.fetchone()
    return row[0] if row else None


@timed_operation("get_data_list")
def get_data_list(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
) -> list[str] | None:
    """Get a list value. A stored scalar is returned as a one-element list."""
    cursor = conn.execute(
        "SELECT value, vals FROM nodes WHERE uid = ? AND node = ? AND key = ?",
        (derive_key(user), paths.to_column(path), key),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    value, vals = row[0], row[1]
    if vals is not None:
        return json.loads(vals)
    if value is not None:
        return [value]
    return None


@timed_operation("get_keys")
def get_keys(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[str]:
    """List the keys stored at exactly `path`."""
    cursor = conn.execute(
        "SELECT DISTINCT key FROM nodes WHERE uid = ? AND node = ?",
        (derive_key(user), paths.to_column(path)),
    )
    return paths.unique(row["key"] for row in iter_rows(cursor, batch_size))


@timed_operation("get_subnodes")
def get_subnodes(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[str]:
    """List the path segments directly below `path`.

    Returns an empty list when nothing is stored below `path`.
    """
    parent = paths.normalize(path)
    clause, params = _descendants_clause(parent)
    cursor = conn.execute(
        f"SELECT DISTINCT node FROM nodes WHERE uid = ?{clause}",
        [derive_key(user)] + params,
    )
    children = []
    for row in iter_rows(cursor, batch_size):
        child = paths.immediate_child(paths.from_column(row["node"]), parent)
        if child is not None:
            children.append(child)
    return paths.unique(children)


@timed_operation("remove_data")
def remove_data(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
    key: str,
) -> bool:
    """Remove a single key. Returns True if something was removed."""
    cursor = conn.execute(
        "DELETE FROM nodes WHERE uid = ? AND node = ? AND key = ?",
        (derive_key(user), paths.to_column(path), key),
    )
    conn.commit()
    return cursor.rowcount > 0


@timed_operation("remove_subnode")
def remove_subnode(
    conn: sqlite3.Connection,
    user: str,
    path: str | None,
) -> int:
    """Remove `path` and everything below it. ROOT removes all the user's nodes.

    Returns the number of entries removed.
    """
    clause, params = _subtree_clause(path)
    cursor = conn.execute(
        f"DELETE FROM nodes WHERE uid = ?{clause}",
        [derive_key(user)] + params,
    )
    conn.commit()
    return cursor.rowcount
