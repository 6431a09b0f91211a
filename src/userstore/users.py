"""User records and stored credentials."""

from __future__ import annotations

import sqlite3
from typing import Iterator

from .db import DEFAULT_BATCH_SIZE, iter_rows
from .errors import UserExistsError, UserNotFoundError
from .identity import canonical_user, derive_key, domain_of
from .metrics import timed_operation


@timed_operation("add_user")
def add_user(
    conn: sqlite3.Connection,
    user: str,
    password: str | None = None,
) -> bytes:
    """Create a user record. Returns the user's storage key.

    Raises:
        UserExistsError: If the user already exists.
    """
    uid = derive_key(user)
    try:
        conn.execute(
            "INSERT INTO users (uid, user_id, domain, password) VALUES (?, ?, ?, ?)",
            (uid, canonical_user(user), domain_of(user), password),
        )
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise UserExistsError(f"User {canonical_user(user)} already exists") from e
    conn.commit()
    return uid


@timed_operation("ensure_user")
def ensure_user(conn: sqlite3.Connection, user: str) -> None:
    """Create the user record if missing."""
    conn.execute(
        "INSERT OR IGNORE INTO users (uid, user_id, domain) VALUES (?, ?, ?)",
        (derive_key(user), canonical_user(user), domain_of(user)),
    )
    conn.commit()


def user_exists(conn: sqlite3.Connection, user: str) -> bool:
    """Check whether a user record exists."""
    cursor = conn.execute(
        "SELECT COUNT(*) FROM users WHERE uid = ? AND user_id = ?",
        (derive_key(user), canonical_user(user)),
    )
    return cursor.fetchone()[0] > 0


def iter_users(
    conn: sqlite3.Connection,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[str]:
    """Stream all user identifiers."""
    cursor = conn.execute("SELECT user_id FROM users ORDER BY user_id")
    for row in iter_rows(cursor, batch_size):
        yield row["user_id"]


@timed_operation("get_users")
def get_users(
    conn: sqlite3.Connection,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[str]:
    """List all user identifiers."""
    return list(iter_users(conn, batch_size))


def count_users(conn: sqlite3.Connection, domain: str | None = None) -> int:
    """Count users, optionally restricted to one domain."""
    if domain is None:
        cursor = conn.execute("SELECT COUNT(*) FROM users")
    else:
        cursor = conn.execute("SELECT COUNT(*) FROM users WHERE domain = ?", (domain.lower(),))
    return cursor.fetchone()[0]


@timed_operation("remove_user")
def remove_user(conn: sqlite3.Connection, user: str) -> None:
    """Remove a user record and every node stored for the user.

    Raises:
        UserNotFoundError: If neither a user record nor nodes exist.
    """
    uid = derive_key(user)
    users_removed = conn.execute("DELETE FROM users WHERE uid = ?", (uid,)).rowcount
    nodes_removed = conn.execute("DELETE FROM nodes WHERE uid = ?", (uid,)).rowcount
    conn.commit()
    if users_removed == 0 and nodes_removed == 0:
        raise UserNotFoundError(f"User {canonical_user(user)} not found in repository")


def get_password(conn: sqlite3.Connection, user: str) -> str | None:
    """Get the stored password.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    cursor = conn.execute(
        "SELECT password FROM users WHERE uid = ? AND user_id = ?",
        (derive_key(user), canonical_user(user)),
    )
    row = cursor.fetchone()
    if row is None:
        raise UserNotFoundError(f"User {canonical_user(user)} not found in repository")
    return row[0]


@timed_operation("update_password")
def update_password(conn: sqlite3.Connection, user: str, password: str) -> None:
    """Replace the stored password.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    cursor = conn.execute(
        "UPDATE users SET password = ? WHERE uid = ? AND user_id = ?",
        (password, derive_key(user), canonical_user(user)),
    )
    conn.commit()
    if cursor.rowcount == 0:
        raise UserNotFoundError(f"User {canonical_user(user)} not found in repository")
