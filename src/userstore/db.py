"""Database layer for userstore - supports SQLite and Turso (libsql).

This module owns connection setup and schema provisioning. Operations live in
`users`, `nodes` and `archive`; every one of them takes an explicit connection.
There is no module-level connection: a `UserStore` opens one at startup, injects
it into its capabilities, and closes it at shutdown.

Connection Management:
    # Process-wide connection, opened once
    conn = connect("/var/lib/userstore/data.db")
    init_db_with_conn(conn)
    ...
    conn.close()

    # Scoped connection
    with scoped_connection(":memory:") as conn:
        init_db_with_conn(conn)
        ...

Supported URIs:
    ":memory:"                 in-memory SQLite
    "sqlite:///path/to/db"     SQLite file
    "/path/to/db"              SQLite file
    "libsql://..."             Turso; token from TURSO_AUTH_TOKEN
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .errors import StoreConnectionError

logger = logging.getLogger(__name__)

# Default number of rows pulled per fetch when streaming results
DEFAULT_BATCH_SIZE = 100

# Version of the schema created by SCHEMA_SQL
BASELINE_VERSION = 1

# Current schema version (increment when adding migrations)
SCHEMA_VERSION = 1

SQLITE_URI_PREFIX = "sqlite:///"
LIBSQL_URI_PREFIX = "libsql://"


# --- Connection Management ---


def connect(uri: str | Path) -> sqlite3.Connection:
    """Open a database connection.

    Args:
        uri: Database URI or path. See module docstring for supported forms.

    Returns:
        Connection with row_factory set to sqlite3.Row (SQLite only).

    Raises:
        StoreConnectionError: If the connection cannot be established.
    """
    uri = str(uri)

    if uri.startswith(LIBSQL_URI_PREFIX):
        try:
            import libsql_experimental as libsql  # type: ignore[import-not-found]
        except ImportError as e:
            raise StoreConnectionError(
                "libsql URIs require the libsql-experimental package"
            ) from e

        logger.info(f"Creating new libsql connection to {uri[:50]}...")
        try:
            return libsql.connect(uri, auth_token=os.environ.get("TURSO_AUTH_TOKEN", ""))
        except Exception as e:
            logger.error(f"Failed to connect to libsql: {e}")
            raise StoreConnectionError(f"Could not connect to database using URI = {uri}") from e

    if uri.startswith(SQLITE_URI_PREFIX):
        uri = uri[len(SQLITE_URI_PREFIX) :]

    try:
        if uri == ":memory:":
            conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            conn = sqlite3.connect(uri, check_same_thread=False)
            # Enable WAL mode for better concurrent read/write performance
            conn.execute("PRAGMA journal_mode=WAL")
            # Set busy timeout to wait for locks instead of failing immediately
            conn.execute("PRAGMA busy_timeout=5000")
    except sqlite3.Error as e:
        raise StoreConnectionError(f"Could not connect to database using URI = {uri}") from e

    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def scoped_connection(uri: str | Path) -> Iterator[sqlite3.Connection]:
    """Context manager for scoped database connections.

    Creates a new connection that is automatically closed when the context exits.

    Args:
        uri: Database URI or path, or ":memory:" for in-memory.

    Yields:
        Database connection.
    """
    conn = connect(uri)
    try:
        yield conn
    finally:
        conn.close()


def _row_to_dict(cursor_description: Any, row: tuple | sqlite3.Row | None) -> dict | None:
    """Convert a database row to a dictionary."""
    if row is None:
        return None
    if isinstance(row, sqlite3.Row):
        return dict(row)
    # For libsql, manually create dict from cursor description
    columns = [col[0] for col in cursor_description]
    return dict(zip(columns, row))


def _rows_to_dicts(cursor_description: Any, rows: list) -> list[dict]:
    """Convert database rows to a list of dictionaries."""
    if not rows:
        return []
    if isinstance(rows[0], sqlite3.Row):
        return [dict(row) for row in rows]
    # For libsql, manually create dicts from cursor description
    columns = [col[0] for col in cursor_description]
    return [dict(zip(columns, row)) for row in rows]


def iter_rows(cursor: Any, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[dict]:
    """Stream a cursor's rows as dicts, fetching `batch_size` rows at a time."""
    while True:
        rows = cursor.fetchmany(batch_size)
        if not rows:
            return
        yield from _rows_to_dicts(cursor.description, rows)


# --- Schema and Migrations ---


def _ensure_schema_version_table(conn: sqlite3.Connection) -> None:
    """Create the schema_version table if it doesn't exist."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            description TEXT
        )
    """)
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version from the database.

    Returns 0 if no migrations have been applied yet.
    """
    _ensure_schema_version_table(conn)

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    row = cursor.fetchone()
    return row[0] if row and row[0] is not None else 0


def record_migration(conn: sqlite3.Connection, version: int, description: str) -> None:
    """Record that a migration has been applied."""
    conn.execute(
        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
        (version, description),
    )
    conn.commit()


# Migration registry: (version, description, migration_function).
# Versions start after BASELINE_VERSION; SCHEMA_SQL already holds the baseline.
MIGRATIONS: list[tuple[int, str, Callable[[sqlite3.Connection], None]]] = []


def run_migrations(conn: sqlite3.Connection) -> list[int]:
    """Run any pending migrations.

    Returns a list of migration versions that were applied.
    """
    _ensure_schema_version_table(conn)
    current_version = get_schema_version(conn)
    applied: list[int] = []

    for version, description, migrate_fn in MIGRATIONS:
        if version > current_version:
            try:
                migrate_fn(conn)
                record_migration(conn, version, description)
                applied.append(version)
            except Exception as e:
                raise RuntimeError(f"Migration {version} failed: {e}") from e

    if applied:
        logger.info(f"Applied schema migrations: {applied}")
    return applied


# --- Schema Definition ---


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        uid BLOB PRIMARY KEY,
        user_id TEXT NOT NULL,
        domain TEXT NOT NULL,
        password TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_users_domain ON users(domain);

    -- node is '' for the root of the user's tree
    CREATE TABLE IF NOT EXISTS nodes (
        uid BLOB NOT NULL,
        node TEXT NOT NULL DEFAULT '',
        key TEXT NOT NULL,
        value TEXT,
        vals JSON,
        UNIQUE (uid, node, key)
    );

    CREATE INDEX IF NOT EXISTS idx_nodes_uid_node ON nodes(uid, node);

    CREATE TABLE IF NOT EXISTS messages (
        mid TEXT PRIMARY KEY,
        owner_id BLOB NOT NULL,
        owner TEXT NOT NULL,
        buddy_id BLOB NOT NULL,
        buddy TEXT NOT NULL,
        direction TEXT NOT NULL,
        ts INTEGER NOT NULL,
        day INTEGER NOT NULL,
        type TEXT,
        msg TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_messages_owner_day
        ON messages(owner_id, day);
    CREATE INDEX IF NOT EXISTS idx_messages_owner_buddy_ts
        ON messages(owner_id, buddy_id, ts);
"""


def init_db_with_conn(conn: sqlite3.Connection) -> None:
    """Initialize database schema with an explicit connection.

    Args:
        conn: Database connection to initialize.
    """
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    if get_schema_version(conn) == 0:
        record_migration(conn, BASELINE_VERSION, "Initial schema")
    run_migrations(conn)


def reset_db(conn: sqlite3.Connection) -> None:
    """Reset database (for testing)."""
    conn.executescript("""
        DROP TABLE IF EXISTS messages;
        DROP TABLE IF EXISTS nodes;
        DROP TABLE IF EXISTS users;
        DROP TABLE IF EXISTS schema_version;
    """)
    conn.commit()
    init_db_with_conn(conn)
