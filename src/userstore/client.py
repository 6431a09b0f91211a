"""UserStore: the process-wide entry point.

A UserStore is constructed once at startup. It opens the database connection,
provisions the schema, and exposes three capabilities sharing that connection:

    store = UserStore.open("sqlite:////var/lib/userstore/data.db")
    store.nodes.set_data("alice@example.com", "roster/items", "count", "3")
    store.credentials.update_password("alice@example.com", "s3cret")
    store.archive.get_collections("alice@example.com")
    store.close()

Callers that only need one capability should accept the interface
(NodeStore, CredentialStore, MessageArchive) rather than the UserStore.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from . import db
from .backends import (
    CredentialStore,
    MessageArchive,
    NodeStore,
    SQLiteCredentialStore,
    SQLiteMessageArchive,
    SQLiteNodeStore,
)
from .errors import StoreConnectionError
from .identity import check_digest_available
from .options import StoreOptions

logger = logging.getLogger(__name__)


class UserStore:
    """Owns the store connection and the capabilities built on it.

    Examples:
        # From environment (USERSTORE_URI)
        store = UserStore()

        # Explicit URI
        store = UserStore.open("/var/lib/userstore/data.db")

        # In-memory for testing
        with UserStore.in_memory() as store:
            ...
    """

    def __init__(self, options: StoreOptions | None = None):
        """Open the store.

        Raises:
            StoreConnectionError: If the database cannot be opened or provisioned.
        """
        self._options = options or StoreOptions()
        check_digest_available()

        self._conn: sqlite3.Connection | None = db.connect(self._options.resolved_uri)
        try:
            db.init_db_with_conn(self._conn)
        except Exception as e:
            self._conn.close()
            self._conn = None
            raise StoreConnectionError(
                f"Could not initialize database at {self._options.resolved_uri}"
            ) from e

        assert self._options.batch_size is not None
        self.nodes: NodeStore = SQLiteNodeStore(
            self._conn,
            batch_size=self._options.batch_size,
            auto_create_user=bool(self._options.auto_create_user),
        )
        self.credentials: CredentialStore = SQLiteCredentialStore(self._conn)
        self.archive: MessageArchive = SQLiteMessageArchive(self._conn)
        logger.info(f"Opened user store at {self.location}")

    # --- Factory Methods ---

    @classmethod
    def open(cls, uri: str | Path, auto_create_user: bool | None = None) -> "UserStore":
        """Open a store at a URI or path."""
        return cls(StoreOptions(uri=str(uri), auto_create_user=auto_create_user))

    @classmethod
    def in_memory(cls, auto_create_user: bool = False) -> "UserStore":
        """Open an ephemeral in-memory store.

        Perfect for testing - no cleanup needed.
        """
        return cls(StoreOptions.for_in_memory(auto_create_user=auto_create_user))

    # --- Properties ---

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def location(self) -> str:
        """Database location: path, URI, or ':memory:'."""
        return self._options.resolved_uri

    @property
    def connection(self) -> sqlite3.Connection:
        """The shared connection. Raises if the store is closed."""
        if self._conn is None:
            raise StoreConnectionError("User store is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    # --- Lifecycle ---

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info(f"Closed user store at {self.location}")

    def __enter__(self) -> "UserStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
