"""Capability interfaces and their SQLite implementations.

This module provides three small interfaces that callers depend on:
- NodeStore: per-user hierarchical key/value storage and user lifecycle
- CredentialStore: passwords kept alongside user records
- MessageArchive: the conversation archive

Each SQLite implementation is constructed with an injected connection, so a
single process-wide connection can be shared by all of them.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from . import archive, nodes, users
from .archive import ArchivedItem, Collection, Direction
from .db import DEFAULT_BATCH_SIZE
from .errors import StoreError, UnsupportedOperationError
from .rsm import RSMRequest, RSMResponse

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(message: str) -> Iterator[None]:
    """Wrap driver errors in StoreError. Store-level errors pass through."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(message) from e


class NodeStore(ABC):
    """Per-user tree of (path, key) entries holding a string or a list of strings.

    `path` is a '/'-delimited subnode path; None addresses the root of the
    user's tree.
    """

    @abstractmethod
    def set_data(self, user: str, path: str | None, key: str, value: str) -> None:
        """Set a scalar value, replacing any list stored for the key."""
        ...

    @abstractmethod
    def set_data_list(self, user: str, path: str | None, key: str, values: list[str]) -> None:
        """Replace the list stored for the key."""
        ...

    @abstractmethod
    def add_data_list(self, user: str, path: str | None, key: str, values: list[str]) -> None:
        """Append values to the list stored for the key."""
        ...

    @abstractmethod
    def get_data(
        self,
        user: str,
        path: str | None,
        key: str,
        default: str | None = None,
    ) -> str | None:
        """Get a scalar value, or `default` if absent."""
        ...

    @abstractmethod
    def get_data_list(self, user: str, path: str | None, key: str) -> list[str] | None:
        """Get a list value, or None if absent."""
        ...

    @abstractmethod
    def get_keys(self, user: str, path: str | None = None) -> list[str]:
        """Keys stored at exactly `path`."""
        ...

    @abstractmethod
    def get_subnodes(self, user: str, path: str | None = None) -> list[str]:
        """Path segments directly below `path`."""
        ...

    @abstractmethod
    def remove_data(self, user: str, path: str | None, key: str) -> None:
        """Remove one key."""
        ...

    @abstractmethod
    def remove_subnode(self, user: str, path: str | None) -> None:
        """Remove `path` and everything below it."""
        ...

    # --- User lifecycle ---

    @abstractmethod
    def add_user(self, user: str) -> None:
        """Create a user record."""
        ...

    @abstractmethod
    def remove_user(self, user: str) -> None:
        """Remove a user and all its nodes."""
        ...

    @abstractmethod
    def user_exists(self, user: str) -> bool:
        ...

    @abstractmethod
    def get_users(self) -> list[str]:
        ...

    @abstractmethod
    def count_users(self, domain: str | None = None) -> int:
        ...


class CredentialStore(ABC):
    """Credentials kept with user records."""

    @abstractmethod
    def add_user(self, user: str, password: str) -> None:
        """Create a user record with a password."""
        ...

    @abstractmethod
    def get_password(self, user: str) -> str | None:
        ...

    @abstractmethod
    def update_password(self, user: str, password: str) -> None:
        ...

    def plain_auth(self, user: str, password: str) -> bool:
        """Check a plain-text password."""
        stored = self.get_password(user)
        if stored is None:
            return False
        return secrets.compare_digest(stored.encode(), password.encode())

    def digest_auth(self, user: str, digest: str, stream_id: str, alg: str) -> bool:
        raise UnsupportedOperationError("Digest authentication is not supported")

    def is_user_disabled(self, user: str) -> bool:
        return False

    def set_user_disabled(self, user: str, disabled: bool) -> None:
        raise UnsupportedOperationError("Disabling accounts is not supported")


class MessageArchive(ABC):
    """Append-only conversation archive with RSM paging."""

    @abstractmethod
    def archive_message(
        self,
        owner: str,
        buddy: str,
        direction: Direction | str,
        timestamp: datetime,
        payload: ET.Element | str,
    ) -> None:
        """Append a message. Never raises."""
        ...

    @abstractmethod
    def get_collections(
        self,
        owner: str,
        buddy: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        rsm: RSMRequest | None = None,
    ) -> RSMResponse[Collection]:
        """List conversations grouped by (day, buddy)."""
        ...

    @abstractmethod
    def get_items(
        self,
        owner: str,
        buddy: str,
        start: datetime,
        end: datetime | None = None,
        rsm: RSMRequest | None = None,
    ) -> RSMResponse[ArchivedItem]:
        """List the messages of one conversation."""
        ...

    @abstractmethod
    def remove_items(
        self,
        owner: str,
        buddy: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        """Delete messages with `buddy` in [start, end]."""
        ...


class SQLiteNodeStore(NodeStore):
    """NodeStore on a SQLite/libsql connection.

    With `auto_create_user`, writes also create the user record if missing.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        batch_size: int = DEFAULT_BATCH_SIZE,
        auto_create_user: bool = False,
    ):
        self._conn = conn
        self._batch_size = batch_size
        self._auto_create_user = auto_create_user

    def _after_write(self, user: str) -> None:
        if self._auto_create_user:
            users.ensure_user(self._conn, user)

    def set_data(self, user: str, path: str | None, key: str, value: str) -> None:
        with _store_errors("Problem setting values in repository"):
            nodes.set_data(self._conn, user, path, key, value)
            self._after_write(user)

    def set_data_list(self, user: str, path: str | None, key: str, values: list[str]) -> None:
        with _store_errors("Problem setting values in repository"):
            nodes.set_data_list(self._conn, user, path, key, values)
            self._after_write(user)

    def add_data_list(self, user: str, path: str | None, key: str, values: list[str]) -> None:
        with _store_errors("Problem adding data list to repository"):
            nodes.add_data_list(self._conn, user, path, key, values)
            self._after_write(user)

    def get_data(
        self,
        user: str,
        path: str | None,
        key: str,
        default: str | None = None,
    ) -> str | None:
        with _store_errors("Problem retrieving data from repository"):
            value = nodes.get_data(self._conn, user, path, key)
        return default if value is None else value

    def get_data_list(self, user: str, path: str | None, key: str) -> list[str] | None:
        with _store_errors("Problem retrieving data list from repository"):
            return nodes.get_data_list(self._conn, user, path, key)

    def get_keys(self, user: str, path: str | None = None) -> list[str]:
        with _store_errors(f"Problem retrieving keys for {user} and subnode {path}"):
            return nodes.get_keys(self._conn, user, path, self._batch_size)

    def get_subnodes(self, user: str, path: str | None = None) -> list[str]:
        with _store_errors("Error getting subnodes from repository"):
            return nodes.get_subnodes(self._conn, user, path, self._batch_size)

    def remove_data(self, user: str, path: str | None, key: str) -> None:
        with _store_errors("Error removing data from repository"):
            nodes.remove_data(self._conn, user, path, key)

    def remove_subnode(self, user: str, path: str | None) -> None:
        with _store_errors("Error removing subnode from repository"):
            removed = nodes.remove_subnode(self._conn, user, path)
        logger.debug(f"Removed {removed} entries under {path!r} for {user}")

    def add_user(self, user: str) -> None:
        with _store_errors("Error adding user to repository"):
            users.add_user(self._conn, user)

    def remove_user(self, user: str) -> None:
        with _store_errors("Error removing user from repository"):
            users.remove_user(self._conn, user)

    def user_exists(self, user: str) -> bool:
        with _store_errors("Error checking user in repository"):
            return users.user_exists(self._conn, user)

    def get_users(self) -> list[str]:
        with _store_errors("Problem loading user list from repository"):
            return users.get_users(self._conn, self._batch_size)

    def count_users(self, domain: str | None = None) -> int:
        with _store_errors("Problem counting users in repository"):
            return users.count_users(self._conn, domain)


class SQLiteCredentialStore(CredentialStore):
    """CredentialStore keeping passwords on the users table."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def add_user(self, user: str, password: str) -> None:
        with _store_errors("Error adding user to repository"):
            users.add_user(self._conn, user, password)

    def get_password(self, user: str) -> str | None:
        with _store_errors(f"Error retrieving password for user {user}"):
            return users.get_password(self._conn, user)

    def update_password(self, user: str, password: str) -> None:
        with _store_errors(f"Error updating password for user {user}"):
            users.update_password(self._conn, user, password)


class SQLiteMessageArchive(MessageArchive):
    """MessageArchive on a SQLite/libsql connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def archive_message(
        self,
        owner: str,
        buddy: str,
        direction: Direction | str,
        timestamp: datetime,
        payload: ET.Element | str,
    ) -> None:
        archive.archive_message(self._conn, owner, buddy, direction, timestamp, payload)

    def get_collections(
        self,
        owner: str,
        buddy: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        rsm: RSMRequest | None = None,
    ) -> RSMResponse[Collection]:
        return archive.get_collections(self._conn, owner, buddy, start, end, rsm or RSMRequest())

    def get_items(
        self,
        owner: str,
        buddy: str,
        start: datetime,
        end: datetime | None = None,
        rsm: RSMRequest | None = None,
    ) -> RSMResponse[ArchivedItem]:
        return archive.get_items(self._conn, owner, buddy, start, end, rsm or RSMRequest())

    def remove_items(
        self,
        owner: str,
        buddy: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        return archive.remove_items(self._conn, owner, buddy, start, end)
