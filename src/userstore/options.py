"""Configuration options for opening a UserStore.

Provides StoreOptions for selecting the database and tuning store behavior.
Supports environment variable overrides for CI/CD and containerized deployments.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode

from .db import DEFAULT_BATCH_SIZE
from .errors import StoreConfigError

AUTO_CREATE_USER_PARAM = "autoCreateUser"

_TRUE_VALUES = ("1", "true", "yes")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def split_auto_create_user(uri: str) -> tuple[str, bool | None]:
    """Strip an `autoCreateUser=` query parameter from a URI.

    Returns:
        (uri without the parameter, parsed value or None if absent)
    """
    base, sep, query = uri.partition("?")
    if not sep:
        return uri, None

    value: bool | None = None
    kept = []
    for name, raw in parse_qsl(query, keep_blank_values=True):
        if name == AUTO_CREATE_USER_PARAM:
            value = _parse_bool(raw)
        else:
            kept.append((name, raw))

    rest = urlencode(kept)
    return (f"{base}?{rest}" if rest else base), value


@dataclass
class StoreOptions:
    """Configuration options for a UserStore.

    Supports two modes (mutually exclusive):
    1. URI: SQLite file path, sqlite:/// URI, or libsql:// Turso URI
    2. In-memory: Ephemeral SQLite for testing

    Environment Variables:
        USERSTORE_URI: Database URI when none is given explicitly
        USERSTORE_BATCH_SIZE: Rows fetched per batch when streaming results
        USERSTORE_AUTO_CREATE_USER: Create user records on first node write

    Examples:
        # From environment
        options = StoreOptions()

        # Explicit file
        options = StoreOptions(uri="/var/lib/userstore/data.db")

        # URI parameter, as accepted by older deployments
        options = StoreOptions(uri="sqlite:///data.db?autoCreateUser=true")

        # In-memory for tests
        options = StoreOptions(in_memory=True)
    """

    uri: str | None = None
    """Database URI or path."""

    in_memory: bool = False
    """Use ephemeral in-memory SQLite. Perfect for testing."""

    batch_size: int | None = None
    """Rows fetched per batch when streaming results."""

    auto_create_user: bool | None = None
    """Create the user record on first node write."""

    _resolved_uri: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate options and apply environment variable overrides."""
        self._apply_env_overrides()
        self._validate()
        self._resolve()

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides.

        Explicit options take priority over the environment.
        """
        if self.uri is None and not self.in_memory:
            self.uri = os.environ.get("USERSTORE_URI")

        if self.batch_size is None:
            env_batch = os.environ.get("USERSTORE_BATCH_SIZE")
            if env_batch:
                try:
                    self.batch_size = int(env_batch)
                except ValueError:
                    raise StoreConfigError(
                        f"USERSTORE_BATCH_SIZE must be an integer, got {env_batch!r}"
                    ) from None

        if self.auto_create_user is None:
            env_auto = os.environ.get("USERSTORE_AUTO_CREATE_USER")
            if env_auto:
                self.auto_create_user = _parse_bool(env_auto)

    def _validate(self) -> None:
        """Validate that options are consistent."""
        if self.in_memory and self.uri is not None:
            raise StoreConfigError("in_memory cannot be combined with uri.")

        if not self.in_memory and not self.uri:
            raise StoreConfigError("No database configured. Set uri, in_memory or USERSTORE_URI.")

        if self.batch_size is not None and self.batch_size < 1:
            raise StoreConfigError(f"batch_size must be positive, got {self.batch_size}")

    def _resolve(self) -> None:
        """Resolve the URI and defaults."""
        if self.in_memory:
            self._resolved_uri = ":memory:"
        else:
            assert self.uri is not None
            uri, uri_auto_create = split_auto_create_user(self.uri)
            self._resolved_uri = uri
            if self.auto_create_user is None and uri_auto_create is not None:
                self.auto_create_user = uri_auto_create

        if self.batch_size is None:
            self.batch_size = DEFAULT_BATCH_SIZE
        if self.auto_create_user is None:
            self.auto_create_user = False

    @property
    def resolved_uri(self) -> str:
        """The URI passed to the database driver."""
        assert self._resolved_uri is not None
        return self._resolved_uri

    def is_in_memory(self) -> bool:
        """True if configured for in-memory storage."""
        return self.in_memory

    @classmethod
    def for_in_memory(cls, auto_create_user: bool = False) -> "StoreOptions":
        """Create options for an in-memory store (testing)."""
        return cls(in_memory=True, auto_create_user=auto_create_user)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for debugging/logging)."""
        return {
            "uri": self._resolved_uri,
            "in_memory": self.in_memory,
            "batch_size": self.batch_size,
            "auto_create_user": self.auto_create_user,
        }
