"""Pytest fixtures for testing with userstore.

Usage in conftest.py:
    pytest_plugins = ["userstore.testing"]

Or import specific fixtures:
    from userstore.testing import user_store, user_store_with_archive

Available fixtures:
    - user_store: Fresh in-memory UserStore
    - user_store_local: File-backed UserStore (uses tmp_path)
    - user_store_auto_create: In-memory store that creates users on first write
    - user_store_with_archive: Store with Alice's archive pre-populated
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Generator

import pytest

from .client import UserStore

if TYPE_CHECKING:
    from pathlib import Path

ALICE = "alice@example.com"
BOB = "bob@example.com"
CAROL = "carol@example.net"

# Noon UTC, so an hour either side stays on the same day
ARCHIVE_DAY = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def chat_message(body: str, to: str = BOB) -> str:
    """A serialized chat message payload."""
    return f'<message type="chat" to="{to}"><body>{body}</body></message>'


def archive_conversation(
    store: UserStore,
    owner: str,
    buddy: str,
    start: datetime,
    bodies: list[str],
    step: timedelta = timedelta(minutes=1),
) -> list[datetime]:
    """Archive one message per body, `step` apart, alternating direction.

    Returns the timestamps used.
    """
    stamps = []
    for i, body in enumerate(bodies):
        ts = start + step * i
        direction = "sent" if i % 2 == 0 else "received"
        store.archive.archive_message(owner, buddy, direction, ts, chat_message(body, buddy))
        stamps.append(ts)
    return stamps


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore.

    No cleanup needed - all data is ephemeral.

    Example:
        def test_something(user_store):
            user_store.nodes.set_data("alice@example.com", "prefs", "lang", "en")
            ...
    """
    store = UserStore.in_memory()
    yield store
    store.close()


@pytest.fixture
def user_store_local(tmp_path: "Path") -> Generator[UserStore, None, None]:
    """File-backed UserStore in tmp_path.

    Useful for testing persistence behavior.

    Example:
        def test_persistence(user_store_local, tmp_path):
            user_store_local.nodes.set_data(ALICE, None, "k", "v")
            user_store_local.close()

            with UserStore.open(tmp_path / "userstore.db") as store:
                assert store.nodes.get_data(ALICE, None, "k") == "v"
    """
    store = UserStore.open(tmp_path / "userstore.db")
    yield store
    store.close()


@pytest.fixture
def user_store_auto_create() -> Generator[UserStore, None, None]:
    """In-memory UserStore that creates user records on first node write."""
    store = UserStore.in_memory(auto_create_user=True)
    yield store
    store.close()


@pytest.fixture
def user_store_with_archive(
    user_store: UserStore,
) -> Generator[UserStore, None, None]:
    """UserStore with an archive for Alice.

    Contents:
        - ARCHIVE_DAY: five messages with Bob, one minute apart
        - ARCHIVE_DAY: two messages with Carol
        - ARCHIVE_DAY + 1 day: two messages with Bob

    Example:
        def test_listing(user_store_with_archive):
            page = user_store_with_archive.archive.get_collections(ALICE)
            assert page.count == 3
    """
    archive_conversation(user_store, ALICE, BOB, ARCHIVE_DAY, ["m0", "m1", "m2", "m3", "m4"])
    archive_conversation(user_store, ALICE, CAROL, ARCHIVE_DAY, ["c0", "c1"])
    archive_conversation(user_store, ALICE, BOB, ARCHIVE_DAY + timedelta(days=1), ["n0", "n1"])
    yield user_store
