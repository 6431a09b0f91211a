"""userstore - per-account node storage and conversation archive.

Usage:
    from userstore import UserStore, RSMRequest

    # From environment (USERSTORE_URI)
    store = UserStore()

    # Explicit store
    store = UserStore.open("sqlite:////var/lib/userstore/data.db")
    store = UserStore.in_memory()

    # Node tree
    store.nodes.set_data("alice@example.com", "roster/items", "count", "3")
    store.nodes.get_subnodes("alice@example.com", "roster")

    # Archive
    store.archive.archive_message("alice@example.com", "bob@example.com", "sent", now, xml)
    page = store.archive.get_collections("alice@example.com", rsm=RSMRequest(max=10))

    store.close()
"""

from userstore._version import __version__
from userstore.archive import ArchivedItem, Collection, Direction
from userstore.backends import CredentialStore, MessageArchive, NodeStore
from userstore.client import UserStore
from userstore.errors import (
    StoreConfigError,
    StoreConnectionError,
    StoreError,
    UnsupportedOperationError,
    UserExistsError,
    UserNotFoundError,
)
from userstore.options import StoreOptions
from userstore.rsm import RSMRequest, RSMResponse

__all__ = [
    "__version__",
    "UserStore",
    "StoreOptions",
    "NodeStore",
    "CredentialStore",
    "MessageArchive",
    "RSMRequest",
    "RSMResponse",
    "Collection",
    "ArchivedItem",
    "Direction",
    "StoreError",
    "StoreConnectionError",
    "StoreConfigError",
    "UserNotFoundError",
    "UserExistsError",
    "UnsupportedOperationError",
]
