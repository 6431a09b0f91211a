"""CLI for userstore administration.

Reads defaults from ~/.config/userstore/config.yaml (see `userstore init`);
every command accepts --uri to point at another database.

    userstore init sqlite:////var/lib/userstore/data.db
    userstore node set alice@example.com nick Alice --path profile
    userstore node children alice@example.com
    userstore archive collections alice@example.com --max 10
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any, NoReturn

import cyclopts

from .client import UserStore
from .config import StoreConfig, get_config_path
from .errors import StoreConfigError, StoreError
from .rsm import DEFAULT_MAX, RSMRequest

app = cyclopts.App(
    name="userstore",
    help="Per-account node storage and message archive",
)

user_app = cyclopts.App(name="user", help="User record management")
node_app = cyclopts.App(name="node", help="Per-user node tree operations")
archive_app = cyclopts.App(name="archive", help="Message archive operations")

app.command(user_app)
app.command(node_app)
app.command(archive_app)


def print_json(data):
    """Pretty print JSON data."""
    print(json.dumps(data, indent=2, default=str))


def fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    raise SystemExit(1)


def open_store(uri: str | None = None) -> UserStore:
    """Open the configured store, or exit with an error."""
    try:
        return UserStore(StoreConfig.load().to_options(uri))
    except (StoreConfigError, StoreError) as e:
        fail(str(e))


def parse_time(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp option."""
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise cyclopts.ValidationError(f"Invalid timestamp: {value}") from None


def make_rsm(
    max: int,
    index: int | None,
    after: str | None,
    before: str | None,
    last: bool,
) -> RSMRequest:
    try:
        return RSMRequest(max=max, index=index, after=after, before=before, want_last=last)
    except ValueError as e:
        raise cyclopts.ValidationError(str(e)) from None


@app.command
def init(
    uri: str,
    *,
    batch_size: int = 100,
    auto_create_user: bool | None = None,
):
    """Save the store configuration and provision the schema.

    Args:
        uri: Database path or URI (sqlite:///..., libsql://...)
        batch_size: Rows fetched per batch when streaming results
        auto_create_user: Create user records on first node write (default: from the URI)
    """
    config = StoreConfig(uri=uri, batch_size=batch_size, auto_create_user=auto_create_user)
    with open_store(uri) as store:
        print(f"Schema ready at {store.location}")
    path = config.save()
    print(f"Configuration saved to {path}")


@app.command
def config():
    """Show current configuration."""
    cfg = StoreConfig.load()
    print(f"Config file: {get_config_path()}")
    print(f"URI: {cfg.uri or '(not set)'}")
    print(f"Batch size: {cfg.batch_size}")
    auto = "(not set)" if cfg.auto_create_user is None else cfg.auto_create_user
    print(f"Auto-create users: {auto}")


# --- User commands ---


@user_app.command(name="add")
def user_add(user: str, *, password: str | None = None, uri: str | None = None):
    """Create a user record.

    Args:
        user: User identifier (user@domain)
        password: Initial password
    """
    with open_store(uri) as store:
        try:
            if password is None:
                store.nodes.add_user(user)
            else:
                store.credentials.add_user(user, password)
        except StoreError as e:
            fail(str(e))
    print(f"Created user {user}")


@user_app.command(name="list")
def user_list(*, uri: str | None = None):
    """List all users."""
    with open_store(uri) as store:
        try:
            users = store.nodes.get_users()
        except StoreError as e:
            fail(str(e))
    for user in users:
        print(user)


@user_app.command(name="count")
def user_count(*, domain: str | None = None, uri: str | None = None):
    """Count users, optionally within one domain."""
    with open_store(uri) as store:
        try:
            count = store.nodes.count_users(domain)
        except StoreError as e:
            fail(str(e))
    print(count)


@user_app.command(name="rm")
def user_rm(user: str, *, force: bool = False, uri: str | None = None):
    """Remove a user and all of its nodes.

    Args:
        user: User identifier
        force: Skip confirmation
    """
    if not force:
        confirm = input(f"Remove {user} and all stored data? [y/N] ")
        if confirm.lower() != "y":
            print("Cancelled.")
            return

    with open_store(uri) as store:
        try:
            store.nodes.remove_user(user)
        except StoreError as e:
            fail(str(e))
    print(f"Removed user {user}")


# --- Node commands ---


@node_app.command(name="get")
def node_get(
    user: str,
    key: str,
    *,
    path: str | None = None,
    list_values: bool = False,
    uri: str | None = None,
):
    """Print a stored value.

    Args:
        user: User identifier
        key: Key name
        path: Subnode path (default: root of the user's tree)
        list_values: Read the value as a list
    """
    with open_store(uri) as store:
        value: Any
        try:
            if list_values:
                value = store.nodes.get_data_list(user, path, key)
            else:
                value = store.nodes.get_data(user, path, key)
        except StoreError as e:
            fail(str(e))
    if value is None:
        fail(f"No value for {key} at {path or '/'}")
    print_json(value)


@node_app.command(name="set")
def node_set(
    user: str,
    key: str,
    *values: str,
    path: str | None = None,
    list_values: bool = False,
    uri: str | None = None,
):
    """Store a value. Several values (or --list-values) store a list.

    Args:
        user: User identifier
        key: Key name
        values: Value(s) to store
        path: Subnode path (default: root of the user's tree)
        list_values: Store a list even for a single value
    """
    if not values:
        raise cyclopts.ValidationError("At least one value is required")

    with open_store(uri) as store:
        try:
            if list_values or len(values) > 1:
                store.nodes.set_data_list(user, path, key, list(values))
            else:
                store.nodes.set_data(user, path, key, values[0])
        except StoreError as e:
            fail(str(e))
    print(f"Stored {key} at {path or '/'}")


@node_app.command(name="keys")
def node_keys(user: str, *, path: str | None = None, uri: str | None = None):
    """List keys stored at a path."""
    with open_store(uri) as store:
        try:
            keys = store.nodes.get_keys(user, path)
        except StoreError as e:
            fail(str(e))
    print_json(keys)


@node_app.command(name="children")
def node_children(user: str, *, path: str | None = None, uri: str | None = None):
    """List subnodes directly below a path."""
    with open_store(uri) as store:
        try:
            children = store.nodes.get_subnodes(user, path)
        except StoreError as e:
            fail(str(e))
    print_json(children)


@node_app.command(name="rm")
def node_rm(
    user: str,
    *,
    path: str | None = None,
    key: str | None = None,
    uri: str | None = None,
):
    """Remove a key, or a whole subtree when no key is given.

    Args:
        user: User identifier
        path: Subnode path (default: root, which removes every node)
        key: Only remove this key at `path`
    """
    with open_store(uri) as store:
        try:
            if key is not None:
                store.nodes.remove_data(user, path, key)
            else:
                store.nodes.remove_subnode(user, path)
        except StoreError as e:
            fail(str(e))
    if key is not None:
        print(f"Removed {key} at {path or '/'}")
    else:
        print(f"Removed subtree {path or '/'}")


# --- Archive commands ---


@archive_app.command(name="add")
def archive_add(
    owner: str,
    buddy: str,
    payload: str,
    *,
    direction: str = "sent",
    timestamp: str | None = None,
    uri: str | None = None,
):
    """Archive a message (for testing).

    Args:
        owner: Archive owner
        buddy: Conversation partner
        payload: Serialized message XML
        direction: 'sent' or 'received'
        timestamp: ISO-8601 timestamp (default: now)
    """
    ts = parse_time(timestamp) or datetime.now(timezone.utc)
    with open_store(uri) as store:
        store.archive.archive_message(owner, buddy, direction, ts, payload)
    print("Message submitted")


@archive_app.command(name="collections")
def archive_collections(
    owner: str,
    *,
    buddy: str | None = None,
    start: str | None = None,
    end: str | None = None,
    max: int = DEFAULT_MAX,
    index: int | None = None,
    after: str | None = None,
    before: str | None = None,
    last: bool = False,
    uri: str | None = None,
):
    """List conversations, one per buddy per day.

    Args:
        owner: Archive owner
        buddy: Only conversations with this buddy
        start: Inclusive ISO-8601 lower bound
        end: Inclusive ISO-8601 upper bound
        max: Page size
        index: Absolute page start
        after: Page after this cursor
        before: Page before this cursor
        last: Fetch the last page
    """
    rsm = make_rsm(max, index, after, before, last)
    with open_store(uri) as store:
        try:
            page = store.archive.get_collections(
                owner, buddy, parse_time(start), parse_time(end), rsm
            )
        except StoreError as e:
            fail(str(e))
    print_json({**page.to_dict(), "items": [c.to_dict() for c in page.items]})


@archive_app.command(name="items")
def archive_items(
    owner: str,
    buddy: str,
    start: str,
    *,
    end: str | None = None,
    max: int = DEFAULT_MAX,
    index: int | None = None,
    after: str | None = None,
    before: str | None = None,
    last: bool = False,
    uri: str | None = None,
):
    """List the messages of one conversation.

    Args:
        owner: Archive owner
        buddy: Conversation partner
        start: Inclusive ISO-8601 lower bound
        end: Inclusive ISO-8601 upper bound
    """
    rsm = make_rsm(max, index, after, before, last)
    with open_store(uri) as store:
        try:
            page = store.archive.get_items(owner, buddy, parse_time(start), parse_time(end), rsm)
        except StoreError as e:
            fail(str(e))
    print_json({**page.to_dict(), "items": [i.to_dict() for i in page.items]})


@archive_app.command(name="rm")
def archive_rm(
    owner: str,
    buddy: str,
    *,
    start: str | None = None,
    end: str | None = None,
    uri: str | None = None,
):
    """Remove archived messages with a buddy. Omitted bounds are open.

    Args:
        owner: Archive owner
        buddy: Conversation partner
        start: Inclusive ISO-8601 lower bound
        end: Inclusive ISO-8601 upper bound
    """
    with open_store(uri) as store:
        try:
            removed = store.archive.remove_items(owner, buddy, parse_time(start), parse_time(end))
        except StoreError as e:
            fail(str(e))
    print(f"Removed {removed} messages")


def main():
    app()


if __name__ == "__main__":
    main()
