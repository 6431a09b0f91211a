"""Tests for user records and credentials."""

import pytest

from userstore import nodes, users
from userstore.errors import UserExistsError, UserNotFoundError
from userstore.identity import derive_key


class TestUserRecords:
    def test_add_user(self, conn):
        uid = users.add_user(conn, "Alice@Example.com")
        assert uid == derive_key("alice@example.com")
        assert users.user_exists(conn, "alice@example.com")

    def test_duplicate_user_rejected(self, conn):
        users.add_user(conn, "alice@example.com")
        with pytest.raises(UserExistsError):
            users.add_user(conn, "ALICE@example.com/phone")

    def test_ensure_user_is_idempotent(self, conn):
        users.ensure_user(conn, "alice@example.com")
        users.ensure_user(conn, "alice@example.com")
        assert users.count_users(conn) == 1

    def test_missing_user(self, conn):
        assert not users.user_exists(conn, "nobody@example.com")

    def test_get_users_sorted(self, conn):
        for user in ("carol@example.net", "alice@example.com", "bob@example.com"):
            users.add_user(conn, user)
        assert users.get_users(conn, batch_size=2) == [
            "alice@example.com",
            "bob@example.com",
            "carol@example.net",
        ]

    def test_count_users_by_domain(self, conn):
        users.add_user(conn, "alice@example.com")
        users.add_user(conn, "bob@example.com")
        users.add_user(conn, "carol@example.net")
        assert users.count_users(conn) == 3
        assert users.count_users(conn, "example.com") == 2
        assert users.count_users(conn, "Example.NET") == 1
        assert users.count_users(conn, "example.org") == 0


class TestRemoveUser:
    def test_remove_user_and_nodes(self, conn):
        users.add_user(conn, "alice@example.com")
        nodes.set_data(conn, "alice@example.com", "a/b", "k", "v")

        users.remove_user(conn, "alice@example.com")

        assert not users.user_exists(conn, "alice@example.com")
        assert nodes.get_subnodes(conn, "alice@example.com", None) == []

    def test_remove_user_with_only_nodes(self, conn):
        """Nodes written without a user record are still removed."""
        nodes.set_data(conn, "alice@example.com", None, "k", "v")
        users.remove_user(conn, "alice@example.com")
        assert nodes.get_data(conn, "alice@example.com", None, "k") is None

    def test_remove_missing_user(self, conn):
        with pytest.raises(UserNotFoundError):
            users.remove_user(conn, "nobody@example.com")

    def test_other_users_untouched(self, conn):
        users.add_user(conn, "alice@example.com")
        users.add_user(conn, "bob@example.com")
        nodes.set_data(conn, "bob@example.com", None, "k", "v")

        users.remove_user(conn, "alice@example.com")

        assert users.user_exists(conn, "bob@example.com")
        assert nodes.get_data(conn, "bob@example.com", None, "k") == "v"


class TestPasswords:
    def test_password_round_trip(self, conn):
        users.add_user(conn, "alice@example.com", "s3cret")
        assert users.get_password(conn, "alice@example.com") == "s3cret"

    def test_user_without_password(self, conn):
        users.add_user(conn, "alice@example.com")
        assert users.get_password(conn, "alice@example.com") is None

    def test_update_password(self, conn):
        users.add_user(conn, "alice@example.com", "old")
        users.update_password(conn, "alice@example.com", "new")
        assert users.get_password(conn, "alice@example.com") == "new"

    def test_missing_user(self, conn):
        with pytest.raises(UserNotFoundError):
            users.get_password(conn, "nobody@example.com")
        with pytest.raises(UserNotFoundError):
            users.update_password(conn, "nobody@example.com", "x")
