"""Tests for the per-user node tree."""

import sqlite3

import pytest

from userstore import db, nodes
from userstore.metrics import metrics

ALICE = "alice@example.com"
BOB = "bob@example.com"


class TestScalarValues:
    def test_set_and_get(self, conn):
        nodes.set_data(conn, ALICE, "prefs", "lang", "en")
        assert nodes.get_data(conn, ALICE, "prefs", "lang") == "en"

    def test_overwrite(self, conn):
        """Setting a key twice keeps only the latest value."""
        nodes.set_data(conn, ALICE, "prefs", "lang", "en")
        nodes.set_data(conn, ALICE, "prefs", "lang", "de")
        assert nodes.get_data(conn, ALICE, "prefs", "lang") == "de"
        assert conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0] == 1

    def test_missing_value(self, conn):
        assert nodes.get_data(conn, ALICE, "prefs", "lang") is None

    def test_path_spellings_address_same_node(self, conn):
        """Equivalent path spellings read and write the same entry."""
        nodes.set_data(conn, ALICE, "/roster/items/", "count", "3")
        assert nodes.get_data(conn, ALICE, "roster//items", "count") == "3"

    def test_root_spellings_address_same_node(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "v")
        assert nodes.get_data(conn, ALICE, "", "k") == "v"
        assert nodes.get_data(conn, ALICE, "/", "k") == "v"

    def test_user_identifier_is_canonicalized(self, conn):
        nodes.set_data(conn, "Alice@Example.com/phone", None, "k", "v")
        assert nodes.get_data(conn, ALICE, None, "k") == "v"

    def test_users_are_isolated(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "alice")
        nodes.set_data(conn, BOB, None, "k", "bob")
        assert nodes.get_data(conn, ALICE, None, "k") == "alice"
        assert nodes.get_data(conn, BOB, None, "k") == "bob"


class TestListValues:
    def test_set_and_get_list(self, conn):
        nodes.set_data_list(conn, ALICE, "groups", "names", ["a", "b", "c"])
        assert nodes.get_data_list(conn, ALICE, "groups", "names") == ["a", "b", "c"]

    def test_set_list_leaves_no_residue(self, conn):
        """Replacing a list never merges with the previous one."""
        nodes.set_data_list(conn, ALICE, "groups", "names", ["a", "b", "c"])
        nodes.set_data_list(conn, ALICE, "groups", "names", ["d"])
        assert nodes.get_data_list(conn, ALICE, "groups", "names") == ["d"]

    def test_list_replaces_scalar(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "v")
        nodes.set_data_list(conn, ALICE, None, "k", ["x", "y"])
        assert nodes.get_data_list(conn, ALICE, None, "k") == ["x", "y"]
        assert nodes.get_data(conn, ALICE, None, "k") is None

    def test_scalar_replaces_list(self, conn):
        nodes.set_data_list(conn, ALICE, None, "k", ["x", "y"])
        nodes.set_data(conn, ALICE, None, "k", "v")
        assert nodes.get_data(conn, ALICE, None, "k") == "v"
        assert nodes.get_data_list(conn, ALICE, None, "k") == ["v"]

    def test_add_data_list_appends(self, conn):
        nodes.set_data_list(conn, ALICE, None, "k", ["a"])
        nodes.add_data_list(conn, ALICE, None, "k", ["b", "c"])
        assert nodes.get_data_list(conn, ALICE, None, "k") == ["a", "b", "c"]
        assert conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0] == 1

    def test_add_data_list_creates(self, conn):
        nodes.add_data_list(conn, ALICE, None, "k", ["a"])
        assert nodes.get_data_list(conn, ALICE, None, "k") == ["a"]

    def test_missing_list(self, conn):
        assert nodes.get_data_list(conn, ALICE, None, "k") is None

    def test_empty_list(self, conn):
        nodes.set_data_list(conn, ALICE, None, "k", [])
        assert nodes.get_data_list(conn, ALICE, None, "k") == []

    def test_failed_replace_keeps_previous_list(self, conn):
        """An unencodable list leaves the stored list intact after later commits."""
        nodes.set_data_list(conn, ALICE, "roster", "groups", ["a", "b"])
        with pytest.raises(TypeError):
            nodes.set_data_list(conn, ALICE, "roster", "groups", ["x", object()])

        nodes.set_data(conn, BOB, None, "k", "v")

        assert nodes.get_data_list(conn, ALICE, "roster", "groups") == ["a", "b"]

    def test_failed_insert_rolls_back_delete(self, conn):
        """When the insert is rejected, the delete before it is not committed."""
        nodes.set_data_list(conn, ALICE, "roster", "groups", ["a", "b"])
        conn.execute(
            """CREATE TRIGGER reject_groups BEFORE INSERT ON nodes
               WHEN NEW.key = 'groups'
               BEGIN SELECT RAISE(ABORT, 'groups are read-only'); END"""
        )
        with pytest.raises(sqlite3.IntegrityError):
            nodes.set_data_list(conn, ALICE, "roster", "groups", ["x"])

        nodes.set_data(conn, BOB, None, "k", "v")

        assert nodes.get_data_list(conn, ALICE, "roster", "groups") == ["a", "b"]

    def test_add_data_list_to_scalar(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "a")
        nodes.add_data_list(conn, ALICE, None, "k", ["b"])
        assert nodes.get_data_list(conn, ALICE, None, "k") == ["a", "b"]
        assert nodes.get_data(conn, ALICE, None, "k") is None

    def test_add_data_list_keeps_order(self, conn):
        values = [str(i) for i in range(12)]
        nodes.set_data_list(conn, ALICE, None, "k", values[:6])
        nodes.add_data_list(conn, ALICE, None, "k", values[6:])
        assert nodes.get_data_list(conn, ALICE, None, "k") == values


class TestConcurrentAppends:
    """Appends from separate connections to one database file."""

    @pytest.fixture
    def connections(self, tmp_path):
        uri = str(tmp_path / "nodes.db")
        first = db.connect(uri)
        db.init_db_with_conn(first)
        second = db.connect(uri)
        yield first, second
        first.close()
        second.close()

    def test_appends_from_both_connections_survive(self, connections):
        first, second = connections
        nodes.set_data_list(first, ALICE, "roster", "groups", ["a"])

        nodes.add_data_list(second, ALICE, "roster", "groups", ["b"])
        nodes.add_data_list(first, ALICE, "roster", "groups", ["c"])

        assert nodes.get_data_list(first, ALICE, "roster", "groups") == ["a", "b", "c"]
        assert nodes.get_data_list(second, ALICE, "roster", "groups") == ["a", "b", "c"]

    def test_append_interleaved_with_other_writer(self, connections):
        """An append landing while another append is in progress is kept."""
        first, second = connections
        nodes.set_data_list(first, ALICE, "roster", "groups", ["a"])

        def other_append():
            nodes.add_data_list(second, ALICE, "roster", "groups", ["b"])

        interleaved = InterleavedConnection(first, before_write=other_append)
        nodes.add_data_list(interleaved, ALICE, "roster", "groups", ["c"])

        assert nodes.get_data_list(first, ALICE, "roster", "groups") == ["a", "b", "c"]


class InterleavedConnection:
    """Connection wrapper that runs `before_write` ahead of its first write."""

    def __init__(self, conn, before_write):
        self._conn = conn
        self._before_write = before_write

    def execute(self, sql, params=()):
        if self._before_write and sql.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
            before_write, self._before_write = self._before_write, None
            before_write()
        return self._conn.execute(sql, params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


class TestKeysAndSubnodes:
    def test_keys_at_exact_path(self, conn):
        """Keys of descendant nodes are not listed."""
        nodes.set_data(conn, ALICE, "a", "x", "1")
        nodes.set_data(conn, ALICE, "a", "y", "2")
        nodes.set_data(conn, ALICE, "a/b", "z", "3")
        assert sorted(nodes.get_keys(conn, ALICE, "a")) == ["x", "y"]

    def test_keys_have_no_duplicates(self, conn):
        nodes.set_data(conn, ALICE, "a", "x", "1")
        nodes.set_data(conn, ALICE, "a", "x", "2")
        nodes.set_data_list(conn, ALICE, "a", "x", ["3"])
        assert nodes.get_keys(conn, ALICE, "a") == ["x"]

    def test_keys_at_missing_path(self, conn):
        assert nodes.get_keys(conn, ALICE, "nowhere") == []

    def test_subnodes_of_root(self, conn):
        nodes.set_data(conn, ALICE, None, "top", "1")
        nodes.set_data(conn, ALICE, "a/b", "k", "1")
        nodes.set_data(conn, ALICE, "a/c/d", "k", "1")
        nodes.set_data(conn, ALICE, "ab", "k", "1")
        assert sorted(nodes.get_subnodes(conn, ALICE, None)) == ["a", "ab"]

    def test_subnodes_are_immediate_children(self, conn):
        """Only the segment directly below the path is listed, once."""
        nodes.set_data(conn, ALICE, "a/b", "k", "1")
        nodes.set_data(conn, ALICE, "a/b/e", "k", "1")
        nodes.set_data(conn, ALICE, "a/c/d", "k", "1")
        nodes.set_data(conn, ALICE, "ab/x", "k", "1")
        assert sorted(nodes.get_subnodes(conn, ALICE, "a")) == ["b", "c"]

    def test_subnodes_small_batches(self, conn):
        """Results are the same when streamed one row at a time."""
        for child in ("b", "c", "d"):
            nodes.set_data(conn, ALICE, f"a/{child}", "k", "1")
            nodes.set_data(conn, ALICE, f"a/{child}/deeper", "k", "1")
        assert sorted(nodes.get_subnodes(conn, ALICE, "a", batch_size=1)) == ["b", "c", "d"]

    def test_no_subnodes(self, conn):
        nodes.set_data(conn, ALICE, "a", "k", "1")
        assert nodes.get_subnodes(conn, ALICE, "a") == []
        assert nodes.get_subnodes(conn, BOB, None) == []


class TestRemoval:
    def test_remove_data(self, conn):
        nodes.set_data(conn, ALICE, "a", "x", "1")
        nodes.set_data(conn, ALICE, "a", "y", "2")
        assert nodes.remove_data(conn, ALICE, "a", "x") is True
        assert nodes.get_data(conn, ALICE, "a", "x") is None
        assert nodes.get_data(conn, ALICE, "a", "y") == "2"

    def test_remove_missing_data(self, conn):
        assert nodes.remove_data(conn, ALICE, "a", "x") is False

    def test_remove_subnode_respects_segments(self, conn):
        """Removing "a" leaves siblings that merely share a prefix."""
        nodes.set_data(conn, ALICE, "a", "k", "1")
        nodes.set_data(conn, ALICE, "a/b", "k", "1")
        nodes.set_data(conn, ALICE, "a/b/c", "k", "1")
        nodes.set_data(conn, ALICE, "ab", "k", "1")
        nodes.set_data(conn, ALICE, "a2/b", "k", "1")

        assert nodes.remove_subnode(conn, ALICE, "a") == 3

        assert nodes.get_data(conn, ALICE, "a", "k") is None
        assert nodes.get_data(conn, ALICE, "a/b/c", "k") is None
        assert nodes.get_data(conn, ALICE, "ab", "k") == "1"
        assert nodes.get_data(conn, ALICE, "a2/b", "k") == "1"

    def test_remove_root_clears_only_that_user(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "1")
        nodes.set_data(conn, ALICE, "a/b", "k", "1")
        nodes.set_data(conn, BOB, "a", "k", "1")

        assert nodes.remove_subnode(conn, ALICE, None) == 2

        assert nodes.get_subnodes(conn, ALICE, None) == []
        assert nodes.get_data(conn, BOB, "a", "k") == "1"


class TestInstrumentation:
    def test_operations_are_timed(self, conn):
        nodes.set_data(conn, ALICE, None, "k", "v")
        nodes.get_data(conn, ALICE, None, "k")
        nodes.get_data(conn, ALICE, None, "k")
        assert metrics.operations["set_data"].count == 1
        assert metrics.operations["get_data"].count == 2
