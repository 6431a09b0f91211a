"""Tests for subnode path handling."""

import pytest

from userstore import paths


class TestNormalize:
    @pytest.mark.parametrize("raw", ["a/b", "a/b/", "/a/b", "a//b", "//a/b//"])
    def test_equivalent_spellings(self, raw):
        """Leading, trailing and doubled separators do not change the path."""
        assert paths.normalize(raw) == "a/b"

    @pytest.mark.parametrize("raw", [None, "", "/", "//"])
    def test_empty_paths_are_root(self, raw):
        """Paths without segments address the root."""
        assert paths.normalize(raw) is paths.ROOT

    def test_segments(self):
        assert paths.segments("/a//b/c/") == ("a", "b", "c")
        assert paths.segments(None) == ()


class TestPrefixMatching:
    def test_is_within_on_segment_boundary(self):
        """A path contains itself and its descendants, not siblings sharing a prefix."""
        assert paths.is_within("a", "a")
        assert paths.is_within("a/b/c", "a")
        assert paths.is_within("a/b", None)
        assert not paths.is_within("ab", "a")
        assert not paths.is_within("a2/b", "a")
        assert not paths.is_within("a", "a/b")

    def test_immediate_child(self):
        assert paths.immediate_child("a/b/c", "a") == "b"
        assert paths.immediate_child("a/b", None) == "a"
        assert paths.immediate_child("a", "a") is None
        assert paths.immediate_child("ab/c", "a") is None


class TestHelpers:
    def test_unique_keeps_first_seen_order(self):
        assert paths.unique(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_column_encoding(self):
        """ROOT is stored as an empty string and decoded back to ROOT."""
        assert paths.to_column(None) == ""
        assert paths.to_column("/") == ""
        assert paths.to_column("a/b/") == "a/b"
        assert paths.from_column("") is paths.ROOT
        assert paths.from_column("a/b") == "a/b"
