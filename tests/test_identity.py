"""Tests for user identifiers and storage keys."""

import hashlib

import pytest

from userstore.identity import canonical_user, check_digest_available, derive_key, domain_of


class TestCanonicalUser:
    def test_strips_resource_and_lowercases(self):
        """Resource part is dropped and the identifier lowercased."""
        assert canonical_user("Alice@Example.COM/phone") == "alice@example.com"

    def test_strips_whitespace(self):
        assert canonical_user("  bob@example.com ") == "bob@example.com"

    def test_empty_identifier_rejected(self):
        """Identifiers with nothing before the resource are invalid."""
        with pytest.raises(ValueError):
            canonical_user("   ")
        with pytest.raises(ValueError):
            canonical_user("/resource")

    def test_domain_of(self):
        assert domain_of("Alice@Example.com/phone") == "example.com"
        assert domain_of("example.com") == "example.com"


class TestDeriveKey:
    def test_key_is_sha256_of_canonical_form(self):
        """Key is the full 32-byte SHA-256 digest of the canonical identifier."""
        key = derive_key("Alice@Example.com/laptop")
        assert key == hashlib.sha256(b"alice@example.com").digest()
        assert len(key) == 32

    def test_same_user_same_key(self):
        """Every spelling of one account maps to the same key."""
        assert derive_key("alice@example.com") == derive_key("ALICE@example.com/res")

    def test_different_users_different_keys(self):
        assert derive_key("alice@example.com") != derive_key("bob@example.com")

    def test_digest_available(self):
        """The key digest is available on this platform."""
        check_digest_available()
