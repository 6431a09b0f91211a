"""User identifiers and the storage keys derived from them."""

import hashlib

from .errors import StoreConnectionError

KEY_HASH_ALG = "sha256"


def canonical_user(identifier: str) -> str:
    """Canonical form of a user identifier: no resource, lowercased."""
    user = identifier.strip().split("/", 1)[0].lower()
    if not user:
        raise ValueError(f"Invalid user identifier: {identifier!r}")
    return user


def domain_of(identifier: str) -> str:
    """Domain part of a user identifier."""
    return canonical_user(identifier).rpartition("@")[2]


def derive_key(identifier: str) -> bytes:
    """Derive the 32-byte storage key for a user. Full SHA-256 of the canonical form."""
    return hashlib.new(KEY_HASH_ALG, canonical_user(identifier).encode("utf-8")).digest()


def check_digest_available() -> None:
    """Verify the key digest can be computed. Called once when a store opens."""
    if KEY_HASH_ALG not in hashlib.algorithms_available:
        raise StoreConnectionError(f"Digest algorithm {KEY_HASH_ALG} is not available")
