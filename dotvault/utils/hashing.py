# dotvault Hashing Utilities
# Content fingerprints for drift detection

import hashlib

# Reserved fingerprint for absent content. Never a valid hex digest.
MISSING_HASH = "MISSING"


def content_hash(content: str | bytes | None, *, algorithm: str = "sha256") -> str:
    """
    Calculate the fingerprint of content.

    Args:
        content: String or bytes content. None means absent.
        algorithm: Hash algorithm (default sha256).

    Returns:
        Hex digest of hash, or MISSING_HASH for absent content.
    """
    if content is None:
        return MISSING_HASH

    if isinstance(content, str):
        content = content.encode("utf-8")

    hasher = hashlib.new(algorithm)
    hasher.update(content)
    return hasher.hexdigest()


def short_hash(fingerprint: str | None, length: int = 12) -> str:
    """Truncate a fingerprint for display."""
    if fingerprint is None:
        return "<never>"
    if fingerprint == MISSING_HASH:
        return "<missing>"
    return fingerprint[:length]
