"""SHA-256 hashing of rendered output for the build manifest"""

import hashlib


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 of content (64 chars, matches the manifest String(64) column)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
