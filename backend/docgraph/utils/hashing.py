"""Content fingerprints for duplicate detection."""

import hashlib


def compute_content_hash(data: bytes | str) -> str:
    """SHA-256 hex digest of *data* (text is hashed as UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()
