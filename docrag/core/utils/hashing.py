"""

docrag/core/utils/hashing.py

Content hashing helpers.

- compute_text_hash : MD5 of a text, the embedding cache key and the
                      multi-query dedup key (content addressing, not security)
- compute_bytes_hash: SHA-256 of source document bytes, recorded on ingestion
                      for provenance

"""

import hashlib


def compute_text_hash(text: str) -> str:
    """
    MD5 hex digest of the exact UTF-8 text.

    Identical strings always produce identical keys; any change in the
    text (including whitespace) produces a different key.
    """
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()
