"""Content hashing used as the catalog deduplication key."""

import hashlib
from pathlib import Path
from typing import BinaryIO

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB
DIGEST_LENGTH = 64  # hex characters of a SHA-256 digest


def hash_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of a binary stream, read in chunks."""
    h = hashlib.sha256()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        h.update(chunk)
    return h.hexdigest()


def hash_file(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of a file's raw bytes."""
    with open(path, "rb") as f:
        return hash_stream(f, chunk_size)


def hash_bytes(data: bytes) -> str:
    """Return the SHA-256 hex digest of an in-memory payload."""
    return hashlib.sha256(data).hexdigest()


def is_content_hash(value: str) -> bool:
    """Check whether a string looks like a digest produced by this module."""
    if len(value) != DIGEST_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
