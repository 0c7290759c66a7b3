"""Utility modules for hashing, paths, and storage detection."""

from .hashing import hash_bytes, hash_file, hash_stream
from .storage import StorageType, detect_storage_type

__all__ = [
    "hash_bytes",
    "hash_file",
    "hash_stream",
    "StorageType",
    "detect_storage_type",
]
