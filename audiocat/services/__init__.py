"""Service modules for catalog state and persistence."""

from .catalog import Catalog
from .registry import DirectoryRegistry
from .store import JsonStore, MemoryStore

__all__ = ["Catalog", "DirectoryRegistry", "JsonStore", "MemoryStore"]
