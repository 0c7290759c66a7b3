"""Registry of the root directories the user has added."""

import logging
import os
import threading
from pathlib import Path

from ..errors import AlreadyAddedError, NotFoundError, SourceReadError
from ..models.directory import Directory
from ..utils.paths import canonical_path
from .catalog import Catalog, Store

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class DirectoryRegistry:
    """Ordered set of registered directories, keyed by canonical path.

    Removing a directory cascades into the catalog.
    """

    def __init__(self, store: Store, catalog: Catalog) -> None:
        self._store = store
        self._catalog = catalog
        self._lock = threading.RLock()
        self._directories: dict[str, Directory] = {}
        for item in store.load().get("directories", []):
            directory = Directory.from_dict(item)
            self._directories.setdefault(directory.path, directory)
        catalog.bind_owner_check(self._is_registered)

    def _is_registered(self, key: str) -> bool:
        return key in self._directories

    def _save(self) -> None:
        self._store.save(
            {
                "schema_version": SCHEMA_VERSION,
                "directories": [d.to_dict() for d in self._directories.values()],
            }
        )

    def add(self, path: str | os.PathLike) -> Directory:
        """Register a directory.

        Raises SourceReadError if the path isn't an existing directory and
        AlreadyAddedError if it is registered already.
        """
        key = canonical_path(path)
        if not os.path.exists(key):
            raise SourceReadError(path, "directory does not exist")
        if not os.path.isdir(key):
            raise SourceReadError(path, "not a directory")

        with self._lock:
            if key in self._directories:
                raise AlreadyAddedError(f"Directory already added: {key}")
            directory = Directory(path=key)
            self._directories[key] = directory
            self._save()
        logger.info(f"Added directory {key}")
        return directory

    def ensure(self, path: str | os.PathLike) -> Directory:
        """Return the registered directory for ``path``, adding it if needed."""
        with self._lock:
            existing = self.get(path)
            if existing is not None:
                return existing
            return self.add(path)

    def get(self, path: str | os.PathLike) -> Directory | None:
        with self._lock:
            return self._directories.get(canonical_path(path))

    def owner_of(self, path: str | os.PathLike) -> Directory | None:
        """Closest registered directory containing ``path`` (or equal to it)."""
        current = Path(canonical_path(path))
        with self._lock:
            for candidate in (current, *current.parents):
                directory = self._directories.get(str(candidate))
                if directory is not None:
                    return directory
        return None

    def remove(self, directory: Directory | str | os.PathLike) -> int:
        """Unregister a directory and delete its tracks; returns the track count."""
        raw = directory.path if isinstance(directory, Directory) else directory
        # Catalog lock first: Catalog.add checks ownership while holding it
        with self._catalog.locked(), self._lock:
            key = raw if raw in self._directories else canonical_path(raw)
            if key not in self._directories:
                raise NotFoundError(f"Directory not registered: {raw}")
            removed = self._catalog.remove_directory(key)
            del self._directories[key]
            self._save()
        logger.info(f"Removed directory {key} and {removed} tracks")
        return removed

    def list(self) -> list[Directory]:
        """Registered directories in the order they were added."""
        with self._lock:
            return list(self._directories.values())

    def __len__(self) -> int:
        return len(self._directories)

    def __contains__(self, path: object) -> bool:
        if isinstance(path, Directory):
            return path.path in self._directories
        if isinstance(path, (str, os.PathLike)):
            return canonical_path(path) in self._directories
        return False
