"""The track catalog: single writer of Track records."""

import dataclasses
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Protocol

from ..errors import DuplicateError, NotFoundError, StoreError
from ..models.directory import Directory
from ..models.track import Track

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_BATCH_SIZE = 50


class Store(Protocol):
    def load(self) -> dict: ...

    def save(self, data: dict) -> None: ...


def _directory_key(directory: Directory | str) -> str:
    return directory.path if isinstance(directory, Directory) else str(directory)


class Catalog:
    """In-memory track index backed by a persistent store.

    Tracks are keyed by content hash, with secondary indexes by id, source
    directory, and origin path. Every public operation runs under one lock,
    so a find-then-add pair can never let two tracks with the same hash in.
    """

    def __init__(self, store: Store, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self._store = store
        self._batch_size = batch_size
        self._lock = threading.RLock()
        self._owner_check: Callable[[str], bool] | None = None
        self._by_hash: dict[str, Track] = {}
        self._by_id: dict[int, Track] = {}
        self._by_directory: dict[str, list[int]] = {}
        self._by_origin: dict[str, int] = {}
        self._next_id = 1
        self._batch_depth = 0
        self._pending_saves = 0
        self._load()

    def _load(self) -> None:
        data = self._store.load()
        version = data.get("schema_version", SCHEMA_VERSION)
        if version > SCHEMA_VERSION:
            raise StoreError(f"Catalog schema {version} is newer than supported {SCHEMA_VERSION}")

        tracks = [Track.from_dict(t) for t in data.get("tracks", {}).values()]
        # Ids are handed out in insertion order
        tracks.sort(key=lambda t: t.id or 0)
        for track in tracks:
            if track.id is None or track.content_hash in self._by_hash:
                logger.warning(f"Dropping invalid catalog record {track.origin_path!r}")
                continue
            self._index(track)

        highest = max(self._by_id, default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)
        logger.debug(f"Loaded {len(self._by_id)} tracks from catalog")

    def _index(self, track: Track) -> None:
        self._by_hash[track.content_hash] = track
        self._by_id[track.id] = track
        self._by_directory.setdefault(track.source_directory, []).append(track.id)
        if track.origin_path:
            self._by_origin[track.origin_path] = track.id

    def _unindex(self, track: Track) -> None:
        del self._by_hash[track.content_hash]
        del self._by_id[track.id]
        ids = self._by_directory.get(track.source_directory)
        if ids is not None:
            ids.remove(track.id)
            if not ids:
                del self._by_directory[track.source_directory]
        if self._by_origin.get(track.origin_path) == track.id:
            del self._by_origin[track.origin_path]

    def _reindex(self, tracks: list[Track]) -> None:
        for track in tracks:
            self._index(track)
        for ids in self._by_directory.values():
            # Ids grow with insertion order
            ids.sort()

    def _to_document(self) -> dict:
        return {
            "schema_version": SCHEMA_VERSION,
            "next_id": self._next_id,
            "tracks": {h: t.to_dict() for h, t in self._by_hash.items()},
        }

    def _persist(self) -> None:
        if self._batch_depth and self._pending_saves + 1 < self._batch_size:
            self._pending_saves += 1
            return
        self._store.save(self._to_document())
        self._pending_saves = 0

    def bind_owner_check(self, check: Callable[[str], bool]) -> None:
        """Only accept tracks whose source directory passes ``check``.

        The check runs under the catalog lock, so a directory removed while
        holding ``locked()`` can never gain tracks afterwards.
        """
        with self._lock:
            self._owner_check = check

    @contextmanager
    def locked(self) -> Iterator["Catalog"]:
        with self._lock:
            yield self

    @contextmanager
    def batch(self) -> Iterator["Catalog"]:
        """Coalesce saves while many tracks are added; flushes on exit."""
        with self._lock:
            self._batch_depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._pending_saves:
                    self.flush()

    def flush(self) -> None:
        """Write the current state to the store."""
        with self._lock:
            self._store.save(self._to_document())
            self._pending_saves = 0

    def add(self, track: Track) -> int:
        """Register a new track and return its id.

        Raises DuplicateError if a track with the same content hash exists
        and NotFoundError if its source directory is no longer registered.
        """
        with self._lock:
            existing = self._by_hash.get(track.content_hash)
            if existing is not None:
                raise DuplicateError(existing)
            if self._owner_check is not None and not self._owner_check(track.source_directory):
                raise NotFoundError(f"Directory not registered: {track.source_directory}")

            stored = dataclasses.replace(track, id=self._next_id)
            self._next_id += 1
            self._index(stored)
            try:
                self._persist()
            except StoreError:
                self._unindex(stored)
                raise
            logger.debug(f"Added track {stored.id} ({stored.origin_path})")
            return stored.id

    def find_by_hash(self, content_hash: str) -> Track | None:
        with self._lock:
            return self._by_hash.get(content_hash)

    def find_by_origin(self, origin_path: str) -> Track | None:
        """Find the track last imported from ``origin_path``."""
        with self._lock:
            track_id = self._by_origin.get(origin_path)
            return self._by_id.get(track_id) if track_id is not None else None

    def get(self, track_id: int) -> Track:
        with self._lock:
            try:
                return self._by_id[track_id]
            except KeyError:
                raise NotFoundError(f"Track {track_id} not found") from None

    def list_by_directory(self, directory: Directory | str) -> list[Track]:
        """Tracks owned by a directory, in insertion order."""
        with self._lock:
            ids = self._by_directory.get(_directory_key(directory), [])
            return [self._by_id[i] for i in ids]

    def all(self) -> list[Track]:
        with self._lock:
            return [self._by_id[i] for i in sorted(self._by_id)]

    def remove(self, track_id: int) -> Track:
        """Remove a track by id; raises NotFoundError if it doesn't exist."""
        with self._lock:
            track = self._by_id.get(track_id)
            if track is None:
                raise NotFoundError(f"Track {track_id} not found")
            self._unindex(track)
            try:
                self.flush()
            except StoreError:
                self._reindex([track])
                raise
            logger.info(f"Removed track {track_id} ({track.title})")
            return track

    def remove_directory(self, directory: Directory | str) -> int:
        """Remove every track owned by a directory; returns how many."""
        key = _directory_key(directory)
        with self._lock:
            removed = [self._by_id[i] for i in self._by_directory.get(key, [])]
            for track in removed:
                self._unindex(track)
            if removed:
                try:
                    self.flush()
                except StoreError:
                    self._reindex(removed)
                    raise
            logger.info(f"Removed {len(removed)} tracks from {key}")
            return len(removed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __contains__(self, content_hash: object) -> bool:
        with self._lock:
            return content_hash in self._by_hash
