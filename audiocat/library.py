"""Library facade: the operations offered to a presentation layer."""

import logging
import os
import threading
from pathlib import Path

from .config import Config, ImportConfig
from .errors import NotFoundError, SourceReadError
from .extractors.metadata import MetadataExtractor, MetadataReader
from .models.directory import Directory
from .models.job import ImportJob
from .models.track import Track
from .processors.importer import (
    ArchiveSource,
    DirectorySource,
    DroppedPathsSource,
    ImportPipeline,
    ImportSource,
    ImportStream,
)
from .services.catalog import Catalog
from .services.registry import DirectoryRegistry
from .services.store import JsonStore, MemoryStore
from .utils.paths import canonical_path, is_archive, is_audio

logger = logging.getLogger(__name__)


class MusicLibrary:
    """Wires catalog, registry, and import pipeline together.

    Imports run in the background and return an ImportStream; everything
    else is a plain synchronous call.
    """

    def __init__(
        self,
        catalog: Catalog,
        registry: DirectoryRegistry,
        metadata_reader: MetadataReader | None = None,
        import_config: ImportConfig | None = None,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._import_config = import_config or ImportConfig()
        self._pipeline = ImportPipeline(
            catalog, metadata_reader or MetadataExtractor(), self._import_config
        )
        self._streams: dict[str, ImportStream] = {}
        self._streams_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, metadata_reader: MetadataReader | None = None) -> "MusicLibrary":
        """Open the library persisted under the configured data directory."""
        config.paths.ensure()
        catalog = Catalog(JsonStore(config.paths.catalog_file))
        registry = DirectoryRegistry(JsonStore(config.paths.registry_file), catalog)
        return cls(catalog, registry, metadata_reader, config.importer)

    @classmethod
    def in_memory(
        cls,
        metadata_reader: MetadataReader | None = None,
        import_config: ImportConfig | None = None,
    ) -> "MusicLibrary":
        """A library that keeps nothing on disk."""
        catalog = Catalog(MemoryStore())
        registry = DirectoryRegistry(MemoryStore(), catalog)
        return cls(catalog, registry, metadata_reader, import_config)

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def registry(self) -> DirectoryRegistry:
        return self._registry

    # Directories

    def list_directories(self) -> list[Directory]:
        return self._registry.list()

    def add_directory(self, path: str | os.PathLike) -> Directory:
        return self._registry.add(path)

    def remove_directory(self, path: Directory | str | os.PathLike) -> int:
        """Unregister a directory and delete all of its tracks."""
        return self._registry.remove(path)

    # Tracks

    def list_tracks(self, directory: Directory | str | os.PathLike) -> list[Track]:
        """Tracks of a registered directory, in the order they were imported."""
        if isinstance(directory, Directory):
            registered = self._registry.get(directory.path)
        else:
            registered = self._registry.get(directory)
        if registered is None:
            raise NotFoundError(f"Directory not registered: {directory}")
        return self._catalog.list_by_directory(registered)

    def delete_track(self, track_id: int) -> None:
        self._catalog.remove(track_id)

    # Imports

    def import_directory(self, path: str | os.PathLike) -> ImportStream:
        """Import a directory, registering it first unless it's already covered.

        A subdirectory of a registered directory is imported into that
        ancestor.
        """
        root = Path(canonical_path(path))
        owner = self._registry.owner_of(root)
        if owner is None:
            owner = self._registry.add(root)
        return self._start(DirectorySource(path=root, owner=owner))

    def import_archive(self, path: str | os.PathLike) -> ImportStream:
        """Import the audio entries of an archive."""
        archive = Path(path).resolve()
        if not archive.is_file():
            raise SourceReadError(path, "archive does not exist")
        return self._start(ArchiveSource(path=archive, owner=self._owner_for_file(archive)))

    def import_dropped_paths(self, paths: list[str | os.PathLike]) -> ImportStream:
        """Import a mix of dropped files, directories, and archives."""
        items: list[tuple[Path, Directory | None]] = []
        for raw in paths:
            path = Path(raw).resolve()
            if os.path.isdir(path):
                owner = self._registry.owner_of(path) or self._registry.add(path)
            elif os.path.isfile(path) and self._importable_file(path):
                owner = self._owner_for_file(path)
            else:
                owner = None
            items.append((path, owner))
        return self._start(DroppedPathsSource(items=items))

    def cancel_all(self) -> None:
        """Cancel every running import, e.g. when the window closes."""
        with self._streams_lock:
            streams = list(self._streams.values())
        for stream in streams:
            stream.cancel()

    def wait_all(self, timeout: float | None = None) -> None:
        with self._streams_lock:
            streams = list(self._streams.values())
        for stream in streams:
            stream.result(timeout)

    def _importable_file(self, path: Path) -> bool:
        return is_audio(path, self._import_config.audio_formats) or is_archive(
            path, self._import_config.archive_formats
        )

    def _owner_for_file(self, path: Path) -> Directory:
        return self._registry.owner_of(path) or self._registry.ensure(path.parent)

    def _start(self, source: ImportSource) -> ImportStream:
        job = ImportJob()
        stream = self._pipeline.start(job, source)
        with self._streams_lock:
            self._streams = {k: s for k, s in self._streams.items() if not s.done}
            self._streams[job.id] = stream
        return stream
