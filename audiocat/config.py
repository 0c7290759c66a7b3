"""Configuration management for the audio catalog."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .utils.storage import StorageType, detect_storage_type


# Supported audio formats
AUDIO_FORMATS = {
    ".mp3",
    ".wav",
    ".flac",
    ".ogg",
    ".m4a",
    ".aac",
    ".opus",
    ".wma",
    ".aiff",
    ".aif",
}

# Archive formats that can be expanded into candidates.
# Multi-part suffixes are matched against the full lowercase file name.
ARCHIVE_FORMATS = {".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz"}

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB
MAX_AUTO_WORKERS = 32
ROTATIONAL_WORKERS = 2


def default_worker_count(path: Path | None = None) -> int:
    """Pick a worker count suited to the storage holding ``path``.

    Hashing is CPU bound and tag reading is I/O bound, so solid-state and
    unknown media get a small multiple of the cores; spinning disks thrash
    under parallel reads and get a fixed low count instead.
    """
    if path is not None and detect_storage_type(path) is StorageType.HDD:
        return ROTATIONAL_WORKERS
    return min(MAX_AUTO_WORKERS, (os.cpu_count() or 1) * 2)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class PathConfig:
    """File path configuration."""

    data_dir: Path
    staging_dir: Path | None = None

    @property
    def catalog_file(self) -> Path:
        return self.data_dir / "catalog.json"

    @property
    def registry_file(self) -> Path:
        return self.data_dir / "directories.json"

    def ensure(self) -> None:
        """Create the data (and staging) directories if missing."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.staging_dir is not None:
            self.staging_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class ImportConfig:
    """Tuning for the import pipeline."""

    # None picks a count per import from the storage holding the source
    max_workers: int | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    expand_nested_archives: bool = True
    max_archive_depth: int = 2
    trust_known_paths: bool = True
    audio_formats: frozenset[str] = frozenset(AUDIO_FORMATS)
    archive_formats: frozenset[str] = frozenset(ARCHIVE_FORMATS)
    staging_dir: Path | None = None

    def validate(self) -> None:
        """Validate the pipeline settings."""
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_archive_depth < 1:
            raise ValueError(
                f"max_archive_depth must be positive, got {self.max_archive_depth}"
            )


@dataclass
class Config:
    """Main configuration container."""

    paths: PathConfig
    importer: ImportConfig = field(default_factory=ImportConfig)

    @classmethod
    def from_environment(cls, env_path: Path | None = None) -> "Config":
        """Load configuration from environment variables."""
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        data_dir = Path(
            os.getenv("AUDIOCAT_DATA_DIR", str(Path.home() / ".audiocat"))
        ).expanduser()
        staging_env = os.getenv("AUDIOCAT_STAGING_DIR")
        staging_dir = Path(staging_env).expanduser() if staging_env else None

        workers_env = os.getenv("AUDIOCAT_WORKERS")
        try:
            max_workers = int(workers_env) if workers_env else None
            chunk_size = int(os.getenv("AUDIOCAT_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE)))
            max_depth = int(os.getenv("AUDIOCAT_MAX_ARCHIVE_DEPTH", "2"))
        except ValueError as e:
            raise ValueError(f"Invalid numeric setting in environment: {e}") from e

        return cls(
            paths=PathConfig(data_dir=data_dir, staging_dir=staging_dir),
            importer=ImportConfig(
                max_workers=max_workers,
                chunk_size=chunk_size,
                expand_nested_archives=_env_flag("AUDIOCAT_EXPAND_NESTED", True),
                max_archive_depth=max_depth,
                trust_known_paths=_env_flag("AUDIOCAT_TRUST_KNOWN_PATHS", True),
                staging_dir=staging_dir,
            ),
        )

    def validate(self) -> None:
        """Validate the configuration."""
        self.importer.validate()
        if self.paths.data_dir.exists() and not self.paths.data_dir.is_dir():
            raise ValueError(f"Data directory is not a directory: {self.paths.data_dir}")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
