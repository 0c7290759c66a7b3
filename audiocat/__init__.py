"""Audio catalog with content-hash deduplication."""

from .config import Config, ImportConfig, PathConfig, configure_logging
from .errors import (
    AlreadyAddedError,
    ArchiveError,
    AudiocatError,
    DuplicateError,
    MetadataExtractionError,
    NotFoundError,
    SourceReadError,
    StoreError,
)
from .library import MusicLibrary
from .models import Directory, ImportJob, ImportResult, ProgressEvent, Track

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ImportConfig",
    "PathConfig",
    "configure_logging",
    "AlreadyAddedError",
    "ArchiveError",
    "AudiocatError",
    "DuplicateError",
    "MetadataExtractionError",
    "NotFoundError",
    "SourceReadError",
    "StoreError",
    "MusicLibrary",
    "Directory",
    "ImportJob",
    "ImportResult",
    "ProgressEvent",
    "Track",
]
