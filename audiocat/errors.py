"""Exception types raised by the catalog and the import pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.track import Track


class AudiocatError(Exception):
    """Base class for all catalog errors."""


class SourceReadError(AudiocatError):
    """A path or file could not be read."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = str(path)
        self.reason = reason


class ArchiveError(AudiocatError):
    """An archive is corrupt, password protected, or otherwise untrustworthy."""


class DuplicateError(AudiocatError):
    """A track with the same content hash is already in the catalog.

    Not a fault: the importer turns it into a duplicate skip.
    """

    def __init__(self, existing: Track) -> None:
        super().__init__(f"Content {existing.content_hash} already catalogued as track {existing.id}")
        self.existing = existing


class NotFoundError(AudiocatError):
    """A track or directory does not exist."""


class AlreadyAddedError(AudiocatError):
    """A directory is already registered."""


class MetadataExtractionError(AudiocatError):
    """Tags could not be read from an audio file."""


class StoreError(AudiocatError):
    """The persisted state could not be read or written."""
