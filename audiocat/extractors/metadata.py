"""Audio metadata extraction using TinyTag."""

import logging
from pathlib import Path
from typing import Protocol

from tinytag import TinyTag

from ..errors import MetadataExtractionError
from ..models.track import UNKNOWN, TrackMetadata
from ..utils.paths import clean_tag, title_from_filename

logger = logging.getLogger(__name__)


class MetadataReader(Protocol):
    """Anything that can read tags from an audio file on disk."""

    def extract(self, file_path: Path) -> TrackMetadata:
        """Return the file's tags or raise MetadataExtractionError."""
        ...


class MetadataExtractor:
    """Extracts metadata from audio files using TinyTag."""

    def extract(self, file_path: Path) -> TrackMetadata:
        """Extract metadata from an audio file using TinyTag.

        Fields the file doesn't carry are left as None; no fallbacks are
        applied here.
        """
        try:
            tag = TinyTag.get(str(file_path))
        except Exception as e:
            raise MetadataExtractionError(f"Could not read tags from {file_path}: {e}") from e

        return TrackMetadata(
            title=clean_tag(tag.title),
            artist=clean_tag(tag.artist) or clean_tag(tag.albumartist),
            genre=clean_tag(tag.genre),
            album=clean_tag(tag.album),
            duration=int(tag.duration) if tag.duration else None,
        )


def read_metadata(reader: MetadataReader, file_path: Path, display_name: str) -> TrackMetadata:
    """Read tags and fill in fallbacks so every text field is set.

    Tag failures are logged and recovered: the title comes from
    ``display_name`` and artist/genre become "Unknown".
    """
    try:
        metadata = reader.extract(file_path)
    except MetadataExtractionError as e:
        logger.debug(f"Falling back to filename metadata for {display_name}: {e}")
        metadata = TrackMetadata()
    except Exception as e:
        logger.warning(f"Metadata reader failed on {display_name}: {e}")
        metadata = TrackMetadata()

    return TrackMetadata(
        title=clean_tag(metadata.title) or title_from_filename(display_name),
        artist=clean_tag(metadata.artist) or UNKNOWN,
        genre=clean_tag(metadata.genre) or UNKNOWN,
        album=clean_tag(metadata.album),
        duration=metadata.duration,
    )
