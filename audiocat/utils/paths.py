"""Path classification and naming helpers."""

import os
import re
from pathlib import Path, PurePosixPath

from ..models.track import UNKNOWN

ARCHIVE_ORIGIN_SEPARATOR = "!/"


def canonical_path(path: str | os.PathLike) -> str:
    """Absolute path with symlinks resolved, used as the registry key."""
    return os.path.realpath(os.path.abspath(os.fspath(path)))


def archive_suffix(name: str, archive_formats: frozenset[str] | set[str]) -> str | None:
    """Return the archive suffix ``name`` ends with, if any.

    Handles multi-part suffixes such as ``.tar.gz``; the longest match wins.
    """
    lowered = name.lower()
    matches = [s for s in archive_formats if lowered.endswith(s)]
    if not matches:
        return None
    return max(matches, key=len)


def is_archive(path: str | os.PathLike, archive_formats: frozenset[str] | set[str]) -> bool:
    return archive_suffix(os.path.basename(os.fspath(path)), archive_formats) is not None


def is_audio(path: str | os.PathLike, audio_formats: frozenset[str] | set[str]) -> bool:
    return os.path.splitext(os.fspath(path))[1].lower() in audio_formats


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_safe_virtual_path(name: str) -> bool:
    """Reject archive member names that would escape a staging directory."""
    if not name or name.startswith(("/", "\\")):
        return False
    parts = PurePosixPath(name.replace("\\", "/")).parts
    if any(part == ".." for part in parts):
        return False
    # Windows drive letters, e.g. "C:foo"
    return not re.match(r"^[A-Za-z]:", name)


def archive_origin(archive: str | os.PathLike, virtual_path: str) -> str:
    """Display path of an archive member, e.g. ``/music/pack.zip!/a/b.mp3``."""
    return f"{os.fspath(archive)}{ARCHIVE_ORIGIN_SEPARATOR}{virtual_path}"


def title_from_filename(name: str) -> str:
    """Derive a track title from a file name.

    Strips the directory, extension, and a leading track number
    (e.g. "01 Song", "01. Song", "01 - Song") and turns underscores into
    spaces.
    """
    stem = Path(name.replace("\\", "/")).stem
    stem = re.sub(r"^\d{1,3}(\s*[-.]\s*|\s+)(?=\S)", "", stem)
    stem = re.sub(r"_+", " ", stem).strip()
    return stem or UNKNOWN


def clean_tag(value: object) -> str | None:
    """Normalize a tag value; blank values count as missing."""
    if value is None:
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None
