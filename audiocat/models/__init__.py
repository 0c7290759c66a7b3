"""Data models for tracks, directories, and import jobs."""

from .track import UNKNOWN, Track, TrackMetadata
from .directory import Directory
from .job import FileCandidate, ImportFailure, ImportJob, ImportResult, ProgressEvent

__all__ = [
    "UNKNOWN",
    "Track",
    "TrackMetadata",
    "Directory",
    "FileCandidate",
    "ImportFailure",
    "ImportJob",
    "ImportResult",
    "ProgressEvent",
]
