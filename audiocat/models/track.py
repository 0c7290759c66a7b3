"""Track data models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

UNKNOWN = "Unknown"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class TrackMetadata:
    """Metadata read from an audio file's tags."""

    title: str | None = None
    artist: str | None = None
    genre: str | None = None
    album: str | None = None
    duration: int | None = None  # seconds


@dataclass(frozen=True)
class Track:
    """A catalogued audio track.

    ``content_hash`` is unique within a catalog. ``id`` is ``None`` until the
    catalog assigns one on ``add``.
    """

    title: str
    artist: str
    genre: str
    content_hash: str
    source_directory: str
    origin_path: str
    id: int | None = None
    album: str | None = None
    duration: int | None = None  # seconds
    size_bytes: int = 0
    modified_time: float | None = None  # epoch seconds
    added_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        """Build a track from a dictionary produced by ``to_dict``."""
        return cls(
            id=data.get("id"),
            title=data.get("title") or UNKNOWN,
            artist=data.get("artist") or UNKNOWN,
            genre=data.get("genre") or UNKNOWN,
            content_hash=data["content_hash"],
            source_directory=data["source_directory"],
            origin_path=data.get("origin_path", ""),
            album=data.get("album"),
            duration=data.get("duration"),
            size_bytes=int(data.get("size_bytes") or 0),
            modified_time=data.get("modified_time"),
            added_at=data.get("added_at") or utc_now_iso(),
        )
