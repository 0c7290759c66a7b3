"""Directory registry models."""

from dataclasses import dataclass, field
from pathlib import Path

from .track import utc_now_iso


@dataclass(frozen=True)
class Directory:
    """A root directory the user has added to the library."""

    path: str  # canonical absolute path
    added_at: str = field(default_factory=utc_now_iso, compare=False)

    @property
    def name(self) -> str:
        return Path(self.path).name or self.path

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return {"path": self.path, "added_at": self.added_at}

    @classmethod
    def from_dict(cls, data: dict) -> "Directory":
        return cls(path=data["path"], added_at=data.get("added_at") or utc_now_iso())
