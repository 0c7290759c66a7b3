"""Import job, candidate, and progress models."""

import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class FileCandidate:
    """A file discovered during scanning that passed the extension filter.

    ``error`` is set when the file was seen but could not be inspected; the
    importer reports such candidates as failed instead of processing them.
    """

    path: Path
    size_bytes: int = 0
    modified_time: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of one import job, emitted once per finished candidate."""

    job_id: str
    completed: int
    total_estimate: int
    current_path: str

    @property
    def fraction(self) -> float:
        """Approximate completion in [0, 1]; the estimate may still grow."""
        if self.total_estimate <= 0:
            return 0.0
        return min(1.0, self.completed / self.total_estimate)


@dataclass(frozen=True)
class ImportFailure:
    """A candidate (or whole source) that could not be imported."""

    path: str
    reason: str


@dataclass
class ImportResult:
    """Terminal outcome of an import job."""

    job_id: str
    imported: int = 0
    duplicates_skipped: int = 0
    failed: int = 0
    errors: list[ImportFailure] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False

    @property
    def processed(self) -> int:
        return self.imported + self.duplicates_skipped + self.failed

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return {
            "job_id": self.job_id,
            "imported": self.imported,
            "duplicates_skipped": self.duplicates_skipped,
            "failed": self.failed,
            "errors": [{"path": e.path, "reason": e.reason} for e in self.errors],
            "cancelled": self.cancelled,
            "aborted": self.aborted,
        }


class ImportJob:
    """State of one user-initiated import run.

    Counters are only written by the pipeline coordinating the job. The
    cancellation flag may be set from any thread.
    """

    def __init__(self, job_id: str | None = None) -> None:
        self.id = job_id or uuid.uuid4().hex
        self.total_estimate = 0
        self.completed = 0
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def revise_estimate(self, extra: int) -> None:
        """Grow the total estimate, e.g. when a nested archive is opened."""
        if extra > 0:
            self.total_estimate += extra

    def __repr__(self) -> str:
        return (
            f"ImportJob(id={self.id!r}, completed={self.completed}, "
            f"total_estimate={self.total_estimate}, cancelled={self.cancelled})"
        )
