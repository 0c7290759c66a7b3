"""JSON file persistence for catalog state."""

import json
import logging
import threading
from pathlib import Path

from ..errors import StoreError

logger = logging.getLogger(__name__)


class JsonStore:
    """Loads and atomically saves one JSON document."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict:
        """Load the document, or an empty dict if the file doesn't exist yet."""
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"Could not load {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Unexpected document type in {self._path}: {type(data).__name__}")
        return data

    def save(self, data: dict) -> None:
        """Write the document through a temporary sibling file."""
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                json_str = json.dumps(data, indent=2, ensure_ascii=False)
                tmp.write_text(json_str, encoding="utf-8")
                tmp.replace(self._path)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Failed to save {self._path}: {e}")
                raise StoreError(f"Could not save {self._path}: {e}") from e


class MemoryStore:
    """In-memory stand-in for JsonStore, for ephemeral libraries."""

    def __init__(self, data: dict | None = None) -> None:
        self._data = json.loads(json.dumps(data or {}))
        self.saves = 0

    def load(self) -> dict:
        return json.loads(json.dumps(self._data))

    def save(self, data: dict) -> None:
        self._data = json.loads(json.dumps(data))
        self.saves += 1
