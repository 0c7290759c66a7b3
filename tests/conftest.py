"""Shared fixtures for the audiocat tests."""

import io
import sys
import tarfile
import zipfile
from pathlib import Path

import pytest

# Add parent dir to path so audiocat is importable as a package
sys.path.insert(0, str(Path(__file__).parent.parent))

from audiocat.config import ImportConfig
from audiocat.errors import MetadataExtractionError
from audiocat.models.track import TrackMetadata
from audiocat.services.catalog import Catalog
from audiocat.services.store import MemoryStore


class FakeReader:
    """Metadata reader returning canned tags keyed by file name.

    Files without an entry raise MetadataExtractionError, like an untagged
    file would.
    """

    def __init__(self, tags: dict[str, TrackMetadata] | None = None, on_extract=None) -> None:
        self.tags = tags or {}
        self.on_extract = on_extract
        self.calls: list[str] = []

    def extract(self, file_path: Path) -> TrackMetadata:
        self.calls.append(file_path.name)
        if self.on_extract is not None:
            self.on_extract(file_path)
        if file_path.name not in self.tags:
            raise MetadataExtractionError(f"no tags in {file_path.name}")
        return self.tags[file_path.name]


def write_files(root: Path, files: dict[str, bytes]) -> Path:
    """Create files (relative path -> content) under root."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def make_zip(path: Path, members: dict[str, bytes], compression=zipfile.ZIP_STORED) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression) as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def make_tar(path: Path, members: dict[str, bytes], mode: str = "w:gz") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tf:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mtime = 1_700_000_000
            tf.addfile(info, io.BytesIO(content))
    return path


def corrupt_member(zip_path: Path, payload: bytes) -> None:
    """Overwrite the start of a stored member's data so its CRC check fails."""
    data = bytearray(zip_path.read_bytes())
    idx = data.find(payload)
    assert idx >= 0, "payload not found; was the member stored uncompressed?"
    data[idx:idx + 4] = b"\xff\xfe\xfd\xfc"
    zip_path.write_bytes(bytes(data))


def mark_encrypted(zip_path: Path) -> None:
    """Set the encryption flag on the first central directory record."""
    data = bytearray(zip_path.read_bytes())
    idx = data.find(b"PK\x01\x02")
    assert idx >= 0
    data[idx + 8] |= 0x01
    zip_path.write_bytes(bytes(data))


def set_member_method(zip_path: Path, name: str, method: int) -> None:
    """Rewrite a member's compression method in its local and central headers."""
    data = bytearray(zip_path.read_bytes())
    encoded = name.encode()
    # (signature, offset of the method field, offset of the file name)
    for signature, method_at, name_at in ((b"PK\x03\x04", 8, 30), (b"PK\x01\x02", 10, 46)):
        idx = data.find(signature)
        while idx >= 0:
            if data[idx + name_at:idx + name_at + len(encoded)] == encoded:
                data[idx + method_at:idx + method_at + 2] = method.to_bytes(2, "little")
            idx = data.find(signature, idx + 4)
    zip_path.write_bytes(bytes(data))


@pytest.fixture
def reader():
    return FakeReader()


@pytest.fixture
def catalog():
    return Catalog(MemoryStore())


@pytest.fixture
def import_config(tmp_path):
    return ImportConfig(max_workers=2, staging_dir=tmp_path / "staging")
