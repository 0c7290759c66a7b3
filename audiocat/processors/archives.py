"""Archive readers that expose archive members as import candidates."""

import logging
import shutil
import tarfile
import zipfile
import zlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Protocol

from ..errors import ArchiveError
from ..utils.paths import archive_suffix, is_hidden, is_safe_virtual_path

logger = logging.getLogger(__name__)

ZIP_ENCRYPTED_FLAG = 0x1

# Errors raised by the stdlib codecs while decompressing a damaged member.
# NotImplementedError covers unsupported methods such as Deflate64 and
# RuntimeError covers codecs missing from the interpreter build.
_READ_ERRORS = (
    zipfile.BadZipFile,
    tarfile.TarError,
    zlib.error,
    EOFError,
    ValueError,
    NotImplementedError,
    RuntimeError,
)


@dataclass
class ArchiveEntry:
    """A regular file inside an archive."""

    virtual_path: str
    size_bytes: int
    modified_time: float | None
    _opener: Callable[[], BinaryIO]

    @property
    def name(self) -> str:
        return self.virtual_path.rsplit("/", 1)[-1]

    def read(self) -> bytes:
        """Return the member's bytes; raises ArchiveError if it is damaged."""
        try:
            with self._opener() as f:
                return f.read()
        except _READ_ERRORS as e:
            raise ArchiveError(f"Corrupt archive entry {self.virtual_path}: {e}") from e

    def extract_to(self, dest: Path, chunk_size: int = 1024 * 1024) -> Path:
        """Stream the member into ``dest``; raises ArchiveError if it is damaged."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._opener() as src, open(dest, "wb") as out:
                shutil.copyfileobj(src, out, chunk_size)
        except _READ_ERRORS as e:
            dest.unlink(missing_ok=True)
            raise ArchiveError(f"Corrupt archive entry {self.virtual_path}: {e}") from e
        return dest


class ArchiveListing(Protocol):
    """An opened archive. Use as a context manager."""

    path: Path

    def entries(self, accept: Callable[[str], bool]) -> Iterator[ArchiveEntry]: ...

    def count(self, accept: Callable[[str], bool]) -> int: ...

    def close(self) -> None: ...

    def __enter__(self) -> "ArchiveListing": ...

    def __exit__(self, *exc_info: object) -> None: ...


class ArchiveReader(Protocol):
    """Opens archives of one kind."""

    def open(self, path: Path) -> ArchiveListing:
        """Open an archive or raise ArchiveError if it can't be trusted."""
        ...


def _member_wanted(name: str, accept: Callable[[str], bool]) -> bool:
    if not is_safe_virtual_path(name):
        logger.warning(f"Skipping unsafe archive member {name!r}")
        return False
    base = name.rstrip("/").rsplit("/", 1)[-1]
    if not base or is_hidden(base):
        return False
    # macOS resource forks
    if name.startswith("__MACOSX/"):
        return False
    return accept(base)


class _ZipListing:
    def __init__(self, path: Path, archive: zipfile.ZipFile) -> None:
        self.path = path
        self._zip = archive

    def _members(self, accept: Callable[[str], bool]) -> Iterator[zipfile.ZipInfo]:
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            if _member_wanted(info.filename, accept):
                yield info

    def entries(self, accept: Callable[[str], bool]) -> Iterator[ArchiveEntry]:
        for info in self._members(accept):
            try:
                mtime = datetime(*info.date_time).timestamp()
            except (ValueError, OverflowError):
                mtime = None
            yield ArchiveEntry(
                virtual_path=info.filename,
                size_bytes=info.file_size,
                modified_time=mtime,
                _opener=lambda info=info: self._zip.open(info),
            )

    def count(self, accept: Callable[[str], bool]) -> int:
        return sum(1 for _ in self._members(accept))

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "_ZipListing":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ZipArchiveReader:
    """Reads .zip archives with the standard library."""

    def open(self, path: Path) -> _ZipListing:
        try:
            archive = zipfile.ZipFile(path)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            raise ArchiveError(f"Cannot open zip archive {path}: {e}") from e

        encrypted = [i.filename for i in archive.infolist() if i.flag_bits & ZIP_ENCRYPTED_FLAG]
        if encrypted:
            archive.close()
            raise ArchiveError(
                f"Zip archive {path} is password protected ({len(encrypted)} encrypted entries)"
            )
        return _ZipListing(Path(path), archive)


class _TarListing:
    def __init__(self, path: Path, archive: tarfile.TarFile) -> None:
        self.path = path
        self._tar = archive
        self._members_cache: list[tarfile.TarInfo] | None = None

    def _all_members(self) -> list[tarfile.TarInfo]:
        if self._members_cache is None:
            try:
                self._members_cache = self._tar.getmembers()
            except _READ_ERRORS as e:
                raise ArchiveError(f"Cannot read tar archive {self.path}: {e}") from e
        return self._members_cache

    def _members(self, accept: Callable[[str], bool]) -> Iterator[tarfile.TarInfo]:
        for member in self._all_members():
            if not member.isfile():
                continue
            if _member_wanted(member.name, accept):
                yield member

    def _open_member(self, member: tarfile.TarInfo) -> BinaryIO:
        f = self._tar.extractfile(member)
        if f is None:
            raise ArchiveError(f"Tar member {member.name} has no data")
        return f

    def entries(self, accept: Callable[[str], bool]) -> Iterator[ArchiveEntry]:
        for member in self._members(accept):
            yield ArchiveEntry(
                virtual_path=member.name,
                size_bytes=member.size,
                modified_time=float(member.mtime) if member.mtime else None,
                _opener=lambda member=member: self._open_member(member),
            )

    def count(self, accept: Callable[[str], bool]) -> int:
        return sum(1 for _ in self._members(accept))

    def close(self) -> None:
        self._tar.close()

    def __enter__(self) -> "_TarListing":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class TarArchiveReader:
    """Reads plain and compressed tar archives with the standard library."""

    def open(self, path: Path) -> _TarListing:
        try:
            archive = tarfile.open(path, mode="r:*")
        except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
            raise ArchiveError(f"Cannot open tar archive {path}: {e}") from e
        listing = _TarListing(Path(path), archive)
        try:
            # Reads every header so truncated archives fail now, not mid-job
            listing._all_members()
        except ArchiveError:
            archive.close()
            raise
        return listing


def reader_for(path: Path, archive_formats: frozenset[str] | set[str]) -> ArchiveReader:
    """Pick the reader for an archive based on its file name."""
    suffix = archive_suffix(Path(path).name, archive_formats)
    if suffix is None:
        raise ArchiveError(f"Unsupported archive type: {path}")
    if suffix == ".zip":
        return ZipArchiveReader()
    return TarArchiveReader()
