"""Directory scanning for audio candidates."""

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from ..errors import SourceReadError
from ..models.job import FileCandidate
from ..utils.paths import archive_suffix, canonical_path, is_hidden

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Walks a directory tree and yields files matching an extension allowlist.

    Symbolic links are followed, but every real directory is visited at most
    once, so link cycles terminate. Each call to ``scan`` walks the tree
    again.
    """

    def __init__(
        self,
        audio_formats: frozenset[str] | set[str],
        archive_formats: frozenset[str] | set[str] = frozenset(),
    ) -> None:
        self._audio_formats = frozenset(audio_formats)
        self._archive_formats = frozenset(archive_formats)

    def accepts(self, name: str) -> bool:
        """Check whether a file name passes the allowlist."""
        if is_hidden(name):
            return False
        if os.path.splitext(name)[1].lower() in self._audio_formats:
            return True
        return archive_suffix(name, self._archive_formats) is not None

    def scan(self, root: Path) -> Iterator[FileCandidate]:
        """Yield candidates under ``root``.

        Raises SourceReadError before yielding anything if the root itself
        can't be listed. Files that vanish or can't be stat'ed mid-walk are
        yielded with ``error`` set.
        """
        root = Path(root)
        self._check_root(root)
        return self._walk(root)

    def count(self, root: Path) -> int:
        """Cheap best-effort count of candidates under ``root``."""
        total = 0
        visited: set[str] = set()
        for _dirpath, filenames in self._iter_dirs(Path(root), visited):
            total += sum(1 for name in filenames if self.accepts(name))
        return total

    def _check_root(self, root: Path) -> None:
        if not root.exists():
            raise SourceReadError(root, "directory does not exist")
        if not root.is_dir():
            raise SourceReadError(root, "not a directory")
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise SourceReadError(root, e.strerror or str(e)) from e

    def _walk(self, root: Path) -> Iterator[FileCandidate]:
        visited: set[str] = set()
        for dirpath, filenames in self._iter_dirs(root, visited):
            for name in filenames:
                if not self.accepts(name):
                    continue
                path = dirpath / name
                try:
                    st = path.stat()
                except OSError as e:
                    logger.warning(f"Could not stat {path}: {e}")
                    yield FileCandidate(path=path, error=e.strerror or str(e))
                    continue
                yield FileCandidate(
                    path=path,
                    size_bytes=st.st_size,
                    modified_time=st.st_mtime,
                )

    def _iter_dirs(
        self, root: Path, visited: set[str]
    ) -> Iterator[tuple[Path, list[str]]]:
        """Yield (directory, sorted file names) depth first, once per real directory."""
        stack = [root]
        while stack:
            current = stack.pop()
            real = canonical_path(current)
            if real in visited:
                logger.debug(f"Skipping already visited directory {current}")
                continue
            visited.add(real)

            files: list[str] = []
            subdirs: list[Path] = []
            try:
                with os.scandir(current) as it:
                    for entry in it:
                        try:
                            if entry.is_dir(follow_symlinks=True):
                                if not is_hidden(entry.name):
                                    subdirs.append(Path(entry.path))
                            else:
                                files.append(entry.name)
                        except OSError as e:
                            # Broken links and permission errors still surface as files
                            logger.debug(f"Could not inspect {entry.path}: {e}")
                            files.append(entry.name)
            except OSError as e:
                logger.warning(f"Could not list {current}: {e}")
                continue

            files.sort(key=str.lower)
            yield current, files

            # Reverse so the stack pops subdirectories in name order
            subdirs.sort(key=lambda p: p.name.lower(), reverse=True)
            stack.extend(subdirs)
