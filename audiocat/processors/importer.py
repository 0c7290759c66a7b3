"""Import pipeline: scan, stage, hash, deduplicate, and register tracks."""

import enum
import logging
import os
import queue
import tempfile
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

from ..config import ImportConfig, default_worker_count
from ..errors import ArchiveError, AudiocatError, DuplicateError, SourceReadError
from ..extractors.metadata import MetadataReader, read_metadata
from ..models.directory import Directory
from ..models.job import ImportFailure, ImportJob, ImportResult, ProgressEvent
from ..models.track import Track
from ..services.catalog import Catalog
from ..utils.hashing import hash_file
from ..utils.paths import archive_origin, is_archive, is_audio
from .archives import reader_for
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)

EventSink = Callable[[ProgressEvent], None]


@dataclass
class DirectorySource:
    """Import every audio file under a directory."""

    path: Path
    owner: Directory


@dataclass
class ArchiveSource:
    """Import every audio entry of an archive file."""

    path: Path
    owner: Directory


@dataclass
class DroppedPathsSource:
    """Import a mixed set of files, directories, and archives.

    Each path carries the directory its tracks will belong to; paths that
    don't exist may carry None.
    """

    items: list[tuple[Path, Directory | None]] = field(default_factory=list)


ImportSource = DirectorySource | ArchiveSource | DroppedPathsSource


class Outcome(enum.Enum):
    IMPORTED = "imported"
    DUPLICATE = "duplicate"
    NOT_STARTED = "not_started"


@dataclass
class WorkItem:
    """A readable local file waiting to be hashed and registered."""

    path: Path
    origin_path: str
    owner: Directory
    display_name: str
    size_bytes: int = 0
    modified_time: float | None = None
    staged: bool = False


class _JobContext:
    """Per-run state shared by the resolver and the coordinator."""

    def __init__(self, job: ImportJob, sink: EventSink, staging_dir: Path) -> None:
        self.job = job
        self.sink = sink
        self.staging_dir = staging_dir
        self.result = ImportResult(job_id=job.id)
        self._staged = 0

    def staging_path(self, name: str) -> Path:
        # One subdirectory per entry keeps same-named members apart
        self._staged += 1
        return self.staging_dir / f"{self._staged:06d}" / name


class ImportPipeline:
    """Orchestrates imports into a catalog.

    Hashing and tag reading run on a bounded thread pool; resolving sources,
    staging archive members, and emitting progress happen on the calling
    thread, so progress counters only ever move forward.
    """

    def __init__(
        self,
        catalog: Catalog,
        metadata_reader: MetadataReader,
        config: ImportConfig | None = None,
    ) -> None:
        self._catalog = catalog
        self._reader = metadata_reader
        self._config = config or ImportConfig()
        self._config.validate()
        archive_formats = (
            self._config.archive_formats if self._config.expand_nested_archives else frozenset()
        )
        self._scanner = DirectoryScanner(self._config.audio_formats, archive_formats)

    def start(self, job: ImportJob, source: ImportSource) -> "ImportStream":
        """Run an import in the background and return its event stream."""
        return ImportStream(job, lambda sink: self.run(job, source, sink)).start()

    def run(self, job: ImportJob, source: ImportSource, sink: EventSink | None = None) -> ImportResult:
        """Run an import to completion on the calling thread."""
        sink = sink or (lambda event: None)
        staging_root = self._config.staging_dir
        if staging_root is not None:
            staging_root.mkdir(parents=True, exist_ok=True)

        logger.info(f"Import job {job.id} started: {self._describe(source)}")
        with tempfile.TemporaryDirectory(
            prefix=f"audiocat-{job.id[:8]}-", dir=staging_root
        ) as staging_dir:
            ctx = _JobContext(job, sink, Path(staging_dir))
            workers = self._worker_count(source)
            items = self._resolve(source, ctx)
            try:
                with self._catalog.batch(), ThreadPoolExecutor(
                    max_workers=workers,
                    thread_name_prefix=f"import-{job.id[:8]}",
                ) as executor:
                    self._drain(items, executor, ctx, limit=workers * 2)
            except (SourceReadError, ArchiveError) as e:
                path = getattr(e, "path", None) or str(getattr(source, "path", ""))
                logger.error(f"Import job {job.id} aborted: {e}")
                ctx.result.aborted = True
                ctx.result.errors.append(ImportFailure(path=path, reason=str(e)))
            finally:
                items.close()

        result = ctx.result
        result.cancelled = job.cancelled
        logger.info(
            f"Import job {job.id} finished: {result.imported} imported, "
            f"{result.duplicates_skipped} duplicates, {result.failed} failed"
            + (" (cancelled)" if result.cancelled else "")
            + (" (aborted)" if result.aborted else "")
        )
        return result

    # Coordination

    def _drain(
        self,
        items: Iterator[WorkItem | ImportFailure],
        executor: ThreadPoolExecutor,
        ctx: _JobContext,
        limit: int,
    ) -> None:
        """Feed work items to the pool, keeping a bounded window in flight.

        Errors that abort the job propagate only after in-flight work has
        been accounted for.
        """
        pending: dict[Future, WorkItem] = {}
        exhausted = False
        abort: Exception | None = None

        while True:
            while not exhausted and not ctx.job.cancelled and len(pending) < limit:
                try:
                    item = next(items)
                except StopIteration:
                    exhausted = True
                    break
                except (SourceReadError, ArchiveError) as e:
                    abort = e
                    exhausted = True
                    break
                if isinstance(item, ImportFailure):
                    self._record_failure(ctx, item)
                    continue
                pending[executor.submit(self._process, item, ctx.job)] = item

            if not pending:
                break

            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                self._record_outcome(ctx, pending.pop(future), future)

        if abort is not None:
            raise abort

    def _record_outcome(self, ctx: _JobContext, item: WorkItem, future: Future) -> None:
        try:
            outcome = future.result()
        except (OSError, AudiocatError) as e:
            self._record_failure(ctx, ImportFailure(item.origin_path, str(e)))
            return
        except Exception as e:
            logger.exception(f"Unexpected error processing {item.origin_path}")
            self._record_failure(ctx, ImportFailure(item.origin_path, f"{type(e).__name__}: {e}"))
            return
        finally:
            if item.staged:
                item.path.unlink(missing_ok=True)

        if outcome is Outcome.NOT_STARTED:
            return
        if outcome is Outcome.IMPORTED:
            ctx.result.imported += 1
        else:
            ctx.result.duplicates_skipped += 1
            logger.debug(f"Duplicate skipped: {item.origin_path}")
        self._advance(ctx, item.origin_path)

    def _record_failure(self, ctx: _JobContext, failure: ImportFailure) -> None:
        logger.warning(f"Failed to import {failure.path}: {failure.reason}")
        ctx.result.failed += 1
        ctx.result.errors.append(failure)
        self._advance(ctx, failure.path)

    def _advance(self, ctx: _JobContext, current_path: str) -> None:
        job = ctx.job
        job.completed += 1
        if job.total_estimate < job.completed:
            job.total_estimate = job.completed
        ctx.sink(
            ProgressEvent(
                job_id=job.id,
                completed=job.completed,
                total_estimate=job.total_estimate,
                current_path=current_path,
            )
        )

    # Worker

    def _process(self, item: WorkItem, job: ImportJob) -> Outcome:
        """Hash one file and register it unless its content is known."""
        if job.cancelled:
            return Outcome.NOT_STARTED

        if self._config.trust_known_paths and item.modified_time is not None:
            known = self._catalog.find_by_origin(item.origin_path)
            if (
                known is not None
                and known.size_bytes == item.size_bytes
                and known.modified_time == item.modified_time
            ):
                return Outcome.DUPLICATE

        content_hash = hash_file(item.path, self._config.chunk_size)
        if self._catalog.find_by_hash(content_hash) is not None:
            return Outcome.DUPLICATE

        metadata = read_metadata(self._reader, item.path, item.display_name)
        track = Track(
            title=metadata.title,
            artist=metadata.artist,
            genre=metadata.genre,
            album=metadata.album,
            duration=metadata.duration,
            content_hash=content_hash,
            source_directory=item.owner.path,
            origin_path=item.origin_path,
            size_bytes=item.size_bytes,
            modified_time=item.modified_time,
        )
        try:
            self._catalog.add(track)
        except DuplicateError:
            # Another worker registered the same content first
            return Outcome.DUPLICATE
        return Outcome.IMPORTED

    # Source resolution

    def _resolve(self, source: ImportSource, ctx: _JobContext) -> Iterator[WorkItem | ImportFailure]:
        if isinstance(source, DirectorySource):
            return self._resolve_directory(source.path, source.owner, ctx, top_level=True)
        if isinstance(source, ArchiveSource):
            return self._resolve_archive(
                source.path, str(source.path), source.owner, ctx, depth=1, top_level=True
            )
        if isinstance(source, DroppedPathsSource):
            return self._resolve_dropped(source.items, ctx)
        raise TypeError(f"Unsupported import source: {type(source).__name__}")

    def _resolve_directory(
        self, path: Path, owner: Directory, ctx: _JobContext, top_level: bool
    ) -> Iterator[WorkItem | ImportFailure]:
        try:
            candidates = self._scanner.scan(path)
        except SourceReadError as e:
            if top_level:
                raise
            yield ImportFailure(str(path), e.reason)
            return

        ctx.job.revise_estimate(self._count_audio(path))
        for candidate in candidates:
            origin = str(candidate.path)
            if candidate.error is not None:
                yield ImportFailure(origin, candidate.error)
            elif is_archive(candidate.path, self._config.archive_formats):
                yield from self._resolve_archive(
                    candidate.path, origin, owner, ctx, depth=1, top_level=False
                )
            else:
                yield WorkItem(
                    path=candidate.path,
                    origin_path=origin,
                    owner=owner,
                    display_name=candidate.path.name,
                    size_bytes=candidate.size_bytes,
                    modified_time=candidate.modified_time,
                )

    def _resolve_archive(
        self,
        path: Path,
        origin: str,
        owner: Directory,
        ctx: _JobContext,
        depth: int,
        top_level: bool,
    ) -> Iterator[WorkItem | ImportFailure]:
        """Stage an archive's audio members, expanding nested archives."""
        expand_nested = (
            self._config.expand_nested_archives and depth < self._config.max_archive_depth
        )

        def accept(name: str) -> bool:
            if is_audio(name, self._config.audio_formats):
                return True
            return expand_nested and is_archive(name, self._config.archive_formats)

        try:
            listing = reader_for(path, self._config.archive_formats).open(path)
        except ArchiveError as e:
            if top_level:
                raise
            yield ImportFailure(origin, str(e))
            return

        with listing:
            ctx.job.revise_estimate(
                listing.count(lambda name: is_audio(name, self._config.audio_formats))
            )
            for entry in listing.entries(accept):
                entry_origin = archive_origin(origin, entry.virtual_path)
                staged = ctx.staging_path(entry.name)
                try:
                    entry.extract_to(staged, self._config.chunk_size)
                except (ArchiveError, OSError) as e:
                    yield ImportFailure(entry_origin, str(e))
                    continue

                if is_archive(entry.name, self._config.archive_formats):
                    try:
                        yield from self._resolve_archive(
                            staged, entry_origin, owner, ctx, depth + 1, top_level=False
                        )
                    finally:
                        staged.unlink(missing_ok=True)
                    continue

                yield WorkItem(
                    path=staged,
                    origin_path=entry_origin,
                    owner=owner,
                    display_name=entry.name,
                    size_bytes=entry.size_bytes,
                    modified_time=entry.modified_time,
                    staged=True,
                )

    def _resolve_dropped(
        self, items: list[tuple[Path, Directory | None]], ctx: _JobContext
    ) -> Iterator[WorkItem | ImportFailure]:
        """Classify dropped paths as directory, archive, audio file, or ignored.

        Non-audio files are filtered out here, before any hashing, and don't
        count towards the result.
        """
        ctx.job.revise_estimate(
            sum(1 for p, _ in items if os.path.isfile(p) and is_audio(p, self._config.audio_formats))
        )
        for path, owner in items:
            if not os.path.lexists(path):
                yield ImportFailure(str(path), "no such file or directory")
                continue

            is_dir = os.path.isdir(path)
            archive = not is_dir and is_archive(path, self._config.archive_formats)
            audio = not is_dir and not archive and is_audio(path, self._config.audio_formats)
            if not (is_dir or archive or audio):
                logger.debug(f"Ignoring dropped non-audio file {path}")
                continue
            if owner is None:
                yield ImportFailure(str(path), "no owning directory")
                continue

            if is_dir:
                yield from self._resolve_directory(path, owner, ctx, top_level=False)
            elif archive:
                yield from self._resolve_archive(
                    path, str(path), owner, ctx, depth=1, top_level=False
                )
            else:
                try:
                    st = path.stat()
                except OSError as e:
                    yield ImportFailure(str(path), e.strerror or str(e))
                    continue
                yield WorkItem(
                    path=path,
                    origin_path=str(path),
                    owner=owner,
                    display_name=path.name,
                    size_bytes=st.st_size,
                    modified_time=st.st_mtime,
                )

    def _worker_count(self, source: ImportSource) -> int:
        if self._config.max_workers is not None:
            return self._config.max_workers
        if isinstance(source, DroppedPathsSource):
            path = source.items[0][0] if source.items else None
        else:
            path = source.path
        workers = default_worker_count(path)
        logger.debug(f"Using {workers} import workers")
        return workers

    def _count_audio(self, path: Path) -> int:
        counter = DirectoryScanner(self._config.audio_formats)
        return counter.count(path)

    @staticmethod
    def _describe(source: ImportSource) -> str:
        if isinstance(source, DroppedPathsSource):
            return f"{len(source.items)} dropped paths"
        kind = "directory" if isinstance(source, DirectorySource) else "archive"
        return f"{kind} {source.path}"


_END = object()


class ImportStream:
    """Progress events of a running import, plus its final result.

    Iterate to receive ProgressEvents as they happen; iteration ends when
    the job finishes. ``result()`` waits for and returns the ImportResult.
    Events are buffered without bound, so a slow reader never stalls the
    import.
    """

    def __init__(self, job: ImportJob, target: Callable[[EventSink], ImportResult]) -> None:
        self.job = job
        self._target = target
        self._events: queue.Queue = queue.Queue()
        self._done = threading.Event()
        self._drained = False
        self._result: ImportResult | None = None
        self._error: BaseException | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"import-{job.id[:8]}", daemon=True
        )

    def start(self) -> "ImportStream":
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            self._result = self._target(self._events.put)
        except Exception as e:
            logger.exception(f"Import job {self.job.id} crashed")
            self._error = e
        finally:
            self._done.set()
            self._events.put(_END)

    def __iter__(self) -> Iterator[ProgressEvent]:
        if self._drained:
            return
        while True:
            event = self._events.get()
            if event is _END:
                self._drained = True
                return
            yield event

    def cancel(self) -> None:
        """Stop taking new candidates; in-flight work finishes."""
        self.job.cancel()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def result(self, timeout: float | None = None) -> ImportResult:
        """Wait for the import to finish and return its result."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"Import job {self.job.id} still running")
        if self._error is not None:
            raise self._error
        return self._result
