"""Tests for the import pipeline."""

import sys
import threading
from pathlib import Path

import pytest

# Add parent dir to path so audiocat is importable as a package
sys.path.insert(0, str(Path(__file__).parent.parent))

from audiocat.models.directory import Directory
from audiocat.models.job import ImportJob
from audiocat.models.track import TrackMetadata
from audiocat.processors.importer import (
    ArchiveSource,
    DirectorySource,
    DroppedPathsSource,
    ImportPipeline,
)
from audiocat.utils.hashing import hash_bytes
from conftest import FakeReader, corrupt_member, make_tar, make_zip, set_member_method, write_files


@pytest.fixture
def music_dir(tmp_path):
    """Directory with 3 audio files, two of them identical, plus noise."""
    return write_files(
        tmp_path / "music",
        {
            "a.mp3": b"same content",
            "sub/b.mp3": b"same content",
            "c.flac": b"distinct content",
            "cover.jpg": b"image",
        },
    )


@pytest.fixture
def pipeline(catalog, reader, import_config):
    return ImportPipeline(catalog, reader, import_config)


def owner_of(path: Path) -> Directory:
    return Directory(path=str(path))


def run_import(pipeline, source):
    job = ImportJob()
    events = []
    result = pipeline.run(job, source, events.append)
    return job, events, result


class TestDirectoryImport:
    """Tests for importing a directory."""

    def test_duplicate_content_skipped(self, pipeline, catalog, music_dir):
        """3 files, 2 identical: 2 imported, 1 duplicate."""
        _, _, result = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        assert result.imported == 2
        assert result.duplicates_skipped == 1
        assert result.failed == 0
        assert result.errors == []
        assert len(catalog) == 2

    def test_second_import_is_idempotent(self, pipeline, catalog, music_dir):
        """Importing the same directory twice never doubles the catalog."""
        source = DirectorySource(music_dir, owner_of(music_dir))
        _, _, first = run_import(pipeline, source)
        _, _, second = run_import(pipeline, source)

        assert second.imported == 0
        assert second.duplicates_skipped == first.imported + first.duplicates_skipped
        assert len(catalog) == 2

    def test_idempotent_without_path_trust(self, catalog, reader, import_config, music_dir):
        """Re-hashing every file gives the same outcome as trusting known paths."""
        import_config.trust_known_paths = False
        pipeline = ImportPipeline(catalog, reader, import_config)
        source = DirectorySource(music_dir, owner_of(music_dir))
        run_import(pipeline, source)
        _, _, second = run_import(pipeline, source)
        assert (second.imported, second.duplicates_skipped) == (0, 3)

    def test_changed_file_is_reimported(self, pipeline, catalog, music_dir):
        """New content at a known path is a new track."""
        source = DirectorySource(music_dir, owner_of(music_dir))
        run_import(pipeline, source)
        (music_dir / "c.flac").write_bytes(b"re-encoded content, longer than before")
        _, _, result = run_import(pipeline, source)
        assert result.imported == 1
        assert len(catalog) == 3

    def test_automatic_worker_count(self, catalog, reader, import_config, music_dir):
        import_config.max_workers = None
        pipeline = ImportPipeline(catalog, reader, import_config)
        _, _, result = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        assert (result.imported, result.duplicates_skipped) == (2, 1)

    def test_hash_uniqueness(self, pipeline, catalog, music_dir):
        run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        hashes = [t.content_hash for t in catalog.all()]
        assert len(hashes) == len(set(hashes))

    def test_track_fields(self, pipeline, catalog, music_dir):
        run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        track = catalog.find_by_hash(hash_bytes(b"distinct content"))
        assert track.source_directory == str(music_dir)
        assert track.origin_path == str(music_dir / "c.flac")
        assert track.size_bytes == len(b"distinct content")
        assert track.modified_time is not None

    def test_metadata_used_when_available(self, catalog, import_config, music_dir):
        reader = FakeReader(
            {"c.flac": TrackMetadata(title="Real Title", artist="Real Artist", genre="Jazz")}
        )
        pipeline = ImportPipeline(catalog, reader, import_config)
        run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        track = catalog.find_by_hash(hash_bytes(b"distinct content"))
        assert (track.title, track.artist, track.genre) == ("Real Title", "Real Artist", "Jazz")

    def test_metadata_failure_falls_back(self, pipeline, catalog, tmp_path):
        """Unreadable tags never fail the candidate."""
        root = write_files(tmp_path / "m", {"01 - Night Drive.mp3": b"x"})
        _, _, result = run_import(pipeline, DirectorySource(root, owner_of(root)))
        assert result.imported == 1
        track = catalog.all()[0]
        assert (track.title, track.artist, track.genre) == ("Night Drive", "Unknown", "Unknown")

    def test_blank_tags_fall_back(self, catalog, import_config, tmp_path):
        root = write_files(tmp_path / "m", {"song.mp3": b"x"})
        reader = FakeReader({"song.mp3": TrackMetadata(title="  ", artist="", genre=None)})
        pipeline = ImportPipeline(catalog, reader, import_config)
        run_import(pipeline, DirectorySource(root, owner_of(root)))
        track = catalog.all()[0]
        assert (track.title, track.artist, track.genre) == ("song", "Unknown", "Unknown")

    def test_reader_crash_falls_back(self, catalog, import_config, tmp_path):
        """Even unexpected reader exceptions only cost the tags."""
        root = write_files(tmp_path / "m", {"song.mp3": b"x"})

        def explode(path):
            raise RuntimeError("parser bug")

        pipeline = ImportPipeline(catalog, FakeReader(on_extract=explode), import_config)
        _, _, result = run_import(pipeline, DirectorySource(root, owner_of(root)))
        assert result.imported == 1
        assert catalog.all()[0].title == "song"

    def test_missing_root_aborts(self, pipeline, tmp_path):
        missing = tmp_path / "missing"
        _, events, result = run_import(pipeline, DirectorySource(missing, owner_of(missing)))
        assert result.aborted
        assert result.imported == 0
        assert len(result.errors) == 1
        assert result.errors[0].path == str(missing)
        assert events == []

    def test_unreadable_file_is_skipped(self, pipeline, catalog, tmp_path):
        """A file that fails mid-walk is reported; the job continues."""
        root = write_files(tmp_path / "m", {"ok.mp3": b"ok"})
        try:
            (root / "gone.mp3").symlink_to(tmp_path / "nowhere.mp3")
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        _, _, result = run_import(pipeline, DirectorySource(root, owner_of(root)))
        assert result.imported == 1
        assert result.failed == 1
        assert result.errors[0].path == str(root / "gone.mp3")
        assert not result.aborted


class TestProgress:
    """Tests for progress events."""

    def test_one_event_per_candidate(self, pipeline, music_dir):
        job, events, result = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        assert [e.completed for e in events] == [1, 2, 3]
        assert len(events) == result.processed
        assert all(e.job_id == job.id for e in events)

    def test_estimate_from_listing(self, pipeline, music_dir):
        job, events, _ = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        assert events[0].total_estimate == 3
        assert job.total_estimate == 3
        assert events[-1].fraction == 1.0

    def test_estimate_grows_with_nested_archive(self, pipeline, tmp_path):
        root = write_files(tmp_path / "m", {"a.mp3": b"a"})
        make_zip(root / "pack.zip", {"b.mp3": b"b", "c.mp3": b"c"})
        job, events, result = run_import(pipeline, DirectorySource(root, owner_of(root)))

        assert result.imported == 3
        estimates = [e.total_estimate for e in events]
        assert estimates == sorted(estimates)
        assert job.total_estimate == 3
        assert all(e.completed <= e.total_estimate for e in events)

    def test_current_path_reported(self, pipeline, music_dir):
        _, events, _ = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))
        assert {Path(e.current_path).name for e in events} == {"a.mp3", "b.mp3", "c.flac"}


class TestArchiveImport:
    """Tests for importing archives."""

    def test_corrupt_entry_reported(self, pipeline, catalog, tmp_path):
        """1 corrupt and 2 valid entries: 2 imported, one error."""
        archive = make_zip(
            tmp_path / "pack.zip",
            {
                "one.mp3": b"valid one",
                "broken.mp3": b"CORRUPT-PAYLOAD-" * 8,
                "two.ogg": b"valid two",
            },
        )
        corrupt_member(archive, b"CORRUPT-PAYLOAD-")

        _, _, result = run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert result.imported == 2
        assert result.failed == 1
        assert len(result.errors) == 1
        assert result.errors[0].path.endswith("pack.zip!/broken.mp3")
        assert not result.aborted

    def test_unsupported_member_method_reported(self, pipeline, catalog, tmp_path):
        """A Deflate64 member is one failed candidate; the job carries on."""
        archive = make_zip(
            tmp_path / "pack.zip",
            {"one.mp3": b"valid one", "two.mp3": b"deflate64 member", "three.mp3": b"valid three"},
        )
        set_member_method(archive, "two.mp3", 9)

        _, _, result = run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert (result.imported, result.failed) == (2, 1)
        assert result.errors[0].path == f"{archive}!/two.mp3"
        assert not result.aborted
        assert len(catalog) == 2

    def test_unreadable_archive_aborts(self, pipeline, catalog, tmp_path):
        archive = tmp_path / "pack.zip"
        archive.write_bytes(b"garbage")
        _, _, result = run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert result.aborted
        assert result.imported == 0
        assert len(result.errors) == 1
        assert len(catalog) == 0

    def test_archive_tracks_origin(self, pipeline, catalog, tmp_path):
        archive = make_zip(tmp_path / "pack.zip", {"disc/one.mp3": b"one", "cover.png": b"png"})
        _, _, result = run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert result.imported == 1
        track = catalog.all()[0]
        assert track.origin_path == f"{archive}!/disc/one.mp3"
        assert track.source_directory == str(tmp_path)
        assert track.title == "one"

    def test_tar_archive(self, pipeline, catalog, tmp_path):
        archive = make_tar(tmp_path / "pack.tgz", {"a.mp3": b"a", "b.wav": b"b"})
        _, _, result = run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert result.imported == 2

    def test_nested_archive_expanded(self, pipeline, catalog, tmp_path):
        inner = make_zip(tmp_path / "build" / "inner.zip", {"deep.mp3": b"deep"})
        outer = make_zip(
            tmp_path / "outer.zip", {"top.mp3": b"top", "inner.zip": inner.read_bytes()}
        )
        _, _, result = run_import(pipeline, ArchiveSource(outer, owner_of(tmp_path)))
        assert result.imported == 2
        origins = sorted(t.origin_path for t in catalog.all())
        assert origins == [f"{outer}!/inner.zip!/deep.mp3", f"{outer}!/top.mp3"]

    def test_nesting_limit(self, catalog, reader, import_config, tmp_path):
        import_config.max_archive_depth = 1
        pipeline = ImportPipeline(catalog, reader, import_config)
        inner = make_zip(tmp_path / "build" / "inner.zip", {"deep.mp3": b"deep"})
        outer = make_zip(
            tmp_path / "outer.zip", {"top.mp3": b"top", "inner.zip": inner.read_bytes()}
        )
        _, _, result = run_import(pipeline, ArchiveSource(outer, owner_of(tmp_path)))
        assert result.imported == 1

    def test_broken_nested_archive_is_one_failure(self, pipeline, catalog, tmp_path):
        """Only the top-level archive aborts; a broken inner one is a candidate failure."""
        outer = make_zip(
            tmp_path / "outer.zip", {"top.mp3": b"top", "inner.zip": b"not a zip"}
        )
        _, _, result = run_import(pipeline, ArchiveSource(outer, owner_of(tmp_path)))
        assert result.imported == 1
        assert result.failed == 1
        assert not result.aborted

    def test_staging_cleaned_up(self, pipeline, import_config, tmp_path):
        archive = make_zip(tmp_path / "pack.zip", {"a.mp3": b"a", "b.mp3": b"b"})
        run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert list(import_config.staging_dir.iterdir()) == []

    def test_staging_cleaned_up_after_abort(self, pipeline, import_config, tmp_path):
        archive = tmp_path / "pack.zip"
        archive.write_bytes(b"garbage")
        run_import(pipeline, ArchiveSource(archive, owner_of(tmp_path)))
        assert list(import_config.staging_dir.iterdir()) == []


class TestDroppedPaths:
    """Tests for importing dropped paths."""

    def test_single_non_audio_file(self, pipeline, reader, catalog, tmp_path):
        """A dropped non-audio file is filtered out before hashing."""
        doc = tmp_path / "readme.txt"
        doc.write_text("hello")
        _, events, result = run_import(pipeline, DroppedPathsSource([(doc, None)]))
        assert (result.imported, result.duplicates_skipped, result.failed) == (0, 0, 0)
        assert events == []
        assert reader.calls == []
        assert len(catalog) == 0

    def test_mixed_drop(self, pipeline, catalog, tmp_path):
        root = write_files(tmp_path / "dir", {"a.mp3": b"a", "b.mp3": b"b"})
        single = write_files(tmp_path, {"loose/c.mp3": b"c"}) / "loose" / "c.mp3"
        archive = make_zip(tmp_path / "loose" / "pack.zip", {"d.mp3": b"d"})
        owner = owner_of(tmp_path / "loose")
        source = DroppedPathsSource(
            [(root, owner_of(root)), (single, owner), (archive, owner)]
        )
        _, _, result = run_import(pipeline, source)
        assert result.imported == 4
        assert len(catalog.list_by_directory(str(root))) == 2
        assert len(catalog.list_by_directory(owner)) == 2

    def test_missing_path_reported(self, pipeline, tmp_path):
        missing = tmp_path / "gone.mp3"
        _, _, result = run_import(pipeline, DroppedPathsSource([(missing, None)]))
        assert result.failed == 1
        assert result.errors[0].path == str(missing)

    def test_bad_dropped_archive_does_not_abort(self, pipeline, tmp_path):
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"garbage")
        good = write_files(tmp_path, {"good.mp3": b"good"}) / "good.mp3"
        owner = owner_of(tmp_path)
        _, _, result = run_import(pipeline, DroppedPathsSource([(bad, owner), (good, owner)]))
        assert result.imported == 1
        assert result.failed == 1
        assert not result.aborted


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_keeps_registered_tracks(self, catalog, import_config, tmp_path):
        """Tracks added before cancellation stay; nothing is half-written."""
        root = write_files(tmp_path / "m", {f"{i:02d}.mp3": f"track {i}".encode() for i in range(10)})
        import_config.max_workers = 1
        job = ImportJob()
        reader = FakeReader(on_extract=lambda path: job.cancel())
        pipeline = ImportPipeline(catalog, reader, import_config)

        events = []
        result = pipeline.run(job, DirectorySource(root, owner_of(root)), events.append)

        assert result.cancelled
        assert result.imported == 1
        assert len(catalog) == result.imported
        assert len(events) == result.processed
        for track in catalog.all():
            assert track.id is not None
            assert len(track.content_hash) == 64
            assert track.source_directory == str(root)

    def test_cancel_before_start(self, pipeline, catalog, music_dir):
        job = ImportJob()
        job.cancel()
        result = pipeline.run(job, DirectorySource(music_dir, owner_of(music_dir)))
        assert result.cancelled
        assert result.processed == 0
        assert len(catalog) == 0

    def test_cancel_cleans_staging(self, catalog, import_config, tmp_path):
        archive = make_zip(tmp_path / "pack.zip", {f"{i}.mp3": bytes([i]) for i in range(6)})
        import_config.max_workers = 1
        job = ImportJob()
        pipeline = ImportPipeline(catalog, FakeReader(on_extract=lambda p: job.cancel()), import_config)
        result = pipeline.run(job, ArchiveSource(archive, owner_of(tmp_path)))
        assert result.cancelled
        assert list(import_config.staging_dir.iterdir()) == []


class TestImportStream:
    """Tests for the background event stream."""

    def test_events_then_result(self, pipeline, music_dir):
        job = ImportJob()
        stream = pipeline.start(job, DirectorySource(music_dir, owner_of(music_dir)))
        events = list(stream)
        result = stream.result(timeout=10)

        assert [e.completed for e in events] == [1, 2, 3]
        assert result.imported == 2
        assert stream.done
        # A drained stream stays empty
        assert list(stream) == []

    def test_cancel_through_stream(self, catalog, import_config, tmp_path):
        root = write_files(tmp_path / "m", {f"{i:02d}.mp3": bytes([i]) for i in range(20)})
        import_config.max_workers = 1
        gate = threading.Event()
        reader = FakeReader(on_extract=lambda path: gate.wait(5))
        pipeline = ImportPipeline(catalog, reader, import_config)

        stream = pipeline.start(ImportJob(), DirectorySource(root, owner_of(root)))
        stream.cancel()
        gate.set()
        result = stream.result(timeout=10)

        assert result.cancelled
        assert result.imported < 20
        assert len(catalog) == result.imported

    def test_result_timeout(self, catalog, import_config, tmp_path):
        root = write_files(tmp_path / "m", {"a.mp3": b"a"})
        gate = threading.Event()
        pipeline = ImportPipeline(catalog, FakeReader(on_extract=lambda p: gate.wait(5)), import_config)
        stream = pipeline.start(ImportJob(), DirectorySource(root, owner_of(root)))
        try:
            with pytest.raises(TimeoutError):
                stream.result(timeout=0.05)
        finally:
            gate.set()
        assert stream.result(timeout=10).imported == 1


class TestConcurrentImports:
    """Tests for imports racing on the same catalog."""

    def test_identical_content_from_two_pipelines(self, catalog, import_config, tmp_path):
        """Two jobs importing the same content at once register each hash once."""
        contents = {f"{i:02d}.mp3": f"shared track {i}".encode() for i in range(12)}
        first = write_files(tmp_path / "first", contents)
        second = write_files(tmp_path / "second", contents)
        gate = threading.Barrier(2, timeout=5)

        def wait_for_both(path):
            # Line both jobs up on their first tag read
            if path.name == "00.mp3":
                try:
                    gate.wait()
                except threading.BrokenBarrierError:
                    pass

        reader = FakeReader(on_extract=wait_for_both)
        streams = [
            ImportPipeline(catalog, reader, import_config).start(
                ImportJob(), DirectorySource(root, owner_of(root))
            )
            for root in (first, second)
        ]
        results = [s.result(timeout=30) for s in streams]

        assert sum(r.imported for r in results) == len(contents)
        assert sum(r.duplicates_skipped for r in results) == len(contents)
        assert all(r.failed == 0 for r in results)
        assert len(catalog) == len(contents)
        hashes = [t.content_hash for t in catalog.all()]
        assert len(hashes) == len(set(hashes))

    def test_rejected_owner_is_a_failed_candidate(self, catalog, import_config, music_dir):
        """Tracks refused by the catalog are reported, not raised."""
        catalog.bind_owner_check(lambda key: False)
        pipeline = ImportPipeline(catalog, FakeReader(), import_config)
        _, events, result = run_import(pipeline, DirectorySource(music_dir, owner_of(music_dir)))

        assert result.imported == 0
        assert result.failed == 3
        assert result.duplicates_skipped == 0
        assert all("not registered" in e.reason for e in result.errors)
        assert len(events) == result.processed
        assert len(catalog) == 0
