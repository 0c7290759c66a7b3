#!/usr/bin/env python3
"""
Audio catalog command line

Manages the registered directories and imports audio from directories,
archives, and arbitrary dropped paths into the deduplicated catalog.
"""

import argparse
import logging
from pathlib import Path

from tqdm import tqdm

from .config import Config, configure_logging
from .errors import AudiocatError
from .library import MusicLibrary
from .models.job import ImportResult
from .processors.importer import ImportStream

logger = logging.getLogger(__name__)


def follow_import(stream: ImportStream) -> ImportResult:
    """Render an import's progress and return its result.

    Ctrl-C cancels the job; tracks imported so far are kept.
    """
    bar = tqdm(total=stream.job.total_estimate or None, desc="Importing", unit="file")
    try:
        try:
            for event in stream:
                if event.total_estimate != bar.total:
                    bar.total = event.total_estimate
                bar.update(event.completed - bar.n)
                bar.set_postfix_str(Path(event.current_path).name[:40], refresh=False)
        except KeyboardInterrupt:
            print("\nCancelling import, waiting for in-flight files...")
            stream.cancel()
        return stream.result()
    finally:
        bar.close()


def print_result(result: ImportResult) -> None:
    if result.aborted:
        print("\nImport aborted!")
    elif result.cancelled:
        print("\nImport cancelled.")
    else:
        print("\nComplete!")
    print(f"  Imported: {result.imported} tracks")
    print(f"  Skipped (already present): {result.duplicates_skipped} tracks")
    if result.failed or result.errors:
        print(f"  Failed: {result.failed}")
        for error in result.errors[:20]:
            print(f"    {error.path}: {error.reason}")
        if len(result.errors) > 20:
            print(f"    ... and {len(result.errors) - 20} more")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Catalog audio tracks from directories and archives"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of parallel import workers (default: based on CPU and disk)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load settings from this .env file",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("dirs", help="List registered directories")
    for name, help_text in (
        ("add-dir", "Register a directory without importing it"),
        ("remove-dir", "Unregister a directory and delete its tracks"),
        ("import-dir", "Import all audio files under a directory"),
        ("import-archive", "Import the audio entries of a zip or tar archive"),
        ("tracks", "List the tracks of a registered directory"),
    ):
        sub.add_parser(name, help=help_text).add_argument("path", type=Path)
    drop = sub.add_parser("drop", help="Import any mix of files, directories, and archives")
    drop.add_argument("paths", type=Path, nargs="+")
    delete = sub.add_parser("delete", help="Delete a track by id")
    delete.add_argument("track_id", type=int)
    return parser.parse_args(argv)


def run_command(library: MusicLibrary, args: argparse.Namespace) -> int:
    """Execute one subcommand; returns the process exit code."""
    command = args.command

    if command == "dirs":
        for directory in library.list_directories():
            count = len(library.catalog.list_by_directory(directory))
            print(f"{directory.path}  ({count} tracks)")
        return 0

    if command == "add-dir":
        directory = library.add_directory(args.path)
        print(f"Added {directory.path}")
        return 0

    if command == "remove-dir":
        removed = library.remove_directory(args.path)
        print(f"Removed {args.path} and {removed} tracks")
        return 0

    if command == "tracks":
        for track in library.list_tracks(args.path):
            print(f"{track.id:>6}  {track.artist} - {track.title}  [{track.genre}]")
        return 0

    if command == "delete":
        library.delete_track(args.track_id)
        print(f"Deleted track {args.track_id}")
        return 0

    if command == "import-dir":
        stream = library.import_directory(args.path)
    elif command == "import-archive":
        stream = library.import_archive(args.path)
    elif command == "drop":
        stream = library.import_dropped_paths(args.paths)
    else:
        raise ValueError(f"Unknown command: {command}")

    result = follow_import(stream)
    print_result(result)
    return 1 if result.aborted else 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    configure_logging(verbose=args.verbose)

    try:
        config = Config.from_environment(args.env_file)
        if args.workers is not None:
            config.importer.max_workers = args.workers
        config.validate()
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    try:
        library = MusicLibrary.from_config(config)
        return run_command(library, args)
    except AudiocatError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
