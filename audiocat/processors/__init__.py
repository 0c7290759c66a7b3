"""Processor modules for scanning, archive reading, and importing."""

from .archives import ArchiveEntry, TarArchiveReader, ZipArchiveReader, reader_for
from .importer import (
    ArchiveSource,
    DirectorySource,
    DroppedPathsSource,
    ImportPipeline,
    ImportStream,
)
from .scanner import DirectoryScanner

__all__ = [
    "ArchiveEntry",
    "TarArchiveReader",
    "ZipArchiveReader",
    "reader_for",
    "ArchiveSource",
    "DirectorySource",
    "DroppedPathsSource",
    "ImportPipeline",
    "ImportStream",
    "DirectoryScanner",
]
