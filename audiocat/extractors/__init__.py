"""Extractor modules for audio metadata."""

from .metadata import MetadataExtractor, MetadataReader, read_metadata

__all__ = ["MetadataExtractor", "MetadataReader", "read_metadata"]
