"""Loaders: write export archives."""

from .base import BaseArchiveWriter, format_bytes
from .archive_builder import ArchiveBuilder, BucketArchiveBuilder

__all__ = [
    "BaseArchiveWriter",
    "format_bytes",
    "ArchiveBuilder",
    "BucketArchiveBuilder",
]
