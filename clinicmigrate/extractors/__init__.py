"""Extractors: read tables and storage objects from the backend."""

from .base import BaseExtractor
from .api_client import RestTableClient, StorageClient
from .table_exporter import TableExporter
from .storage_exporter import ObjectStoreExporter
from .archive_reader import ArchiveReader

__all__ = [
    "BaseExtractor",
    "RestTableClient",
    "StorageClient",
    "TableExporter",
    "ObjectStoreExporter",
    "ArchiveReader",
]
