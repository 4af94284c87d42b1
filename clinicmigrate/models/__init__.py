"""Data models for the export and validation engine."""

from .schema import (
    EXTERNAL_IDENTITY,
    TableDefinition,
    ForeignKeyEdge,
)
from .migration import (
    ExportConfig,
    ExportRun,
    ExportStatus,
    ExporterState,
    ProgressEvent,
    TableExportResult,
    BucketExportResult,
)
from .record import (
    ExportedRow,
    ExportedTable,
    DownloadOutcome,
    FkViolation,
    ExternalRef,
    ValidationResult,
)

__all__ = [
    "EXTERNAL_IDENTITY",
    "TableDefinition",
    "ForeignKeyEdge",
    "ExportConfig",
    "ExportRun",
    "ExportStatus",
    "ExporterState",
    "ProgressEvent",
    "TableExportResult",
    "BucketExportResult",
    "ExportedRow",
    "ExportedTable",
    "DownloadOutcome",
    "FkViolation",
    "ExternalRef",
    "ValidationResult",
]
