"""Export run models and configuration."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import uuid

from .record import DownloadOutcome, ExportedTable


class ExportStatus(str, Enum):
    """Status of an export run or of one table within it."""
    PENDING = "pending"
    EXPORTING = "exporting"
    BUNDLING = "bundling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExporterState(str, Enum):
    """States of one object-store export run."""
    IDLE = "idle"
    LISTING = "listing"
    DOWNLOADING = "downloading"
    BUNDLING = "bundling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted by exporters and the validator."""
    kind: str
    subject: str
    current: int = 0
    total: int = 0
    message: str = ""


@dataclass
class TableExportResult:
    """Outcome of exporting one table."""
    table: str
    status: ExportStatus = ExportStatus.PENDING
    row_count: int = 0
    pages: int = 0
    error: Optional[str] = None
    data: Optional[ExportedTable] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == ExportStatus.COMPLETED

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "status": self.status.value,
            "row_count": self.row_count,
            "pages": self.pages,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class ExportRun:
    """A complete multi-table export run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ExportStatus = ExportStatus.PENDING
    export_format: str = "csv"
    archive_path: Optional[str] = None
    report_path: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    tables: List[TableExportResult] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(t.row_count for t in self.tables if t.success)

    @property
    def succeeded(self) -> List[TableExportResult]:
        return [t for t in self.tables if t.success]

    @property
    def failed(self) -> List[TableExportResult]:
        return [t for t in self.tables if not t.success]

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "status": self.status.value,
            "export_format": self.export_format,
            "archive_path": self.archive_path,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "tables": [t.to_dict() for t in self.tables],
            "tables_succeeded": len(self.succeeded),
            "tables_failed": len(self.failed),
            "total_rows": self.total_rows,
            "errors": self.errors,
        }


@dataclass
class BucketExportResult:
    """Outcome of exporting one object-storage bucket."""
    bucket: str
    state: ExporterState = ExporterState.IDLE
    expected: int = 0
    succeeded: List[DownloadOutcome] = field(default_factory=list)
    failed: List[DownloadOutcome] = field(default_factory=list)
    listing_errors: List[Dict[str, str]] = field(default_factory=list)
    skipped: int = 0
    archive_path: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_bytes(self) -> int:
        return sum(o.size_bytes or 0 for o in self.succeeded)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def has_errors(self) -> bool:
        return bool(self.failed or self.listing_errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "bucket": self.bucket,
            "state": self.state.value,
            "expected": self.expected,
            "succeeded": len(self.succeeded),
            "failed": [o.to_dict() for o in self.failed],
            "listing_errors": self.listing_errors,
            "skipped": self.skipped,
            "total_bytes": self.total_bytes,
            "archive_path": self.archive_path,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class ExportConfig:
    """Configuration for export and validation runs."""
    base_url: str = ""
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    db_schema: str = "public"

    # Row API
    page_size: int = 1000
    request_timeout: float = 30.0
    transport_retries: int = 2

    # Object storage
    download_batch_size: int = 3
    max_retries: int = 3
    retry_base_delay: float = 0.5
    retry_backoff: str = "linear"  # linear, exponential
    retry_jitter: float = 0.0
    bucket_labels: Dict[str, str] = field(default_factory=lambda: {
        "documents": "Documentos",
        "results": "Resultados",
        "studies": "Estudios",
        "surgeries": "Cirugías",
    })

    # Output
    export_format: str = "csv"  # csv, sql
    output_dir: str = "./exports"
    project_name: str = "CentroVisión"
    report_detail_limit: int = 10

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.download_batch_size < 1:
            raise ValueError("download_batch_size must be at least 1")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.export_format not in ("csv", "sql"):
            raise ValueError(f"Unsupported export format: {self.export_format}")
        if self.retry_backoff not in ("linear", "exponential"):
            raise ValueError(f"Unsupported retry backoff: {self.retry_backoff}")

    @property
    def token(self) -> Optional[str]:
        """Bearer token sent with every request."""
        return self.access_token or self.api_key

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (credentials omitted)."""
        return {
            "base_url": self.base_url,
            "db_schema": self.db_schema,
            "page_size": self.page_size,
            "request_timeout": self.request_timeout,
            "transport_retries": self.transport_retries,
            "download_batch_size": self.download_batch_size,
            "max_retries": self.max_retries,
            "retry_base_delay": self.retry_base_delay,
            "retry_backoff": self.retry_backoff,
            "retry_jitter": self.retry_jitter,
            "bucket_labels": self.bucket_labels,
            "export_format": self.export_format,
            "output_dir": self.output_dir,
            "project_name": self.project_name,
            "report_detail_limit": self.report_detail_limit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        """Create from dictionary representation."""
        defaults = cls()
        return cls(
            base_url=data.get("base_url", ""),
            api_key=data.get("api_key"),
            access_token=data.get("access_token"),
            db_schema=data.get("db_schema", "public"),
            page_size=data.get("page_size", 1000),
            request_timeout=data.get("request_timeout", 30.0),
            transport_retries=data.get("transport_retries", 2),
            download_batch_size=data.get("download_batch_size", 3),
            max_retries=data.get("max_retries", 3),
            retry_base_delay=data.get("retry_base_delay", 0.5),
            retry_backoff=data.get("retry_backoff", "linear"),
            retry_jitter=data.get("retry_jitter", 0.0),
            bucket_labels=data.get("bucket_labels", defaults.bucket_labels),
            export_format=data.get("export_format", "csv"),
            output_dir=data.get("output_dir", "./exports"),
            project_name=data.get("project_name", defaults.project_name),
            report_detail_limit=data.get("report_detail_limit", 10),
        )

    @classmethod
    def from_env(cls, data: Optional[Dict[str, Any]] = None) -> "ExportConfig":
        """Create from a dictionary, filling credentials from the environment."""
        data = dict(data or {})
        if not data.get("base_url"):
            data["base_url"] = os.environ.get("SUPABASE_URL", "")
        if not data.get("api_key"):
            data["api_key"] = os.environ.get("SUPABASE_SERVICE_KEY") or os.environ.get("SUPABASE_ANON_KEY")
        if not data.get("access_token"):
            data["access_token"] = os.environ.get("SUPABASE_ACCESS_TOKEN")
        return cls.from_dict(data)
