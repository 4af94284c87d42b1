"""Export orchestrator - coordinates table exports, bucket exports and validation."""

import json
import logging
import re
import unicodedata
from datetime import datetime
from pathlib import Path
from threading import Event
from typing import Any, Callable, Dict, Optional, Tuple

from .exceptions import AuthenticationError, BucketListingError, ExportCancelled, MigrationToolError
from .extractors.api_client import RestTableClient, StorageClient
from .extractors.archive_reader import ArchiveReader
from .extractors.storage_exporter import ObjectStoreExporter
from .extractors.table_exporter import TableExporter
from .loaders.archive_builder import ArchiveBuilder
from .loaders.workbook import WorkbookBuilder
from .models.migration import (
    BucketExportResult,
    ExportConfig,
    ExportRun,
    ExportStatus,
    ProgressEvent,
    TableExportResult,
)
from .services.report import ReportGenerator
from .services.retry import RetryPolicy
from .services.schema_registry import SchemaRegistry
from .services.serializers import render
from .services.validator import ReferentialValidator

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    """``CentroVisión`` -> ``centrovision``."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "_", ascii_name.lower()).strip("_") or "export"


class ExportOrchestrator:
    """
    Orchestrates export and validation runs.

    Handles:
    - Multi-table export in import order, one table at a time, into a zip
      archive or a single XLSX workbook
    - Per-table isolation (a failed table does not stop the run)
    - Abort on authentication failure, operator cancellation
    - Bucket export, row counts, single-table export
    - Offline validation of an export archive
    - JSON run reports under ``output_dir/logs``
    """

    def __init__(
        self,
        config: ExportConfig,
        registry: Optional[SchemaRegistry] = None,
        client: Any = None,
        storage_client: Any = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Export configuration
            registry: Schema registry (defaults to the clinical schema)
            client: Row API client (defaults to a RestTableClient)
            storage_client: Storage client (defaults to a StorageClient)
            on_progress: Optional progress callback
        """
        self.config = config
        self.registry = registry or SchemaRegistry.default()
        self.client = client or RestTableClient.from_config(config)
        self.storage_client = storage_client or StorageClient.from_config(config)
        self.on_progress = on_progress
        self.cancel_event = Event()

        self.table_exporter = TableExporter(self.client, self.registry, page_size=config.page_size)

        # Runtime state
        self.run: Optional[ExportRun] = None

        self._setup_directories()

    def _setup_directories(self):
        """Create output directories."""
        self.output_dir = Path(self.config.output_dir)
        self.logs_dir = self.output_dir / "logs"

        for dir in [self.output_dir, self.logs_dir]:
            dir.mkdir(parents=True, exist_ok=True)

    def cancel(self) -> None:
        """Stop issuing requests; the current run ends as cancelled."""
        logger.warning("Cancellation requested")
        self.cancel_event.set()

    def _emit(self, kind: str, subject: str, current: int = 0, total: int = 0, message: str = "") -> None:
        if self.on_progress:
            self.on_progress(ProgressEvent(kind, subject, current, total, message))

    def _timestamp(self) -> str:
        return datetime.utcnow().strftime("%Y%m%d_%H%M%S")

    # -------------------------------------------------------------------------
    # Table export
    # -------------------------------------------------------------------------

    def run_export(self, archive_path: Optional[str] = None) -> ExportRun:
        """
        Export every registered table into one archive.

        Args:
            archive_path: Where to write the zip (defaults to output_dir)

        Returns:
            ExportRun with per-table results
        """
        builder = ArchiveBuilder(
            self.registry,
            export_format=self.config.export_format,
            project_name=self.config.project_name,
            schema=self.config.db_schema,
        )

        try:
            self._export_tables(self.config.export_format, builder.add_result)
        finally:
            self._bundle(builder, archive_path)
            self.run.completed_at = datetime.utcnow()
            self._save_report("export_report", self.run.to_dict())

        self._log_summary()
        return self.run

    def export_workbook(self, workbook_path: Optional[str] = None) -> ExportRun:
        """
        Export every registered table into one XLSX workbook, one sheet per table.

        Args:
            workbook_path: Where to write the workbook (defaults to output_dir)

        Returns:
            ExportRun with per-table results
        """
        builder = WorkbookBuilder(self.registry, project_name=self.config.project_name)

        try:
            self._export_tables("xlsx", builder.add_result)
        finally:
            path = workbook_path or str(
                self.output_dir / f"{slugify(self.config.project_name)}_backup_{self._timestamp()}.xlsx"
            )
            self._write_output(lambda: builder.build(path, exported_at=self.run.started_at), path)
            self.run.completed_at = datetime.utcnow()
            self._save_report("workbook_report", self.run.to_dict())

        self._log_summary()
        return self.run

    def _export_tables(self, export_format: str, on_result: Callable[[TableExportResult], None]) -> ExportRun:
        """
        Export every registered table in import order.

        A failed table is recorded and the next one proceeds; an
        authentication failure or a cancellation ends the loop.
        """
        self.run = ExportRun(export_format=export_format)
        self.run.started_at = datetime.utcnow()
        self.run.status = ExportStatus.EXPORTING
        tables = self.registry.tables

        logger.info(f"=== EXPORTING {len(tables)} TABLES ({export_format.upper()}) ===")

        try:
            for i, table in enumerate(tables, start=1):
                if self.cancel_event.is_set():
                    raise ExportCancelled(table.name)

                self._emit("export", table.name, i - 1, len(tables), f"Exportando {table.label}...")
                result = self._export_table(table.name)
                self.run.tables.append(result)
                on_result(result)

                if result.success:
                    logger.info(f"[{table.file_prefix}] {table.name}: {result.row_count} rows")
                else:
                    logger.warning(f"[{table.file_prefix}] {table.name} failed: {result.error}")
                    self.run.errors.append({
                        "table": table.name,
                        "error": result.error,
                        "timestamp": datetime.utcnow().isoformat(),
                    })

            self.run.status = ExportStatus.COMPLETED
            self._emit("export", "", len(tables), len(tables), "Exportación completada")

        except ExportCancelled as e:
            self.run.status = ExportStatus.CANCELLED
            logger.warning(f"Export cancelled at {e.subject}")
            self.run.errors.append({
                "table": e.subject,
                "error": str(e),
                "timestamp": datetime.utcnow().isoformat(),
            })

        except AuthenticationError as e:
            self.run.status = ExportStatus.FAILED
            logger.error(f"Export aborted: {e}")
            self.run.errors.append({
                "error": str(e),
                "code": e.code,
                "timestamp": datetime.utcnow().isoformat(),
            })

        return self.run

    def _log_summary(self) -> None:
        logger.info(
            f"=== EXPORT {self.run.status.value.upper()}: {len(self.run.succeeded)} tables ok, "
            f"{len(self.run.failed)} failed, {self.run.total_rows} rows ==="
        )

    def _export_table(self, name: str) -> TableExportResult:
        """Export one table; AuthenticationError and ExportCancelled propagate."""
        try:
            return self.table_exporter.export_result(name, self.cancel_event, self.on_progress)
        except ExportCancelled:
            raise
        except AuthenticationError:
            raise
        except MigrationToolError as e:
            return TableExportResult(table=name, status=ExportStatus.FAILED, error=str(e))

    def _bundle(self, builder: ArchiveBuilder, archive_path: Optional[str]) -> None:
        path = archive_path or str(
            self.output_dir / f"{slugify(self.config.project_name)}_data_{self._timestamp()}.zip"
        )
        self._write_output(lambda: builder.build(path, exported_at=self.run.started_at), path)

    def _write_output(self, write: Callable[[], Any], path: str) -> None:
        """Write the run's output file; a write failure marks the run failed."""
        try:
            write()
            self.run.archive_path = path
            logger.info(f"Wrote {path}")
        except OSError as e:
            logger.error(f"Could not write {path}: {e}")
            self.run.status = ExportStatus.FAILED
            self.run.errors.append({"error": f"Output not written: {e}"})

    def export_single_table(self, name: str, export_format: Optional[str] = None) -> Tuple[TableExportResult, Optional[str]]:
        """
        Export one table to a standalone file.

        Returns:
            (result, file path); the path is None when the table failed or
            has no rows
        """
        export_format = export_format or self.config.export_format
        definition = self.registry.get_table(name)
        result = self._export_table(definition.name)

        if not result.success or result.data is None or result.data.is_empty:
            if result.success:
                logger.info(f"{name} has no rows; no file written")
            return result, None

        path = self.output_dir / f"{definition.name}_export_{self._timestamp()}.{export_format}"
        content = render(result.data, export_format, schema=self.config.db_schema, exported_at=result.started_at)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        logger.info(f"Wrote {result.row_count} rows of {name} to {path}")
        return result, str(path)

    def collect_counts(self) -> Dict[str, Optional[int]]:
        """
        Row count of every registered table.

        A table whose count fails maps to None; an authentication failure
        propagates.
        """
        counts: Dict[str, Optional[int]] = {}
        tables = self.registry.tables

        for i, table in enumerate(tables, start=1):
            if self.cancel_event.is_set():
                break
            self._emit("count", table.name, i, len(tables))
            try:
                counts[table.name] = self.table_exporter.count(table)
            except AuthenticationError:
                raise
            except MigrationToolError as e:
                logger.warning(f"Could not count {table.name}: {e}")
                counts[table.name] = None

        return counts

    # -------------------------------------------------------------------------
    # Bucket export
    # -------------------------------------------------------------------------

    def export_bucket(self, bucket: str, destination: Optional[str] = None) -> BucketExportResult:
        """
        Export one storage bucket into a zip archive.

        Raises:
            BucketListingError: If the bucket cannot be listed; the run report
                is saved first
        """
        policy = RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            backoff=self.config.retry_backoff,
            jitter=self.config.retry_jitter,
        )
        exporter = ObjectStoreExporter(
            self.storage_client,
            retry_policy=policy,
            batch_size=self.config.download_batch_size,
            page_size=self.config.page_size,
            bucket_labels=self.config.bucket_labels,
        )
        destination = destination or str(self.output_dir / f"{bucket}_export_{self._timestamp()}.zip")

        logger.info(f"=== EXPORTING BUCKET {bucket} ===")
        try:
            result = exporter.export(bucket, destination, self.cancel_event, self.on_progress)
        except BucketListingError:
            self._save_report(f"bucket_{bucket}_report", exporter.result.to_dict())
            raise
        self._save_report(f"bucket_{bucket}_report", result.to_dict())
        return result

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_archive(self, path: str) -> Dict[str, Any]:
        """
        Validate an export archive offline.

        Writes the validation report and the safe-import script to
        output_dir.

        Returns:
            Dictionary with results, report_path, script_path and warnings

        Raises:
            ArchiveReadError: If the archive cannot be read
        """
        reader = ArchiveReader()
        tables = reader.read(path)

        validator = ReferentialValidator(self.registry)
        results = validator.validate(tables, on_progress=self.on_progress, line_numbers=reader.line_numbers)

        generated_at = datetime.utcnow()
        generator = ReportGenerator(self.registry, detail_limit=self.config.report_detail_limit)
        stamp = generated_at.strftime("%Y%m%d_%H%M%S")

        report_path = self.output_dir / f"migration_validation_{stamp}.txt"
        report_path.write_text(generator.render(results, generated_at), encoding="utf-8")

        script_path = self.output_dir / f"safe_import_{stamp}.sql"
        script_path.write_text(
            generator.safe_import_script(generated_at, schema=self.config.db_schema),
            encoding="utf-8",
        )

        invalid = sum(len(r.invalid_records) for r in results)
        pending = sum(len(r.pending_records) for r in results)
        logger.info(
            f"Validated {len(results)} tables: {invalid} invalid, {pending} pending references; "
            f"report at {report_path}"
        )

        return {
            "results": results,
            "report_path": str(report_path),
            "script_path": str(script_path),
            "warnings": reader.warnings,
        }

    def _save_report(self, prefix: str, data: Dict[str, Any]) -> str:
        """Save a JSON run report."""
        filepath = self.logs_dir / f"{prefix}_{self._timestamp()}.json"
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
        logger.info(f"Saved report to {filepath}")
        if self.run is not None and prefix == "export_report":
            self.run.report_path = str(filepath)
        return str(filepath)
