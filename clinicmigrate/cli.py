"""Command-line interface for the export and validation engine."""

import argparse
import json
import logging
import signal
import sys
from typing import List, Optional

from .exceptions import MigrationToolError
from .models.migration import ExportConfig, ExportStatus, ExporterState, ProgressEvent
from .orchestrator import ExportOrchestrator
from .services.report import ReportGenerator
from .services.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to a JSON config file")
    common.add_argument("--registry", help="Path to a JSON schema declaration (defaults to the clinical schema)")
    common.add_argument("--output-dir", help="Directory for archives, reports and logs")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    parser = argparse.ArgumentParser(
        description="Clinic data migration tool - export tables and buckets, validate exports offline"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Full export
    export_parser = subparsers.add_parser("export", parents=[common], help="Export every table into one archive")
    export_parser.add_argument("--format", choices=["csv", "sql"], help="Export format")
    export_parser.add_argument("--archive", help="Archive path")

    # Single table
    table_parser = subparsers.add_parser("export-table", parents=[common], help="Export one table to a file")
    table_parser.add_argument("name", help="Table name")
    table_parser.add_argument("--format", choices=["csv", "sql", "xlsx"], help="Export format")

    # Workbook
    workbook_parser = subparsers.add_parser(
        "export-workbook", parents=[common], help="Export every table into one XLSX workbook"
    )
    workbook_parser.add_argument("--output", help="Workbook path")

    # Bucket
    bucket_parser = subparsers.add_parser("export-bucket", parents=[common], help="Export a storage bucket")
    bucket_parser.add_argument("bucket", help="Bucket name")
    bucket_parser.add_argument("--output", help="Archive path")

    # Counts
    subparsers.add_parser("counts", parents=[common], help="Show row counts per table")

    # Validation
    validate_parser = subparsers.add_parser("validate", parents=[common], help="Validate an export offline")
    validate_parser.add_argument("path", help="Export .zip or a single .csv file")

    # Safe import script
    script_parser = subparsers.add_parser("safe-import-script", parents=[common], help="Print the safe import SQL")
    script_parser.add_argument("--output", help="Output file path")

    # Schema
    schema_parser = subparsers.add_parser("schema", parents=[common], help="Show tables in import order")
    schema_parser.add_argument("--json", action="store_true", help="Print the declaration as JSON")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    handlers = {
        "export": run_export,
        "export-table": run_export_table,
        "export-workbook": run_export_workbook,
        "export-bucket": run_export_bucket,
        "counts": run_counts,
        "validate": run_validation,
        "safe-import-script": run_safe_import_script,
        "schema": run_schema,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return handler(args)
    except MigrationToolError as e:
        logger.error(str(e))
        print(f"\nError: {e}", file=sys.stderr)
        return 1


def load_config(args) -> ExportConfig:
    """Config file (if any) plus environment credentials plus CLI overrides."""
    data = {}
    if getattr(args, "config", None):
        with open(args.config, encoding="utf-8") as f:
            data = json.load(f)
    if getattr(args, "output_dir", None):
        data["output_dir"] = args.output_dir
    if getattr(args, "format", None) in ("csv", "sql"):
        data["export_format"] = args.format
    return ExportConfig.from_env(data)


def load_registry(args) -> SchemaRegistry:
    if getattr(args, "registry", None):
        return SchemaRegistry.from_json_file(args.registry)
    return SchemaRegistry.default()


def log_progress(event: ProgressEvent) -> None:
    """Progress callback used by every command."""
    if event.kind == "table":
        logger.debug(event.message)
    elif event.message:
        logger.info(f"[{event.current}/{event.total}] {event.message}")


def create_orchestrator(args) -> ExportOrchestrator:
    config = load_config(args)
    if not config.base_url:
        logger.warning("No backend URL configured (SUPABASE_URL or base_url in --config)")
    orchestrator = ExportOrchestrator(config, load_registry(args), on_progress=log_progress)
    signal.signal(signal.SIGINT, lambda signum, frame: orchestrator.cancel())
    return orchestrator


def run_export(args) -> int:
    """Export every table."""
    orchestrator = create_orchestrator(args)
    result = orchestrator.run_export(archive_path=args.archive)

    print("\n" + "=" * 60)
    print("EXPORT COMPLETE" if result.status == ExportStatus.COMPLETED else "EXPORT INTERRUPTED")
    print("=" * 60)
    print(f"Status: {result.status.value}")
    print(f"Tables exported: {len(result.succeeded)}")
    print(f"Tables failed: {len(result.failed)}")
    print(f"Rows: {result.total_rows}")
    if result.archive_path:
        print(f"Archive: {result.archive_path}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")

    return 0 if result.status == ExportStatus.COMPLETED else 1


def run_export_table(args) -> int:
    """Export one table."""
    orchestrator = create_orchestrator(args)
    result, path = orchestrator.export_single_table(args.name, args.format)

    if not result.success:
        print(f"\nExport of {args.name} failed: {result.error}")
        return 1

    if path:
        print(f"\n{result.row_count} rows written to {path}")
    else:
        print(f"\n{args.name} has no rows")
    return 0


def run_export_workbook(args) -> int:
    """Export every table into one workbook."""
    orchestrator = create_orchestrator(args)
    result = orchestrator.export_workbook(workbook_path=args.output)

    print("\n" + "=" * 60)
    print("WORKBOOK COMPLETE" if result.status == ExportStatus.COMPLETED else "WORKBOOK INTERRUPTED")
    print("=" * 60)
    print(f"Tables exported: {len(result.succeeded)}")
    print(f"Tables failed: {len(result.failed)}")
    print(f"Rows: {result.total_rows}")
    if result.archive_path:
        print(f"Workbook: {result.archive_path}")

    return 0 if result.status == ExportStatus.COMPLETED else 1


def run_export_bucket(args) -> int:
    """Export one storage bucket."""
    orchestrator = create_orchestrator(args)
    result = orchestrator.export_bucket(args.bucket, destination=args.output)

    print("\n" + "=" * 60)
    print(f"BUCKET {args.bucket}: {result.state.value.upper()}")
    print("=" * 60)
    print(f"Files expected: {result.expected}")
    print(f"Files exported: {len(result.succeeded)}")
    print(f"Files failed: {len(result.failed)}")
    if result.listing_errors:
        print(f"Folders not listed: {len(result.listing_errors)}")
    if result.archive_path:
        print(f"Archive: {result.archive_path}")
    if result.has_errors:
        print("See _ERRORS.txt in the archive for the missing files")

    return 0 if result.state == ExporterState.COMPLETED else 1


def run_counts(args) -> int:
    """Show row counts."""
    orchestrator = create_orchestrator(args)
    counts = orchestrator.collect_counts()

    print("\n=== Row counts ===")
    for table in orchestrator.registry.tables:
        if table.name not in counts:
            continue
        count = counts[table.name]
        print(f"  {table.file_prefix}. {table.name.ljust(28)} {'?' if count is None else count}")
    print(f"\nTotal: {sum(c for c in counts.values() if c)}")
    return 0


def run_validation(args) -> int:
    """Validate an export archive offline."""
    orchestrator = create_orchestrator(args)
    outcome = orchestrator.validate_archive(args.path)
    results = outcome["results"]

    print("\n=== Validation ===")
    for r in results:
        status = "INVALID" if r.has_invalid else ("pending" if r.pending_records else "ok")
        print(
            f"  {r.table_name.ljust(28)} {r.valid_records}/{r.total_records} valid, "
            f"{len(r.pending_records)} pending, {len(r.invalid_records)} invalid  [{status}]"
        )
    for warning in outcome["warnings"]:
        print(f"  warning: {warning}")

    print(f"\nReport: {outcome['report_path']}")
    print(f"Safe import script: {outcome['script_path']}")

    return 1 if any(r.has_invalid for r in results) else 0


def run_safe_import_script(args) -> int:
    """Print or save the safe import script."""
    config = load_config(args)
    generator = ReportGenerator(load_registry(args), detail_limit=config.report_detail_limit)
    script = generator.safe_import_script(schema=config.db_schema)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(script)
        print(f"Script saved to {args.output}")
    else:
        print(script)
    return 0


def run_schema(args) -> int:
    """Show the registry in import order."""
    registry = load_registry(args)

    if args.json:
        print(json.dumps(registry.to_dict(), indent=2, ensure_ascii=False))
        return 0

    for category, names in registry.list_categories().items():
        print(f"\n{category}:")
        for name in names:
            table = registry.get_table(name)
            deps = ", ".join(sorted(table.dependencies))
            print(f"  {table.file_prefix}. {table.name.ljust(28)} {table.label}" + (f"  (deps: {deps})" if deps else ""))
    return 0


if __name__ == "__main__":
    sys.exit(main())
