"""Zip archives for table exports and bucket exports."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from .base import BaseArchiveWriter, format_bytes
from ..models.migration import TableExportResult
from ..models.record import DownloadOutcome
from ..models.schema import TableDefinition
from ..services.schema_registry import SchemaRegistry
from ..services.serializers import render

logger = logging.getLogger(__name__)

SEPARATOR = "# ========================================"


class ArchiveBuilder(BaseArchiveWriter):
    """
    Bundles exported tables with the import-order manifest.

    Each successful, non-empty table is written to
    ``data/NN_<table>.<format>`` where NN is its import order, so the
    archive listing already reflects the import order. ``_IMPORT_ORDER.txt``
    lists every registered table, including failed and never-attempted ones.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        export_format: str = "csv",
        project_name: str = "CentroVisión",
        schema: str = "public",
    ):
        """
        Initialize the builder.

        Args:
            registry: Schema registry giving order, labels and dependencies
            export_format: "csv" or "sql"
            project_name: Name shown in the manifest headers
            schema: Schema name used in SQL statements
        """
        if export_format not in ("csv", "sql"):
            raise ValueError(f"Unsupported export format: {export_format}")
        super().__init__(name="table export")
        self.registry = registry
        self.export_format = export_format
        self.project_name = project_name
        self.schema = schema
        self._results: Dict[str, TableExportResult] = {}

    def add_result(self, result: TableExportResult) -> None:
        """Record the outcome of one table (the last result per table wins)."""
        if result.table not in self.registry:
            raise KeyError(f"Unknown table: {result.table}")
        self._results[result.table] = result

    @property
    def results(self) -> List[TableExportResult]:
        return [self._results[t.name] for t in self.registry.tables if t.name in self._results]

    def data_path(self, table: TableDefinition) -> str:
        return f"data/{table.file_prefix}_{table.name}.{self.export_format}"

    def members(self, exported_at: datetime) -> List[Tuple[str, Union[str, bytes]]]:
        members: List[Tuple[str, Union[str, bytes]]] = []

        for table in self.registry.tables:
            result = self._results.get(table.name)
            if result is None or not result.success or result.data is None or result.data.is_empty:
                continue
            content = render(result.data, self.export_format, schema=self.schema, exported_at=exported_at)
            members.append((self.data_path(table), content))

        members.append(("_IMPORT_ORDER.txt", self.render_import_order(exported_at)))
        members.append(("_README.txt", self.render_readme(exported_at)))
        return members

    def _format_dependencies(self, table: TableDefinition) -> str:
        deps = sorted(table.dependencies, key=lambda d: (self.registry.order_of(d) or 0, d))
        return ", ".join(deps)

    def render_import_order(self, exported_at: Optional[datetime] = None) -> str:
        """Render ``_IMPORT_ORDER.txt``."""
        exported_at = exported_at or datetime.utcnow()

        lines = [
            f"# ORDEN DE IMPORTACIÓN DE DATOS - {self.project_name}",
            f"# Fecha de exportación: {exported_at.isoformat()}",
            "#",
            "# IMPORTANTE: Importar las tablas EN ESTE ORDEN para respetar las",
            "# claves foráneas (foreign keys) y evitar errores.",
            "#",
            "# Método de importación recomendado:",
            "# 1. En Supabase Dashboard: Table Editor → Seleccionar tabla → Import data from CSV",
            "# 2. O usando psql: \\copy tablename FROM 'archivo.csv' WITH CSV HEADER",
            "#",
            SEPARATOR,
            "",
        ]

        for table in self.registry.tables:
            result = self._results.get(table.name)
            ok = result is not None and result.success
            count = result.row_count if ok else 0
            line = (
                f"{table.file_prefix}. {'✓' if ok else '✗'} {table.name.ljust(25)} | "
                f"{table.label.ljust(25)} | {count} registros"
            )
            if table.dependencies:
                line += f" | Deps: {self._format_dependencies(table)}"
            lines.append(line)

        attempted = list(self._results.values())
        succeeded = [r for r in attempted if r.success]
        not_attempted = len(self.registry) - len(attempted)

        lines.extend([
            "",
            SEPARATOR,
            "# Resumen:",
            f"# - Tablas exportadas exitosamente: {len(succeeded)}",
            f"# - Tablas con errores: {len(attempted) - len(succeeded)}",
        ])
        if not_attempted:
            lines.append(f"# - Tablas no exportadas (ejecución interrumpida): {not_attempted}")
        lines.append(f"# - Total registros: {sum(r.row_count for r in succeeded)}")

        return "\n".join(lines)

    def render_readme(self, exported_at: Optional[datetime] = None) -> str:
        """Render ``_README.txt``."""
        exported_at = exported_at or datetime.utcnow()
        ext = self.export_format
        kind = ext.upper()

        lines = [
            f"# BACKUP DE DATOS - {self.project_name}",
            "# ================================",
            "",
            f"Fecha de exportación: {exported_at.isoformat()}",
            "",
            "## CONTENIDO DEL ZIP:",
            "",
            "📁 data/",
            f"   └── XX_tablename.{ext}  (archivos {kind} numerados en orden de importación)",
            "",
            "📄 _IMPORT_ORDER.txt     (orden correcto de importación)",
            "📄 _README.txt           (este archivo)",
            "",
            "## CÓMO IMPORTAR LOS DATOS:",
            "",
        ]

        if ext == "csv":
            lines.extend([
                "### Opción 1: Supabase Dashboard (Más fácil)",
                "1. Ve a Table Editor en tu proyecto Supabase",
                "2. Selecciona cada tabla en el orden indicado en _IMPORT_ORDER.txt",
                '3. Click en "Import data from CSV"',
                "4. Sube el archivo CSV correspondiente",
                "5. Asegúrate de que los tipos de datos coincidan",
                "",
                "### Opción 2: Línea de comandos (psql)",
                "Para cada archivo en orden:",
                "  psql -h HOST -U postgres -d postgres -c \"\\copy tablename FROM 'XX_tablename.csv' WITH CSV HEADER\"",
            ])
        else:
            lines.extend([
                "### Ejecutar los scripts SQL",
                "Para cada archivo en el orden indicado en _IMPORT_ORDER.txt:",
                "  psql -h HOST -U postgres -d postgres -f XX_tablename.sql",
            ])

        lines.extend([
            "",
            "## NOTAS IMPORTANTES:",
            "",
            "⚠️ IMPORTAR EN ORDEN: Las tablas tienen dependencias (foreign keys).",
            "   Importar fuera de orden causará errores de constraint.",
            "",
            "⚠️ VALORES NULOS: Los campos vacíos sin comillas son NULL.",
            "   Un campo \"\" entre comillas sería texto vacío, no NULL.",
            "",
            "⚠️ USUARIOS: Las contraseñas NO se exportan por seguridad.",
            "   Los usuarios deberán resetear sus contraseñas.",
            "",
            "⚠️ ARCHIVOS: Este backup solo contiene DATOS de las tablas.",
            "   Los archivos de storage (imágenes, PDFs) deben exportarse",
            "   por separado usando la opción \"Exportar bucket\".",
            "",
            "⚠️ ESTRUCTURA: Este backup NO incluye el esquema de la base de datos.",
            "   Primero debes ejecutar las migraciones SQL para crear las tablas.",
            "",
        ])
        return "\n".join(lines)


class BucketArchiveBuilder(BaseArchiveWriter):
    """
    Bundles downloaded storage objects with ``_MANIFEST.txt`` and, when
    anything went wrong, ``_ERRORS.txt``.
    """

    def __init__(self, bucket: str, label: Optional[str] = None):
        super().__init__(name=f"bucket {bucket}")
        self.bucket = bucket
        self.label = label or bucket
        self.expected = 0
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self._files: List[Tuple[DownloadOutcome, bytes]] = []
        self._failed: List[DownloadOutcome] = []
        self._listing_errors: List[Dict[str, str]] = []

    def add_file(self, outcome: DownloadOutcome, content: bytes) -> None:
        self._files.append((outcome, content))

    def add_failure(self, outcome: DownloadOutcome) -> None:
        self._failed.append(outcome)

    def add_listing_error(self, prefix: str, message: str) -> None:
        self._listing_errors.append({"prefix": prefix, "error": message})

    def members(self, exported_at: datetime) -> List[Tuple[str, Union[str, bytes]]]:
        members: List[Tuple[str, Union[str, bytes]]] = [(o.path, content) for o, content in self._files]
        members.append(("_MANIFEST.txt", self.render_manifest(exported_at)))
        if self._failed or self._listing_errors:
            members.append(("_ERRORS.txt", self.render_errors(exported_at)))
        return members

    def render_manifest(self, exported_at: Optional[datetime] = None) -> str:
        """Render ``_MANIFEST.txt``."""
        started_at = self.started_at or exported_at or datetime.utcnow()
        completed_at = self.completed_at or exported_at or datetime.utcnow()
        duration = round((completed_at - started_at).total_seconds())

        lines = [
            f"# Exportación de bucket: {self.bucket}",
            f"# Bucket label: {self.label}",
            f"# Fecha inicio: {started_at.isoformat()}",
            f"# Fecha fin: {completed_at.isoformat()}",
            f"# Duración: {duration} segundos",
            f"# Total archivos esperados: {self.expected}",
            f"# Archivos exitosos: {len(self._files)}",
            f"# Archivos fallidos: {len(self._failed)}",
        ]
        if self._listing_errors:
            lines.append(f"# Carpetas no listadas: {len(self._listing_errors)}")
        lines.extend(["", "## ARCHIVOS INCLUIDOS EN ESTE ZIP:", ""])
        lines.extend(f"✓ {o.path} ({format_bytes(o.size_bytes or 0)})" for o, _ in self._files)
        return "\n".join(lines)

    def render_errors(self, exported_at: Optional[datetime] = None) -> str:
        """Render ``_ERRORS.txt``."""
        exported_at = exported_at or datetime.utcnow()
        lines = [
            f"# ERRORES DE EXPORTACIÓN - {self.bucket}",
            f"# Fecha: {exported_at.isoformat()}",
            "# IMPORTANTE: Estos archivos NO están incluidos en el ZIP",
            "# Deberás descargarlos manualmente o reintentar la exportación",
            "",
            f"## ARCHIVOS FALTANTES ({len(self._failed)}):",
            "",
        ]
        for outcome in self._failed:
            lines.append(f"✗ {outcome.path}\n  Error: {outcome.error_message or 'Error desconocido'}")

        if self._listing_errors:
            lines.extend(["", f"## CARPETAS NO LISTADAS ({len(self._listing_errors)}):", ""])
            for entry in self._listing_errors:
                lines.append(f"✗ {entry['prefix']}/\n  Error: {entry['error']}")

        return "\n".join(lines)
