"""Validation report and safe-import script generation."""

import logging
from datetime import datetime
from typing import List, Optional

from ..models.record import ValidationResult
from ..models.schema import ForeignKeyEdge
from .schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)

RULE = "-- " + "=" * 44
SECTION = "-- " + "=" * 42


def _alias(table: str, taken: str = "") -> str:
    """Short SQL alias from the initials of a table name."""
    alias = "".join(part[0] for part in table.split("_") if part)
    if alias == taken:
        alias = alias + "2"
    return alias


class ReportGenerator:
    """
    Turns validation results into operator-facing text.

    Produces:
    - A validation report (summary plus per-table detail)
    - A safe-import SQL template built from the registry's FK edges
    """

    def __init__(self, registry: SchemaRegistry, detail_limit: int = 10, pending_detail_limit: int = 5):
        """
        Initialize the generator.

        Args:
            registry: Schema registry
            detail_limit: Invalid references listed per table
            pending_detail_limit: Pending references listed per table
        """
        self.registry = registry
        self.detail_limit = detail_limit
        self.pending_detail_limit = pending_detail_limit

    # -------------------------------------------------------------------------
    # Validation report
    # -------------------------------------------------------------------------

    def render(self, results: List[ValidationResult], generated_at: Optional[datetime] = None) -> str:
        """
        Render the validation report.

        Args:
            results: Validator output
            generated_at: Report timestamp (defaults to now)

        Returns:
            Report text
        """
        generated_at = generated_at or datetime.utcnow()

        total_valid = sum(r.valid_records for r in results)
        total_pending = sum(len(r.pending_records) for r in results)
        total_invalid = sum(len(r.invalid_records) for r in results)
        total_auth = sum(len(r.auth_user_refs) for r in results)

        lines = [
            "# REPORTE DE VALIDACIÓN DE MIGRACIÓN",
            f"# Fecha: {generated_at.isoformat()}",
            f"# Total tablas analizadas: {len(results)}",
            "",
            "## RESUMEN",
            "",
            f"✅ Registros válidos: {total_valid}",
            f"⚠️ Registros pendientes (falta importar padre): {total_pending}",
            f"❌ Registros inválidos (referencia no existe): {total_invalid}",
            f"🔐 Referencias a auth.users: {total_auth}",
            "",
            "## DETALLE POR TABLA",
            "",
        ]

        for result in results:
            lines.extend(self._table_block(result))

        logger.debug(f"Rendered validation report for {len(results)} tables")
        return "\n".join(lines)

    def _table_block(self, result: ValidationResult) -> List[str]:
        lines = [
            f"### {result.table_name}",
            f"Total: {result.total_records} | Válidos: {result.valid_records} | "
            f"Pendientes: {len(result.pending_records)} | Inválidos: {len(result.invalid_records)} | "
            f"Auth refs: {len(result.auth_user_refs)}",
        ]
        if not result.known_table:
            lines.append("(tabla no registrada en el esquema: sin verificación de FKs)")

        if result.invalid_records:
            lines.extend(["", "#### Registros Inválidos:"])
            for v in result.invalid_records[:self.detail_limit]:
                lines.append(
                    f'- Fila {v.line_number}: {v.column} = "{v.missing_value}" no existe en {v.target_table}'
                )
            remaining = len(result.invalid_records) - self.detail_limit
            if remaining > 0:
                lines.append(f"... y {remaining} más")

        if result.pending_records:
            lines.extend(["", "#### Registros Pendientes (importar padre primero):"])
            for v in result.pending_records[:self.pending_detail_limit]:
                lines.append(f"- Fila {v.line_number}: {v.column} requiere {v.target_table}")
            remaining = len(result.pending_records) - self.pending_detail_limit
            if remaining > 0:
                lines.append(f"... y {remaining} más")

        lines.append("")
        return lines

    # -------------------------------------------------------------------------
    # Safe import script
    # -------------------------------------------------------------------------

    def safe_import_script(self, generated_at: Optional[datetime] = None, schema: str = "public") -> str:
        """
        Render the safe-import SQL template.

        Part 1 disables FK enforcement for the session, Part 2 lists
        commented identity remapping statements, Part 3 re-enables
        enforcement and Part 4 counts orphaned rows per FK edge.
        """
        generated_at = generated_at or datetime.utcnow()
        direct = self.registry.external_identity_edges()
        indirect = self.registry.indirect_identity_edges()

        lines = [
            RULE,
            "-- SCRIPT DE IMPORTACIÓN SEGURA",
            f"-- Generado: {generated_at.isoformat()}",
            RULE,
            "-- Este script desactiva temporalmente la validación de FKs",
            "-- para permitir importar datos en cualquier orden sin errores.",
            "--",
            "-- INSTRUCCIONES:",
            "-- 1. Ejecuta la Parte 1 ANTES de importar los archivos",
            "-- 2. Importa todos los archivos en el orden de _IMPORT_ORDER.txt",
            "-- 3. Revisa y ejecuta la Parte 2 si los IDs de usuario cambiaron",
            "-- 4. Ejecuta la Parte 3 DESPUÉS de importar todo",
            "-- 5. Ejecuta la Parte 4 para verificar integridad",
            RULE,
            "",
            SECTION,
            "-- PARTE 1: DESACTIVAR VALIDACIÓN DE FKs",
            SECTION,
            "",
            "SET session_replication_role = 'replica';",
            "",
            SECTION,
            "-- PARTE 2: REMAPEO DE IDs DE USUARIO (auth.users)",
            SECTION,
            "-- Reemplaza OLD_ID / NEW_ID por cada usuario recreado y descomenta.",
            "",
            f"-- Referencias directas a auth.users ({len(direct)} columnas)",
        ]
        lines.extend(self._update_line(e, schema) for e in direct)
        lines.extend(["", f"-- Referencias indirectas vía profiles.user_id ({len(indirect)} columnas)"])
        lines.extend(self._update_line(e, schema) for e in indirect)
        lines.extend([
            "",
            SECTION,
            "-- PARTE 3: REACTIVAR VALIDACIÓN DE FKs",
            SECTION,
            "",
            "SET session_replication_role = 'origin';",
            "",
            SECTION,
            "-- PARTE 4: VERIFICACIÓN DE INTEGRIDAD",
            SECTION,
            "-- Registros con referencias a filas inexistentes",
            "",
        ])

        for table in self.registry.tables:
            for edge in self.registry.edges_of(table.name):
                if edge.is_external:
                    continue
                lines.extend(self._orphan_query(edge, schema))

        return "\n".join(lines)

    @staticmethod
    def _update_line(edge: ForeignKeyEdge, schema: str) -> str:
        column = edge.source_column
        return f"-- UPDATE {schema}.{edge.source_table} SET {column} = 'NEW_ID' WHERE {column} = 'OLD_ID';"

    @staticmethod
    def _orphan_query(edge: ForeignKeyEdge, schema: str) -> List[str]:
        source_alias = _alias(edge.source_table)
        target_alias = _alias(edge.target_table, taken=source_alias)
        check = f"{edge.source_table}.{edge.source_column} sin {edge.target_table}"
        return [
            f"-- Verificar {check}",
            f"SELECT '{check}' AS check_name, COUNT(*) AS orphan_count",
            f"FROM {schema}.{edge.source_table} {source_alias}",
            f"LEFT JOIN {schema}.{edge.target_table} {target_alias} "
            f"ON {source_alias}.{edge.source_column} = {target_alias}.{edge.target_column}",
            f"WHERE {source_alias}.{edge.source_column} IS NOT NULL AND {target_alias}.{edge.target_column} IS NULL;",
            "",
        ]
