"""Single-workbook backup of every exported table."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from openpyxl import Workbook

from .base import ArchiveTarget
from ..models.migration import TableExportResult
from ..services.schema_registry import SchemaRegistry
from ..services.serializers import SHEET_NAME_LIMIT, append_sheet

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "_RESUMEN"


def sheet_title(name: str, used: Set[str]) -> str:
    """Sheet title within the 31-character limit, unique within the workbook."""
    title = name[:SHEET_NAME_LIMIT]
    n = 2
    while title.lower() in used:
        suffix = f"~{n}"
        title = name[:SHEET_NAME_LIMIT - len(suffix)] + suffix
        n += 1
    used.add(title.lower())
    return title


class WorkbookBuilder:
    """
    Collects table results into one XLSX workbook.

    The first sheet summarizes every registered table in import order; each
    successful, non-empty table follows on its own sheet.
    """

    def __init__(self, registry: SchemaRegistry, project_name: str = "CentroVisión"):
        self.registry = registry
        self.project_name = project_name
        self._results: Dict[str, TableExportResult] = {}

    def add_result(self, result: TableExportResult) -> None:
        """Record the outcome of one table (the last result per table wins)."""
        if result.table not in self.registry:
            raise KeyError(f"Unknown table: {result.table}")
        self._results[result.table] = result

    @property
    def results(self) -> List[TableExportResult]:
        return [self._results[t.name] for t in self.registry.tables if t.name in self._results]

    def build(self, target: ArchiveTarget, exported_at: Optional[datetime] = None) -> int:
        """
        Write the workbook.

        Args:
            target: File path or writable binary buffer
            exported_at: Timestamp shown on the summary sheet

        Returns:
            Number of table sheets written
        """
        exported_at = exported_at or datetime.utcnow()
        workbook = Workbook()
        summary = workbook.active
        summary.title = SUMMARY_SHEET
        summary.append([f"Backup {self.project_name}", exported_at.isoformat()])
        summary.append(["Orden", "Tabla", "Etiqueta", "Estado", "Registros", "Hoja"])

        used = {SUMMARY_SHEET.lower()}
        sheets = 0
        for table in self.registry.tables:
            result = self._results.get(table.name)
            title = None
            if result is not None and result.success and result.data is not None and not result.data.is_empty:
                title = sheet_title(table.name, used)
                append_sheet(workbook, result.data, title=title)
                sheets += 1

            status = result.status.value if result is not None else "not_exported"
            row_count = result.row_count if result is not None and result.success else 0
            summary.append([table.order, table.name, table.label, status, row_count, title])

        workbook.save(target)
        logger.info(f"Wrote workbook with {sheets} table sheets")
        return sheets
