"""CSV, SQL and XLSX rendering of exported tables.

NULL and empty-string values are written as a bare empty CSV field and as
the SQL ``NULL`` token. A quoted empty string is not NULL to PostgreSQL and
breaks UUID and foreign-key columns on import.
"""

import io
import json
import logging
import math
from datetime import datetime
from typing import Any, List, Optional, Union

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.worksheet.worksheet import Worksheet

from ..models.record import ExportedTable, RowValue

logger = logging.getLogger(__name__)

CSV_BOM = "\ufeff"
SHEET_NAME_LIMIT = 31


def _is_null(value: RowValue) -> bool:
    return value is None or value == ""


def _to_json_text(value: Any) -> str:
    """Compact JSON text for structured values."""
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError) as e:
        logger.warning(f"Value could not be rendered as JSON ({e}); writing its text form")
        return str(value)


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return _to_json_text(value)
    return str(value)


def _quote_csv(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def render_csv_value(value: RowValue) -> str:
    """One CSV field: empty and unquoted for NULL, quoted otherwise."""
    if _is_null(value):
        return ""
    return _quote_csv(_to_text(value))


def render_sql_value(value: RowValue) -> str:
    """One SQL literal."""
    if _is_null(value):
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "'NaN'::float"
        return "'Infinity'::float" if value > 0 else "'-Infinity'::float"
    if isinstance(value, (int, float)):
        return str(value)
    text = _to_text(value)
    return "'" + text.replace("'", "''") + "'"


def to_csv(table: ExportedTable, columns: Optional[List[str]] = None, bom: bool = True) -> str:
    """
    Render a table as CSV text.

    Args:
        table: Exported table
        columns: Column order (defaults to the union of row keys)
        bom: Prefix the UTF-8 byte order mark

    Returns:
        CSV text with a quoted header row; empty string for an empty table
    """
    if table.is_empty:
        return ""

    columns = columns or table.columns
    lines = [",".join(_quote_csv(c) for c in columns)]
    for row in table.rows:
        lines.append(",".join(render_csv_value(row.get(c)) for c in columns))

    content = "\n".join(lines)
    return CSV_BOM + content if bom else content


def to_sql(
    table: ExportedTable,
    schema: str = "public",
    exported_at: Optional[datetime] = None,
    columns: Optional[List[str]] = None,
) -> str:
    """
    Render a table as INSERT statements.

    Returns:
        SQL text, one INSERT per row after a comment header; empty string
        for an empty table
    """
    if table.is_empty:
        return ""

    columns = columns or table.columns
    exported_at = exported_at or datetime.utcnow()

    statements = [
        f"-- Exportación de {table.name}",
        f"-- Fecha: {exported_at.isoformat()}",
        f"-- Total registros: {table.row_count}",
        "-- IMPORTANTE: Este archivo usa NULL literal para valores nulos (compatible con UUID)",
        "",
    ]

    column_list = ", ".join(columns)
    for row in table.rows:
        values = ", ".join(render_sql_value(row.get(c)) for c in columns)
        statements.append(f"INSERT INTO {schema}.{table.name} ({column_list}) VALUES ({values});")

    return "\n".join(statements)


def render_xlsx_value(value: RowValue) -> Any:
    """One worksheet cell: empty for NULL, native numbers and booleans, text otherwise."""
    if _is_null(value):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (int, float)):
        return value
    return ILLEGAL_CHARACTERS_RE.sub("", _to_text(value))


def append_sheet(workbook: Workbook, table: ExportedTable, title: Optional[str] = None,
                 columns: Optional[List[str]] = None) -> Worksheet:
    """Add one sheet holding a table: header row, then one row per record."""
    columns = columns or table.columns
    sheet = workbook.create_sheet(title=(title or table.name)[:SHEET_NAME_LIMIT])
    sheet.append(columns)
    for row in table.rows:
        sheet.append([render_xlsx_value(row.get(c)) for c in columns])
    return sheet


def to_xlsx(table: ExportedTable) -> bytes:
    """
    Render a table as a one-sheet workbook.

    Returns:
        XLSX bytes; empty bytes for an empty table
    """
    if table.is_empty:
        return b""

    workbook = Workbook()
    workbook.remove(workbook.active)
    append_sheet(workbook, table)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def render(table: ExportedTable, export_format: str, schema: str = "public",
           exported_at: Optional[datetime] = None) -> Union[str, bytes]:
    """Render in the given format ("csv", "sql" or "xlsx"; xlsx is bytes)."""
    if export_format == "csv":
        return to_csv(table)
    if export_format == "sql":
        return to_sql(table, schema=schema, exported_at=exported_at)
    if export_format == "xlsx":
        return to_xlsx(table)
    raise ValueError(f"Unsupported export format: {export_format}")
