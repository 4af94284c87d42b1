# =============================================================================
# tests/test_workbook.py - XLSX Workbook Backup Tests
# =============================================================================

import io

import pytest
from openpyxl import load_workbook

from clinicmigrate.loaders.workbook import SUMMARY_SHEET, WorkbookBuilder, sheet_title
from clinicmigrate.models.migration import ExportStatus, TableExportResult
from clinicmigrate.models.record import ExportedTable


def completed(name, rows):
    table = ExportedTable(name, tuple(rows))
    return TableExportResult(table=name, status=ExportStatus.COMPLETED, row_count=table.row_count, data=table)


@pytest.fixture
def workbook_bytes(small_registry, sample_rows):
    builder = WorkbookBuilder(small_registry)
    builder.add_result(completed("branches", sample_rows["branches"]))
    builder.add_result(TableExportResult(table="rooms", status=ExportStatus.FAILED, error="503"))
    builder.add_result(completed("categories", []))
    buffer = io.BytesIO()
    assert builder.build(buffer) == 1
    buffer.seek(0)
    return load_workbook(buffer)


class TestWorkbook:
    """One workbook holding every table."""

    def test_sheets(self, workbook_bytes):
        assert workbook_bytes.sheetnames == [SUMMARY_SHEET, "branches"]

    def test_table_sheet(self, workbook_bytes):
        sheet = workbook_bytes["branches"]
        assert [c.value for c in sheet[1]] == ["id", "name", "active"]
        assert [c.value for c in sheet[2]] == ["b1", "Central", True]

    def test_summary_lists_every_registered_table(self, workbook_bytes):
        rows = list(workbook_bytes[SUMMARY_SHEET].iter_rows(min_row=3, values_only=True))
        assert [r[1] for r in rows] == ["branches", "profiles", "rooms", "categories", "appointments"]
        assert rows[0][3:] == ("completed", 2, "branches")
        assert rows[1][3] == "not_exported"
        assert rows[2][3] == "failed"
        assert rows[3][3:] == ("completed", 0, None)

    def test_unknown_table_rejected(self, small_registry):
        with pytest.raises(KeyError):
            WorkbookBuilder(small_registry).add_result(completed("ghosts", []))


class TestSheetTitles:
    """Excel sheet-name rules."""

    def test_truncated_to_31(self):
        assert sheet_title("room_inventory_movements_archive_2024", set()) == "room_inventory_movements_archiv"

    def test_collisions_get_suffix(self):
        used = set()
        first = sheet_title("a" * 40, used)
        second = sheet_title("a" * 40, used)
        assert first == "a" * 31
        assert second == "a" * 29 + "~2"
        assert len(second) == 31
