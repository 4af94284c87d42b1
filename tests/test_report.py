# =============================================================================
# tests/test_report.py - Validation Report and Safe-Import Script Tests
# =============================================================================

from datetime import datetime

import pytest

from clinicmigrate.models.record import ExternalRef, FkViolation, ValidationResult
from clinicmigrate.services.report import ReportGenerator


def violations(n, column="branch_id", target="branches"):
    return [FkViolation(i, column, target, f"x{i}") for i in range(n)]


@pytest.fixture
def generator(small_registry):
    return ReportGenerator(small_registry)


class TestRender:
    """The validation report text."""

    def test_summary_totals(self, generator):
        results = [
            ValidationResult("branches", total_records=10, valid_records=10),
            ValidationResult(
                "rooms", total_records=5, valid_records=3,
                invalid_records=violations(1), pending_records=violations(1),
            ),
            ValidationResult(
                "profiles", total_records=2, valid_records=2,
                auth_user_refs=[ExternalRef(0, "user_id", "u1"), ExternalRef(1, "user_id", "u2")],
            ),
        ]

        report = generator.render(results, generated_at=datetime(2026, 1, 15, 10, 30))

        assert report.startswith("# REPORTE DE VALIDACIÓN DE MIGRACIÓN")
        assert "# Fecha: 2026-01-15T10:30:00" in report
        assert "# Total tablas analizadas: 3" in report
        assert "✅ Registros válidos: 15" in report
        assert "⚠️ Registros pendientes (falta importar padre): 1" in report
        assert "❌ Registros inválidos (referencia no existe): 1" in report
        assert "🔐 Referencias a auth.users: 2" in report

    def test_table_line(self, generator):
        result = ValidationResult("rooms", total_records=5, valid_records=4, invalid_records=violations(1))
        report = generator.render([result])

        assert "### rooms" in report
        assert "Total: 5 | Válidos: 4 | Pendientes: 0 | Inválidos: 1 | Auth refs: 0" in report

    def test_invalid_details_use_file_line_numbers(self, generator):
        result = ValidationResult("rooms", total_records=5, valid_records=4,
                                  invalid_records=[FkViolation(4, "branch_id", "branches", "X")])
        report = generator.render([result])

        assert '- Fila 6: branch_id = "X" no existe en branches' in report

    def test_invalid_details_truncated(self, generator):
        result = ValidationResult("rooms", total_records=12, invalid_records=violations(12))
        lines = generator.render([result]).split("\n")

        assert len([line for line in lines if line.startswith("- Fila")]) == 10
        assert "... y 2 más" in lines

    def test_pending_details_truncated(self, generator):
        result = ValidationResult("appointments", total_records=8,
                                  pending_records=violations(8, "room_id", "rooms"))
        lines = generator.render([result]).split("\n")

        assert "- Fila 2: room_id requiere rooms" in lines
        assert len([line for line in lines if line.startswith("- Fila")]) == 5
        assert "... y 3 más" in lines

    def test_custom_limits(self, small_registry):
        generator = ReportGenerator(small_registry, detail_limit=2)
        result = ValidationResult("rooms", total_records=3, invalid_records=violations(3))
        assert "... y 1 más" in generator.render([result])

    def test_no_detail_sections_when_clean(self, generator):
        report = generator.render([ValidationResult("branches", total_records=1, valid_records=1)])
        assert "Registros Inválidos" not in report
        assert "Registros Pendientes" not in report

    def test_unknown_table_flagged(self, generator):
        report = generator.render([ValidationResult("legacy", total_records=1, valid_records=1, known_table=False)])
        assert "sin verificación de FKs" in report


class TestSafeImportScript:
    """The four-part safe-import SQL template."""

    def test_parts_in_order(self, generator):
        script = generator.safe_import_script()

        positions = [script.index(f"-- PARTE {n}:") for n in (1, 2, 3, 4)]
        assert positions == sorted(positions)
        assert script.index("SET session_replication_role = 'replica';") < positions[1]
        assert positions[2] < script.index("SET session_replication_role = 'origin';") < positions[3]

    def test_identity_remap_lines_commented(self, generator):
        script = generator.safe_import_script()

        assert "-- UPDATE public.profiles SET user_id = 'NEW_ID' WHERE user_id = 'OLD_ID';" in script
        assert "-- UPDATE public.appointments SET doctor_id = 'NEW_ID' WHERE doctor_id = 'OLD_ID';" in script
        assert "-- Referencias directas a auth.users (1 columnas)" in script
        assert "-- Referencias indirectas vía profiles.user_id (1 columnas)" in script
        for line in script.split("\n"):
            if "UPDATE" in line:
                assert line.startswith("--")

    def test_orphan_query_per_internal_edge(self, generator):
        script = generator.safe_import_script()

        assert script.count("AS orphan_count") == 6
        assert "FROM public.rooms r\nLEFT JOIN public.branches b ON r.branch_id = b.id" in script
        assert "WHERE r.branch_id IS NOT NULL AND b.id IS NULL;" in script
        assert "auth.users" not in script.split("-- PARTE 4:")[1]

    def test_self_reference_alias(self, generator):
        script = generator.safe_import_script()
        assert "FROM public.categories c\nLEFT JOIN public.categories c2 ON c.parent_id = c2.id" in script

    def test_schema_name(self, generator):
        script = generator.safe_import_script(schema="clinic")
        assert "FROM clinic.rooms r" in script
        assert "-- UPDATE clinic.profiles" in script

    def test_full_registry(self, clinical_registry):
        script = ReportGenerator(clinical_registry).safe_import_script(generated_at=datetime(2026, 1, 1))
        assert "-- Generado: 2026-01-01T00:00:00" in script
        assert script.count("AS orphan_count") == sum(
            1 for t in clinical_registry.tables for e in clinical_registry.edges_of(t.name) if not e.is_external
        )
