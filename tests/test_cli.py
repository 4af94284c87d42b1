# =============================================================================
# tests/test_cli.py - Command-Line Interface Tests
# =============================================================================

import argparse
import json
import zipfile

import pytest

from clinicmigrate import cli


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)


@pytest.fixture
def upload(tmp_path):
    def make(rooms_branch="b1"):
        path = tmp_path / "upload.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("data/01_branches.csv", '"id","name"\n"b1","Central"')
            zf.writestr("data/04_rooms.csv", f'"id","branch_id","name"\n"r1","{rooms_branch}","Sala 1"')
        return str(path)
    return make


class TestSchema:
    """The schema command."""

    def test_lists_tables_by_category(self, capsys):
        assert cli.main(["schema"]) == 0
        out = capsys.readouterr().out
        assert "branches" in out
        assert out.index("branches") < out.index("appointments")

    def test_json_output(self, capsys):
        assert cli.main(["schema", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["tables"][0]["name"] == "branches"


class TestSafeImportScript:
    """The safe-import-script command."""

    def test_prints_script(self, capsys):
        assert cli.main(["safe-import-script"]) == 0
        assert "SET session_replication_role = 'replica';" in capsys.readouterr().out

    def test_writes_file(self, tmp_path):
        path = tmp_path / "safe.sql"
        assert cli.main(["safe-import-script", "--output", str(path)]) == 0
        assert "PARTE 4" in path.read_text(encoding="utf-8")


class TestValidate:
    """The validate command."""

    def test_clean_upload(self, upload, tmp_path, capsys):
        code = cli.main(["validate", upload(), "--output-dir", str(tmp_path / "out")])
        assert code == 0
        assert "Report:" in capsys.readouterr().out

    def test_invalid_reference_exit_code(self, upload, tmp_path):
        assert cli.main(["validate", upload("X"), "--output-dir", str(tmp_path / "out")]) == 1

    def test_unreadable_archive(self, tmp_path):
        path = tmp_path / "broken.zip"
        path.write_bytes(b"nope")
        assert cli.main(["validate", str(path), "--output-dir", str(tmp_path / "out")]) == 1


class TestNoCommand:
    """Running without a subcommand."""

    def test_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestLoadConfig:
    """CLI overrides on top of the config file."""

    def test_table_format_override(self, tmp_path):
        args = argparse.Namespace(config=None, output_dir=str(tmp_path), format="sql")
        config = cli.load_config(args)
        assert config.export_format == "sql"
        assert config.output_dir == str(tmp_path)

    def test_xlsx_leaves_archive_format_alone(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"base_url": "https://x.supabase.co", "export_format": "sql"}))
        args = argparse.Namespace(config=str(path), output_dir=None, format="xlsx")

        assert cli.load_config(args).export_format == "sql"
