"""Tests for the migration CLI (SQLite)."""

import shutil

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import ArgumentError
from typer.testing import CliRunner

from sitebuilder import cli
from sitebuilder.migrations.errors import MigrationDefinitionError
from sitebuilder.migrations.registry import VERSIONS_DIR, load_steps
from sitebuilder.observability.correlation import get_correlation_id

runner = CliRunner()


@pytest.fixture
def invoke(sqlite_url):
    def _invoke(*args):
        return runner.invoke(cli.app, [*args, "--database-url", sqlite_url])

    return _invoke


class TestUpAndDown:
    def test_up_to_initial_schema(self, invoke):
        result = invoke("up", "--to", "20250830000000")
        assert result.exit_code == 0, result.output
        assert "applied 20250830000000 InitialSchema" in result.output
        assert "Current version: 20250830000000" in result.output

    def test_up_again_is_a_no_op(self, invoke):
        invoke("up", "--to", "20250830000000")
        result = invoke("up", "--to", "20250830000000")
        assert result.exit_code == 0
        assert "Nothing to apply" in result.output

    def test_down_reverts(self, invoke):
        invoke("up", "--to", "20250830000000")
        result = invoke("down", "1")
        assert result.exit_code == 0, result.output
        assert "reverted 20250830000000 InitialSchema" in result.output
        assert "Current version: empty" in result.output

    def test_down_on_empty_database(self, invoke):
        result = invoke("down")
        assert result.exit_code == 0
        assert "Nothing to revert" in result.output

    def test_unknown_target_exits_nonzero(self, invoke):
        result = invoke("up", "--to", "20991231000000")
        assert result.exit_code == 1
        assert "unknown target step 20991231000000" in result.output


class TestStatus:
    def test_lists_steps(self, invoke):
        invoke("up", "--to", "20250830000000")
        result = invoke("status")
        assert result.exit_code == 0, result.output
        assert "InitialSchema" in result.output
        assert "AddPerroTable" in result.output
        assert "yes" in result.output
        assert "no" in result.output


class TestVerifyAndDiff:
    def test_modeled_verification(self):
        result = runner.invoke(cli.app, ["verify"])
        assert result.exit_code == 0, result.output
        assert f"OK {len(load_steps())} step(s) verified" in result.output

    def test_no_drift_on_empty_database(self, invoke):
        result = invoke("diff")
        assert result.exit_code == 0, result.output
        assert "No drift at version empty" in result.output

    def test_drift_reported(self, invoke, engine):
        with engine.begin() as conn:
            conn.execute(sa.text('CREATE TABLE "Stray" ("Id" INTEGER NOT NULL PRIMARY KEY)'))
        result = invoke("diff")
        assert result.exit_code == 1
        assert "Stray" in result.output


class TestNew:
    def test_scaffolds_after_last_step(self, tmp_path, monkeypatch):
        shutil.copy(VERSIONS_DIR / "20250830000000_initial_schema.py", tmp_path)
        monkeypatch.setattr(cli, "step_id_for", lambda: "20251001120000")

        result = runner.invoke(cli.app, ["new", "AddInvoiceTable", "--directory", str(tmp_path)])

        assert result.exit_code == 0, result.output
        created = tmp_path / "20251001120000_add_invoice_table.py"
        source = created.read_text()
        assert 'revision = "20251001120000"' in source
        assert 'down_revision = "20250830000000"' in source
        assert 'name = "AddInvoiceTable"' in source

    def test_first_step_has_no_parent(self, tmp_path, monkeypatch):
        monkeypatch.setattr(cli, "step_id_for", lambda: "20251001120000")
        result = runner.invoke(cli.app, ["new", "Bootstrap", "--directory", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "down_revision = None" in (tmp_path / "20251001120000_bootstrap.py").read_text()

    def test_scaffold_must_be_filled_in(self, tmp_path, monkeypatch):
        monkeypatch.setattr(cli, "step_id_for", lambda: "20251001120000")
        runner.invoke(cli.app, ["new", "Bootstrap", "--directory", str(tmp_path)])
        with pytest.raises(MigrationDefinitionError, match="no operations"):
            load_steps(tmp_path)


class TestConfiguration:
    @pytest.mark.parametrize("command", ["up", "down", "status", "diff"])
    def test_missing_database_url_is_reported(self, command, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        result = runner.invoke(cli.app, [command])
        assert result.exit_code == 1
        assert "DATABASE_URL is required to run migrations" in result.output
        assert not isinstance(result.exception, RuntimeError)

    def test_invalid_url_is_reported(self):
        result = runner.invoke(cli.app, ["status", "--database-url", "not a url://"])
        assert result.exit_code == 1
        assert not isinstance(result.exception, ArgumentError)


class TestRunId:
    def test_run_id_does_not_outlive_the_command(self, invoke):
        assert get_correlation_id() == ""
        result = invoke("status")
        assert result.exit_code == 0, result.output
        assert get_correlation_id() == ""
