"""Tests for the bizstore CLI."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from bizstore.cli import app
from tests.conftest import FakeRemote


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def patched_layer(layer):
    with patch("bizstore.cli._make_layer", return_value=layer):
        yield layer


class TestStatusCommand:
    def test_status_table(self, cli_runner, patched_layer):
        result = cli_runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Mode: online" in result.output
        assert "Local Cache" in result.output
        assert "advance_records" in result.output

    def test_status_json(self, cli_runner, patched_layer):
        result = cli_runner.invoke(app, ["status", "--json"])

        assert result.exit_code == 0
        assert '"online": true' in result.output
        assert '"initialized": true' in result.output

    def test_status_offline(self, cli_runner, make_layer):
        layer = make_layer(FakeRemote(reachable=False))
        with patch("bizstore.cli._make_layer", return_value=layer):
            result = cli_runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Mode: offline" in result.output


class TestTablesCommand:
    def test_lists_registry(self, cli_runner):
        result = cli_runner.invoke(app, ["tables"])

        assert result.exit_code == 0
        assert "Tables (14)" in result.output
        assert "salary_payments" in result.output

    def test_verbose_flag(self, cli_runner):
        result = cli_runner.invoke(app, ["--verbose", "tables"])
        assert result.exit_code == 0


class TestConfigCommand:
    def test_shows_settings(self, cli_runner):
        result = cli_runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "bizstore Configuration" in result.output
        assert "Supabase key" in result.output


class TestBackupCommands:
    def test_backup_writes_file(self, cli_runner, patched_layer, remote, tmp_path):
        remote.tables["customers"].append({"id": "c1", "name": "Ravi"})
        output = tmp_path / "backup.json"

        result = cli_runner.invoke(app, ["backup", "--output", str(output)])

        assert result.exit_code == 0
        assert "Backup written" in result.output
        document = json.loads(output.read_text())
        assert document["customers"] == [{"id": "c1", "name": "Ravi"}]

    def test_restore_with_yes(self, cli_runner, patched_layer, remote, tmp_path):
        remote.tables["customers"].append({"id": "old", "name": "Old"})
        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"customers": [{"id": "c1", "name": "Ravi"}]}))

        result = cli_runner.invoke(app, ["restore", str(path), "--yes"])

        assert result.exit_code == 0
        assert "Backup restored" in result.output
        assert [r["id"] for r in remote.tables["customers"]] == ["c1"]

    def test_restore_cancelled(self, cli_runner, patched_layer, remote, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"customers": []}))
        remote.tables["customers"].append({"id": "keep"})

        result = cli_runner.invoke(app, ["restore", str(path)], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert remote.tables["customers"] == [{"id": "keep"}]

    def test_restore_missing_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(app, ["restore", str(tmp_path / "nope.json"), "--yes"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_restore_malformed_file(self, cli_runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{oops")

        result = cli_runner.invoke(app, ["restore", str(path), "--yes"])

        assert result.exit_code == 1


class TestStatsCommand:
    def test_stats_table(self, cli_runner, patched_layer, remote):
        remote.tables["bills"].append({"id": "b1", "total_amount": 1180, "status": "pending"})

        result = cli_runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "Total Sales" in result.output
        assert "1,180.00" in result.output

    def test_stats_json(self, cli_runner, patched_layer):
        result = cli_runner.invoke(app, ["stats", "--json"])

        assert result.exit_code == 0
        assert '"total_sales": 0.0' in result.output
