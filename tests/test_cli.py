"""Unit tests for inkwell.cli — command parsing and execution."""

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import inspect

import inkwell.cli as cli_mod
from inkwell.db.base import engine_registry
from inkwell.db.session import CORE_ENGINE


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Temp project dir with an inkwell.yaml pointing at a SQLite file."""
    (tmp_path / "inkwell.yaml").write_text(
        "platform:\n"
        "  environment: dev\n"
        "database:\n"
        f"  url: sqlite:///{tmp_path / 'cli.db'}\n"
        "logging:\n"
        f"  directory: {tmp_path / 'logs'}\n"
        "retention:\n"
        "  sweep_cron: '15 3 * * *'\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    engine_registry.dispose()


class TestCLIParsing:
    def test_module_has_expected_commands(self):
        assert hasattr(cli_mod, "cmd_init")
        assert hasattr(cli_mod, "cmd_sweep")
        assert hasattr(cli_mod, "cmd_schedule")
        assert hasattr(cli_mod, "cmd_logs")

    def test_no_command_prints_help(self, capsys):
        assert cli_mod.main([]) == 0
        assert "usage: inkwell" in capsys.readouterr().out

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            cli_mod.main(["frobnicate"])


class TestCmdInit:
    def test_creates_tables(self, project, capsys):
        assert cli_mod.main(["init"]) == 0

        out = capsys.readouterr().out
        assert "[OK] Loaded config (dev)" in out
        assert "[OK] Database tables created" in out

        tables = set(inspect(engine_registry.get(CORE_ENGINE)).get_table_names())
        assert {"documents", "blocks", "document_versions", "comments", "user_preferences"} <= tables

    def test_explicit_config_path(self, project, tmp_path, capsys):
        assert cli_mod.main(["init", "--config", str(project / "inkwell.yaml")]) == 0

    def test_bad_config(self, tmp_path, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text("history:\n  max_versions: 3\n", encoding="utf-8")
        assert cli_mod.main(["init", "--config", str(bad)]) == 1
        assert "[ERROR] Failed to load config" in capsys.readouterr().out


class TestCmdSweep:
    def _report(self, failures):
        report = MagicMock()
        report.failures = failures
        report.to_dict.return_value = {"documents_scanned": 2, "failures": failures}
        return report

    def test_prints_report(self, project, capsys):
        with patch("inkwell.documents.retention.RetentionService") as service_cls:
            service_cls.return_value.sweep_all.return_value = self._report([])
            assert cli_mod.main(["sweep"]) == 0

        service_cls.return_value.sweep_all.assert_called_once_with(trigger="cli")
        assert json.loads(capsys.readouterr().out)["documents_scanned"] == 2

    def test_failures_exit_nonzero(self, project):
        with patch("inkwell.documents.retention.RetentionService") as service_cls:
            service_cls.return_value.sweep_all.return_value = self._report([{"document_id": 1}])
            assert cli_mod.main(["sweep"]) == 1

    def test_runs_against_empty_database(self, project, capsys):
        assert cli_mod.main(["init"]) == 0
        capsys.readouterr()

        assert cli_mod.main(["sweep"]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["documents_scanned"] == 0
        assert report["failures"] == []


class TestCmdSchedule:
    def test_lists_sweep(self, project, capsys):
        assert cli_mod.main(["schedule"]) == 0
        out = capsys.readouterr().out
        assert "daily-version-sweep: 15 3 * * * (UTC)" in out
        assert "inkwell.process.executor.daily_version_sweep_task" in out


class TestCmdLogs:
    def _write(self, project):
        from inkwell.engine.logging import FileLogger, log_version_event

        fl = FileLogger(log_dir=str(project / "logs"))
        fl.write_batch([
            log_version_event("version_created", 1, "user_1", version_id=10),
            log_version_event("version_created", 2, "user_1", version_id=11),
            log_version_event("version_restored", 1, "user_1", version_id=10),
        ])

    def test_filters_by_document_and_event(self, project, capsys):
        self._write(project)

        assert cli_mod.main(["logs", "versions", "--document", "1"]) == 0
        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [e["event"] for e in lines] == ["version_restored", "version_created"]

        assert cli_mod.main(["logs", "versions", "--event", "version_created", "--limit", "1"]) == 0
        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [e["document_id"] for e in lines] == [2]

    def test_empty(self, project, capsys):
        assert cli_mod.main(["logs", "comments"]) == 0
        assert "No matching log entries." in capsys.readouterr().out

    def test_unknown_object_type(self, project, capsys):
        assert cli_mod.main(["logs", "widgets"]) == 1
        assert "[ERROR] Unknown object type 'widgets'" in capsys.readouterr().out

    def test_unknown_category(self, project, capsys):
        assert cli_mod.main(["logs", "versions", "--category", "performance"]) == 1
