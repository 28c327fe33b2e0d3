"""Tests for the ``cronspine`` CLI."""

from __future__ import annotations

import json
import os
import textwrap

import pytest
import structlog
from typer.testing import CliRunner

from cronspine import __version__
from cronspine.cli.app import app
from cronspine.scheduling import FileLockManager

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"cronspine {__version__}" in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "start" in result.output
        assert "locks" in result.output


class TestNext:
    def test_cron_preview(self):
        result = runner.invoke(app, ["next", "*/5 * * * *", "--after", "2025-01-01T12:02:00", "--count", "2"])
        assert result.exit_code == 0
        assert "2025-01-01T12:05:00+00:00" in result.output
        assert "2025-01-01T12:10:00+00:00" in result.output

    def test_interval_preview(self):
        result = runner.invoke(app, ["next", "every 90 seconds", "--after", "2025-01-01T12:00:00", "-n", "1"])
        assert result.exit_code == 0
        assert "2025-01-01T12:01:30+00:00" in result.output

    def test_timezone(self):
        result = runner.invoke(
            app, ["next", "0 9 * * *", "--after", "2025-01-01T00:00:00", "-n", "1", "--tz", "Europe/Paris"]
        )
        assert result.exit_code == 0
        assert "2025-01-01T08:00:00+00:00" in result.output

    def test_invalid_expression(self):
        result = runner.invoke(app, ["next", "whenever"])
        assert result.exit_code == 1


class TestLocks:
    def test_list_empty(self, tmp_path):
        result = runner.invoke(app, ["locks", "list", "--name", "w", "--lock-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No locks held" in result.output

    def test_list_json(self, tmp_path):
        FileLockManager(tmp_path, namespace="w").try_lock("nightly")
        result = runner.invoke(app, ["locks", "list", "--name", "w", "--lock-dir", str(tmp_path), "--json"])
        assert result.exit_code == 0
        locks = json.loads(result.output)
        assert len(locks) == 1
        assert locks[0]["holder_pid"] == os.getpid()

    def test_list_table(self, tmp_path):
        FileLockManager(tmp_path, namespace="w").try_lock("nightly")
        result = runner.invoke(app, ["locks", "list", "--name", "w", "--lock-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert str(os.getpid()) in result.output

    def test_list_uses_settings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CRONSPINE_NAME", "from-env")
        monkeypatch.setenv("CRONSPINE_LOCK_DIR", str(tmp_path))
        FileLockManager(tmp_path, namespace="from-env").try_lock("a")
        result = runner.invoke(app, ["locks", "list", "--json"])
        assert len(json.loads(result.output)) == 1

    def test_clear_with_yes(self, tmp_path):
        manager = FileLockManager(tmp_path, namespace="w")
        manager.try_lock("a")
        manager.try_lock("b")
        result = runner.invoke(app, ["locks", "clear", "--name", "w", "--lock-dir", str(tmp_path), "--yes"])
        assert result.exit_code == 0
        assert "Removed 2" in result.output
        assert manager.list_active_locks() == []

    def test_clear_declined(self, tmp_path):
        manager = FileLockManager(tmp_path, namespace="w")
        manager.try_lock("a")
        result = runner.invoke(app, ["locks", "clear", "--name", "w", "--lock-dir", str(tmp_path)], input="n\n")
        assert result.exit_code == 1
        assert manager.is_locked("a")

    def test_clear_nothing(self, tmp_path):
        result = runner.invoke(app, ["locks", "clear", "--name", "w", "--lock-dir", str(tmp_path), "--yes"])
        assert result.exit_code == 0
        assert "Nothing to clear" in result.output


JOBS_MODULE = textwrap.dedent(
    """
    from cronspine.scheduling import Supervisor


    class StopAtOnce:
        name = "stop-at-once"

        def run(self, supervisor, token):
            token.trigger()

        def health(self):
            return {"healthy": True, "backend": self.name}


    def build():
        supervisor = Supervisor(backend=StopAtOnce())
        supervisor.job("@daily", "echo nightly", name="nightly")
        return supervisor


    supervisor = build()
    not_a_supervisor = 42
    """
)


class TestStart:
    @pytest.fixture
    def jobs_module(self, tmp_path, request):
        name = f"jobs_{request.node.name.replace('[', '_').replace(']', '_')}"
        (tmp_path / f"{name}.py").write_text(JOBS_MODULE)
        return name

    def test_start_instance(self, jobs_module):
        result = runner.invoke(app, ["start", f"{jobs_module}:supervisor"])
        assert result.exit_code == 0, result.output
        assert "Starting cronspine worker" in result.output

    def test_start_factory(self, jobs_module):
        result = runner.invoke(app, ["start", f"{jobs_module}:build"])
        assert result.exit_code == 0, result.output

    def test_options_become_settings(self, jobs_module, tmp_path):
        result = runner.invoke(app, ["start", f"{jobs_module}:build", "--lock-dir", str(tmp_path / "custom")])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "custom").is_dir()

    @pytest.mark.parametrize("target", ["no_colon", "missing_module_xyz:supervisor"])
    def test_bad_target(self, target):
        result = runner.invoke(app, ["start", target])
        assert result.exit_code == 2

    def test_not_a_supervisor(self, jobs_module):
        result = runner.invoke(app, ["start", f"{jobs_module}:not_a_supervisor"])
        assert result.exit_code == 2

    def test_missing_attribute(self, jobs_module):
        result = runner.invoke(app, ["start", f"{jobs_module}:nope"])
        assert result.exit_code == 2
