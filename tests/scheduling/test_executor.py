"""Tests for ForkExecutor (child body exercised without forking)."""

import os
import subprocess
import sys
import time
from datetime import UTC, datetime

import pytest
import structlog

from cronspine.core.errors import ForkError, UnsupportedCommandError
from cronspine.core.logging import clear_context
from cronspine.scheduling import Job, exit_status, parse_schedule
from cronspine.scheduling.executor import EXIT_UNSUPPORTED

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class _Exited(BaseException):
    def __init__(self, status):
        self.status = status


@pytest.fixture
def child_env(monkeypatch):
    """Make run_in_child observable: no signal reset, os._exit raises."""

    def fake_exit(status):
        raise _Exited(status)

    monkeypatch.setattr("cronspine.scheduling.executor.restore_default_signals", lambda: None)
    monkeypatch.setattr("cronspine.scheduling.executor.os._exit", fake_exit)
    yield
    clear_context()


def _run_child(supervisor, job):
    with pytest.raises(_Exited) as info:
        supervisor.executor.run_in_child(job, NOW)
    return info.value.status


class TestExitStatus:
    @pytest.mark.parametrize(
        "result,expected",
        [
            (None, 0),
            (0, 0),
            (3, 3),
            (255, 255),
            (256, 1),
            (-1, 1),
            (True, 0),
            (False, 1),
            ("done", 0),
            ({"rows": 3}, 0),
        ],
    )
    def test_mapping(self, result, expected):
        assert exit_status(result) == expected


class TestExecute:
    def test_in_process_receives_supervisor(self, supervisor):
        seen = []
        job = supervisor.register_job("* * * * *", lambda sup: seen.append(sup) or 7)
        assert supervisor.executor.execute(job) == 7
        assert seen == [supervisor]

    def test_external_output_is_streamed(self, supervisor, output):
        job = supervisor.register_job("* * * * *", "echo one; echo two 1>&2; exit 3")
        assert supervisor.executor.execute(job) == 3
        assert output.raw == ["one\n", "two\n"]

    def test_external_killed_by_signal(self, supervisor):
        job = supervisor.register_job("* * * * *", "kill -TERM $$")
        assert supervisor.executor.execute(job) == 128 + 15

    def test_unknown_command_variant(self, supervisor, lock_manager):
        job = Job(id="odd", schedule=parse_schedule("* * * * *"), command=object(), lock_manager=lock_manager)
        with pytest.raises(UnsupportedCommandError):
            supervisor.executor.execute(job)


class TestRunInChild:
    def test_success_unlocks_and_exits_with_status(self, supervisor, child_env):
        job = supervisor.register_job("* * * * *", lambda sup: 4)
        job.lock()

        assert _run_child(supervisor, job) == 4
        assert supervisor.is_master is False
        assert not job.locked

    def test_exception_exits_one(self, supervisor, child_env, caplog):
        def broken(sup):
            raise RuntimeError("disk full")

        job = supervisor.register_job("* * * * *", broken)
        job.lock()

        assert _run_child(supervisor, job) == 1
        assert not job.locked
        assert "disk full" in caplog.text

    @pytest.mark.parametrize("code,expected", [(None, 0), (5, 5), ("fatal", 1)])
    def test_sys_exit(self, supervisor, child_env, code, expected):
        job = supervisor.register_job("* * * * *", lambda sup: sys.exit(code))
        assert _run_child(supervisor, job) == expected

    def test_unsupported_command_exits_70_after_unlock(self, supervisor, child_env):
        job = Job(id="odd", schedule=parse_schedule("* * * * *"), command=object(), lock_manager=supervisor.lock_manager)
        job.lock()

        assert _run_child(supervisor, job) == EXIT_UNSUPPORTED
        assert not job.locked

    def test_child_running_line(self, supervisor, child_env, output):
        job = supervisor.register_job("* * * * *", lambda sup: None, name="n")
        _run_child(supervisor, job)
        assert "Running a job." in output.messages()

    def test_child_log_context_carries_job_id(self, supervisor, child_env):
        seen = {}
        job = supervisor.register_job(
            "* * * * *", lambda sup: seen.update(structlog.contextvars.get_contextvars()), name="nightly"
        )
        job.lock()

        assert _run_child(supervisor, job) == 0
        assert seen["job_id"] == "nightly"
        assert seen["child_pid"] == os.getpid()


class TestSpawnAndReap:
    def test_fork_failure_becomes_fork_error(self, settings, output, monkeypatch):
        from cronspine.scheduling import Supervisor

        sup = Supervisor(settings=settings, output=output)
        job = sup.register_job("* * * * *", lambda s: None)

        def no_fork():
            raise OSError(11, "Resource temporarily unavailable")

        monkeypatch.setattr("cronspine.scheduling.executor.os.fork", no_fork)
        with pytest.raises(ForkError) as info:
            sup.executor.spawn(job, NOW)
        assert info.value.fatal
        assert info.value.context.job_id == job.id
        assert sup.children == {}

    def test_reap_collects_finished_children(self, supervisor):
        job = supervisor.register_job("* * * * *", lambda s: None)
        process = subprocess.Popen(["sh", "-c", "exit 4"])
        supervisor.children[process.pid] = job

        deadline = time.monotonic() + 10
        finished = []
        while not finished and time.monotonic() < deadline:
            finished = supervisor.reap_children()
            time.sleep(0.01)

        assert finished == [(process.pid, 4)]
        assert supervisor.children == {}
        assert supervisor.get_stats().reaped == 1
        process.returncode = 4

    def test_reap_leaves_running_children(self, supervisor):
        job = supervisor.register_job("* * * * *", lambda s: None)
        process = subprocess.Popen(["sleep", "5"])
        supervisor.children[process.pid] = job
        try:
            assert supervisor.reap_children() == []
            assert process.pid in supervisor.children
        finally:
            process.kill()
            process.wait()
            supervisor.children.clear()

    def test_reap_forgets_unknown_pids(self, supervisor):
        job = supervisor.register_job("* * * * *", lambda s: None)
        supervisor.children[os.getpid()] = job
        assert supervisor.reap_children() == []
        assert supervisor.children == {}
