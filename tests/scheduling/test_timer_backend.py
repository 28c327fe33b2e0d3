"""Tests for TimerDriveBackend."""

import os
import signal
import threading

import pytest

from cronspine.core.errors import ForkError
from cronspine.scheduling import DriveBackend, ShutdownToken, Supervisor, TimerDriveBackend
from cronspine.scheduling.schedule import utcnow


def _noop(supervisor):
    return None


@pytest.fixture
def live_supervisor(settings, output):
    """Supervisor on the wall clock whose executor does not fork."""
    backend = TimerDriveBackend()
    sup = Supervisor(settings=settings, output=output, backend=backend)
    spawned = []

    def fake_spawn(job, now):
        spawned.append(job.id)
        job.unlock()
        return 1

    sup.executor.spawn = fake_spawn
    sup.spawned = spawned
    return sup


def _stop_after(token, seconds):
    timer = threading.Timer(seconds, token.trigger)
    timer.start()
    return timer


class TestTimerDriveBackend:
    def test_implements_protocol(self):
        backend = TimerDriveBackend()
        assert isinstance(backend, DriveBackend)
        assert backend.name == "timer"

    def test_health_before_run(self):
        health = TimerDriveBackend().health()
        assert health["healthy"] is False
        assert health["tick_count"] == 0
        assert health["armed_timers"] == 0


class TestRun:
    def test_fires_jobs_repeatedly(self, live_supervisor):
        job = live_supervisor.register_job(0.05, _noop, name="fast")
        job.next_run_time = utcnow()
        token = ShutdownToken()
        _stop_after(token, 0.4)

        live_supervisor.backend.run(live_supervisor, token)

        assert live_supervisor.spawned.count("fast") >= 2
        assert job.next_run_time > job.last_run_time
        assert live_supervisor.backend.armed_job_ids == []
        assert not live_supervisor.backend.is_running

    def test_slow_job_does_not_fire(self, live_supervisor):
        fast = live_supervisor.register_job(0.05, _noop, name="fast")
        slow = live_supervisor.register_job("@yearly", _noop, name="slow")
        now = utcnow()
        fast.next_run_time = now
        slow.next_run_time = slow.schedule.next_after(now)
        token = ShutdownToken()
        _stop_after(token, 0.2)

        live_supervisor.backend.run(live_supervisor, token)

        assert "slow" not in live_supervisor.spawned
        assert "fast" in live_supervisor.spawned

    def test_returns_when_token_already_set(self, live_supervisor):
        job = live_supervisor.register_job(0.01, _noop)
        job.next_run_time = utcnow()
        token = ShutdownToken()
        token.trigger()

        live_supervisor.backend.run(live_supervisor, token)

        assert live_supervisor.spawned == []

    def test_fork_error_stops_loop_and_is_raised(self, live_supervisor):
        job = live_supervisor.register_job(0.01, _noop)
        job.next_run_time = utcnow()

        def failing_spawn(job, now):
            raise ForkError("no fork")

        live_supervisor.executor.spawn = failing_spawn
        token = ShutdownToken()
        guard = _stop_after(token, 5)
        try:
            with pytest.raises(ForkError):
                live_supervisor.backend.run(live_supervisor, token)
        finally:
            guard.cancel()
        assert not live_supervisor.backend.is_running

    def test_stats_timer(self, settings, output):
        sup = Supervisor(settings=settings, output=output, backend=TimerDriveBackend(), stats_enabled=True,
                         stats_interval_seconds=0.05)
        sup.stats_reporter.start(utcnow())
        token = ShutdownToken()
        _stop_after(token, 0.3)

        sup.backend.run(sup, token)

        assert sup.stats_reporter.report_count >= 2
        assert "Stats report." in output.messages()

    def test_sigterm_stops_loop(self, live_supervisor):
        job = live_supervisor.register_job("@yearly", _noop)
        job.next_run_time = job.schedule.next_after(utcnow())
        token = ShutdownToken()
        guard = _stop_after(token, 5)
        token.subscribe()
        try:
            threading.Timer(0.1, os.kill, (os.getpid(), signal.SIGTERM)).start()
            live_supervisor.backend.run(live_supervisor, token)
        finally:
            token.unsubscribe()
            guard.cancel()

        assert token.signal_name == "SIGTERM"

    def test_leaves_shutdown_handlers_alone(self, live_supervisor):
        def sentinel(signum, frame):
            pass

        previous = signal.signal(signal.SIGTERM, sentinel)
        try:
            token = ShutdownToken()
            _stop_after(token, 0.1)
            live_supervisor.backend.run(live_supervisor, token)
            assert signal.getsignal(signal.SIGTERM) is sentinel
        finally:
            signal.signal(signal.SIGTERM, previous)
