"""Pytest fixtures for scheduling tests."""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from cronspine.core.config import WorkerSettings
from cronspine.scheduling import FileLockManager, PollDriveBackend, Supervisor, Verbosity


class RecordingOutput:
    """OutputSink that keeps every line in memory."""

    def __init__(self, debug: bool = True) -> None:
        self._debug = debug
        self.lines: list[tuple[str, Verbosity, dict[str, Any]]] = []
        self.raw: list[str] = []

    @property
    def is_debug(self) -> bool:
        return self._debug

    def writeln(self, message: str, level: Verbosity = Verbosity.NORMAL, **fields: Any) -> None:
        self.lines.append((message, level, fields))

    def write(self, text: str) -> None:
        self.raw.append(text)

    def flush(self) -> None:
        pass

    def messages(self, level: Verbosity | None = None) -> list[str]:
        return [message for message, lvl, _ in self.lines if level is None or lvl == level]


class FakeClock:
    """Settable clock for supervisors."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def lock_dir(tmp_path):
    path = tmp_path / "locks"
    path.mkdir()
    return path


@pytest.fixture
def lock_manager(lock_dir):
    return FileLockManager(lock_dir, namespace="test-worker")


@pytest.fixture
def output():
    return RecordingOutput()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def settings(lock_dir):
    return WorkerSettings(name="test-worker", lock_dir=lock_dir, _env_file=None)


@pytest.fixture
def supervisor(settings, output, clock):
    """Supervisor on a poll backend whose executor does not fork."""
    sup = Supervisor(settings=settings, output=output, clock=clock, backend=PollDriveBackend(0.01))
    spawned: list[tuple[str, datetime]] = []

    def fake_spawn(job, now):
        pid = 10_000 + len(spawned)
        spawned.append((job.id, now))
        sup.children[pid] = job
        return pid

    sup.executor.spawn = fake_spawn
    sup.spawned = spawned
    return sup
