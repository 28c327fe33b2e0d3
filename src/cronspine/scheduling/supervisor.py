"""Supervisor - the daemon's single owner of state.

Manifesto:
    Everything the daemon knows lives on one explicit object: the job
    table, the child table, whether this process is the master, whether
    shutdown already ran.  Signal handlers never touch it; they set a
    token and the drive loop returns.  Cleanup then runs once, in normal
    code, from the master only.

Tags:
    cronspine, scheduling, supervisor, fork, lifecycle, graceful-shutdown

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SUPERVISOR LIFECYCLE                                                         │
│                                                                               │
│   CREATED ── register_job() / job() ...                                       │
│      │                                                                        │
│   start()                                                                     │
│      ▼                                                                        │
│   STARTING   lock dir, initial next_run_time per job, atexit hook            │
│      ▼                                                                        │
│   RUNNING    backend.run(self, token) ── fire_job(job, now)                  │
│      │                                      ├── last_run_time = now          │
│      │                                      ├── next_run_time (no drift)     │
│      │                                      ├── rearm (timer mode)           │
│      │                                      └── try_lock ─► fork | skip      │
│      │  SIGTERM / SIGINT / shutdown() / ForkError                             │
│      ▼                                                                        │
│   SHUTTING_DOWN   unlock every job whose lock file exists (once)             │
│      ▼                                                                        │
│   STOPPED                                                                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import atexit
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from cronspine.core.config import DriveMode, WorkerSettings, get_settings
from cronspine.core.errors import (
    ConfigError,
    CronSpineError,
    ForkError,
    JobRegistrationError,
    LockError,
    categorize_error,
    is_fatal,
)
from cronspine.core.logging import LogContext

from .executor import ForkExecutor
from .job import Job, as_command
from .lock_manager import FileLockManager
from .output import LoggingOutput, OutputSink, Verbosity
from .poll_backend import PollDriveBackend
from .protocol import BackendHealth, DriveBackend
from .schedule import compute_next_run_time, parse_schedule, utcnow
from .signals import ShutdownToken
from .stats import StatsReporter
from .timer_backend import TimerDriveBackend


class SupervisorState(str, Enum):
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass
class SupervisorStats:
    """Counters for fire attempts since start."""

    fired: int = 0
    spawned: int = 0
    skipped: int = 0
    failed: int = 0
    reaped: int = 0
    last_fire: datetime | None = None
    last_error: str | None = None


@dataclass
class SupervisorHealth:
    """Health status for a supervisor."""

    healthy: bool
    state: SupervisorState
    backend: BackendHealth | dict
    jobs: int = 0
    running_children: int = 0
    locked_jobs: list[str] = field(default_factory=list)
    stats: SupervisorStats = field(default_factory=SupervisorStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "state": self.state.value,
            "backend": self.backend.to_dict() if isinstance(self.backend, BackendHealth) else self.backend,
            "jobs": self.jobs,
            "running_children": self.running_children,
            "locked_jobs": self.locked_jobs,
            "stats": {
                "fired": self.stats.fired,
                "spawned": self.stats.spawned,
                "skipped": self.stats.skipped,
                "failed": self.stats.failed,
                "reaped": self.stats.reaped,
            },
        }


def create_backend(drive_mode: DriveMode | str, poll_interval_seconds: float = 1.0) -> DriveBackend:
    """Build the drive backend for ``drive_mode``.

    Raises:
        ConfigError: For an unknown mode.
    """
    try:
        mode = DriveMode(drive_mode)
    except ValueError as exc:
        raise ConfigError(f"Unknown drive mode: {drive_mode!r}", cause=exc) from exc

    if mode is DriveMode.POLL:
        return PollDriveBackend(interval_seconds=poll_interval_seconds)
    return TimerDriveBackend()


class Supervisor:
    """Cron-like daemon embedded in the host process.

    Jobs are registered up front; ``start()`` then blocks, forking one
    child per due job, until SIGTERM or SIGINT arrives.

    Example:
        >>> def cleanup(supervisor):
        ...     remove_stale_exports()
        ...
        >>> supervisor = Supervisor("reports", lock_dir="/var/run/reports")
        >>> supervisor.job("*/5 * * * *", cleanup, name="cleanup")
        >>> supervisor.job("every 30 seconds", "/usr/local/bin/rotate-logs")
        >>> raise SystemExit(supervisor.start())
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        lock_dir: str | os.PathLike[str] | None = None,
        drive_mode: DriveMode | str | None = None,
        poll_interval_seconds: float | None = None,
        timezone: str | None = None,
        debug: bool | None = None,
        stats_enabled: bool | None = None,
        stats_interval_seconds: float | None = None,
        output: OutputSink | None = None,
        backend: DriveBackend | None = None,
        settings: WorkerSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize a supervisor.

        Keyword arguments override the matching :class:`WorkerSettings`
        field; anything left as ``None`` comes from ``settings`` (or
        :func:`get_settings` when no settings object is given).
        """
        settings = settings or get_settings()

        self.name = name or settings.name
        self.timezone = timezone or settings.timezone
        self.debug = settings.debug if debug is None else debug
        self.lock_dir = Path(lock_dir) if lock_dir is not None else settings.lock_dir
        self.output: OutputSink = output or LoggingOutput(debug=self.debug, name=self.name)
        self.clock = clock

        if backend is None:
            backend = create_backend(
                drive_mode or settings.drive_mode,
                poll_interval_seconds or settings.poll_interval_seconds,
            )
        self.backend = backend

        enabled = settings.stats_enabled if stats_enabled is None else stats_enabled
        self.stats_reporter: StatsReporter | None = None
        if enabled:
            self.stats_reporter = StatsReporter(
                self.output, stats_interval_seconds or settings.stats_interval_seconds
            )

        self.lock_manager = FileLockManager(self.lock_dir, namespace=self.name)
        self.executor = ForkExecutor(self)
        self.token = ShutdownToken()

        self.jobs: list[Job] = []
        self.children: dict[int, Job] = {}
        self.state = SupervisorState.CREATED
        self.is_master = True
        self.finished = False
        self.exit_code: int | None = None
        self.boot_time: datetime | None = None

        self._stats = SupervisorStats()
        self._atexit_registered = False

    # === Registration ===

    def register_job(self, schedule: Any, command: Any, name: str | None = None) -> Job:
        """Register a job.  Only allowed before :meth:`start`.

        Args:
            schedule: Cron string, interval string, seconds, or timedelta
            command: Callable (receives this supervisor) or shell command line
            name: Job id; defaults to the registration ordinal ("0", "1", ...)

        Raises:
            JobRegistrationError: Registration after start, or duplicate id
            InvalidScheduleError: Unparseable schedule
            UnsupportedCommandError: Command neither callable nor string
        """
        if self.state is not SupervisorState.CREATED:
            raise JobRegistrationError(
                f"Cannot register jobs once the supervisor is {self.state.value}"
            )

        job_id = str(name) if name is not None else str(len(self.jobs))
        if any(job.id == job_id for job in self.jobs):
            raise JobRegistrationError(f"Duplicate job id: {job_id!r}").with_context(job_id=job_id)

        job = Job(
            id=job_id,
            schedule=parse_schedule(schedule, self.timezone),
            command=as_command(command),
            lock_manager=self.lock_manager,
        )
        self.jobs.append(job)
        self.output.writeln("Registered a job.", Verbosity.DEBUG, job_id=job.id, schedule=str(job.schedule))
        return job

    def job(self, schedule: Any, command: Any, name: str | None = None) -> Supervisor:
        """Fluent form of :meth:`register_job`."""
        self.register_job(schedule, command, name=name)
        return self

    def get_job(self, job_id: str) -> Job | None:
        for job in self.jobs:
            if job.id == job_id:
                return job
        return None

    # === Lifecycle ===

    def start(self) -> int:
        """Boot and run until a shutdown signal.

        SIGTERM and SIGINT handlers stay installed from boot until
        :meth:`shutdown` has released the locks.  Every log line written
        meanwhile, including those of forked children, carries ``worker``.

        Returns:
            The exit code, 0 after a graceful shutdown.

        Raises:
            ForkError: After shutting down with exit code 1.
        """
        if self.state is not SupervisorState.CREATED:
            raise CronSpineError(f"Supervisor {self.name} was already started")

        with LogContext(worker=self.name):
            self.token.subscribe()
            try:
                self._boot()
                self._serve()
            finally:
                # Only after the lock walk, so a repeated signal never hits SIG_DFL.
                self.token.unsubscribe()
        return self.exit_code if self.exit_code is not None else 0

    def _boot(self) -> None:
        self.state = SupervisorState.STARTING
        self.output.writeln(f"Starting {self.name}.", drive_mode=self.backend.name, jobs=len(self.jobs))
        self.lock_manager.ensure_lock_dir()

        self.boot_time = self.clock()
        for job in self.jobs:
            job.next_run_time = compute_next_run_time(job.schedule, self.boot_time)
            self.output.writeln(
                "Initializing a job.",
                job_id=job.id,
                schedule=str(job.schedule),
                command=job.command.describe(),
                next_run_time=job.next_run_time.isoformat(),
            )
        if self.stats_reporter is not None:
            self.stats_reporter.start(self.boot_time)

        if not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True

        self.state = SupervisorState.RUNNING
        self.output.writeln("Successfully booted. Quit working with CONTROL-C.")

    def _serve(self) -> None:
        try:
            self.backend.run(self, self.token)
        except Exception as exc:
            if is_fatal(exc):
                self.output.writeln(
                    "Fatal error, shutting down.",
                    category=categorize_error(exc).value,
                    error=exc.to_dict(),
                )
            self.shutdown(exit_code=1)
            raise
        except BaseException:
            self.shutdown(exit_code=1)
            raise

        if self.token.signal_name:
            self.output.writeln(f"Got {self.token.signal_name}.")
        self.shutdown(exit_code=0)

    def request_shutdown(self) -> None:
        """Ask the running loop to stop, as SIGTERM would."""
        self.token.trigger()

    def shutdown(self, exit_code: int = 0) -> None:
        """Release held job locks and stop.

        Idempotent and master-only: forked children and repeated calls
        (double signal, atexit after start() returned) do nothing.
        """
        if not self.is_master or self.finished:
            return
        self.finished = True
        self.state = SupervisorState.SHUTTING_DOWN
        self.exit_code = exit_code
        self.token.trigger()

        for job in self.jobs:
            if not job.locked:
                continue
            try:
                if job.unlock():
                    self.output.writeln("Job unlock: removed file.", Verbosity.DEBUG, job_id=job.id, path=str(job.lock_path))
            except OSError as e:
                self.output.writeln("Cannot remove lock file.", job_id=job.id, error=str(e))

        self.output.writeln(f"Shutdown {self.name}.", exit_code=exit_code)
        self.output.flush()
        self.state = SupervisorState.STOPPED

    @property
    def is_running(self) -> bool:
        return self.state is SupervisorState.RUNNING

    # === Firing ===

    def advance_job(self, job: Job, now: datetime) -> None:
        """Record an attempt at ``now`` and compute the next run time.

        Anchored on the previous ``next_run_time`` so a late fire does not
        drift the schedule; falls back to ``now`` when that anchor has
        already been passed by a whole period.
        """
        job.last_run_time = now
        anchor = job.next_run_time or now
        next_run = job.schedule.next_after(anchor)
        if next_run <= now:
            next_run = job.schedule.next_after(now)
        job.next_run_time = next_run

    def dispatch_job(self, job: Job, now: datetime) -> int | None:
        """Lock ``job`` and fork a child for it.

        Returns:
            Child pid, or None when the job was skipped.

        Raises:
            ForkError: The lock is released again before it propagates.
        """
        try:
            acquired = job.lock()
        except LockError as exc:
            self._stats.failed += 1
            self._stats.last_error = str(exc)
            self.output.writeln("Cannot lock the job.", job_id=job.id, error=exc.to_dict())
            return None

        if not acquired:
            self._stats.skipped += 1
            self.output.writeln(
                "Skipped: The job is already running.",
                Verbosity.DEBUG,
                job_id=job.id,
                next_run_time=job.next_run_time.isoformat() if job.next_run_time else None,
            )
            return None

        self.output.writeln("Job lock: created file.", Verbosity.DEBUG, job_id=job.id, path=str(job.lock_path))
        try:
            pid = self.executor.spawn(job, now)
        except ForkError as exc:
            job.unlock()
            self._stats.failed += 1
            self._stats.last_error = str(exc)
            raise

        self._stats.spawned += 1
        return pid

    def fire_job(
        self,
        job: Job,
        now: datetime,
        rearm: Callable[[Job], Any] | None = None,
    ) -> int | None:
        """Handle a due job: reschedule, then lock and fork.

        ``rearm`` runs between the two steps; the timer backend uses it to
        arm the next timer before the fork happens.
        """
        self._stats.fired += 1
        self._stats.last_fire = now
        self.advance_job(job, now)
        if rearm is not None:
            rearm(job)
        return self.dispatch_job(job, now)

    def reap_children(self) -> list[tuple[int, int]]:
        finished = self.executor.reap()
        self._stats.reaped += len(finished)
        return finished

    # === Health & Stats ===

    def health(self) -> SupervisorHealth:
        backend_health = self.backend.health()
        return SupervisorHealth(
            healthy=self.is_running and backend_health.get("healthy", False),
            state=self.state,
            backend=backend_health,
            jobs=len(self.jobs),
            running_children=len(self.children),
            locked_jobs=[job.id for job in self.jobs if job.locked],
            stats=self._stats,
        )

    def get_stats(self) -> SupervisorStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SupervisorStats()

    def __repr__(self) -> str:
        return f"Supervisor(name={self.name!r}, state={self.state.value}, jobs={len(self.jobs)})"
