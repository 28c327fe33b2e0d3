"""Scheduling package for cronspine.

Manifesto:
    A cron-like daemon embedded in a host program needs more than
    ``time.sleep()`` in a loop.  It needs a job that cannot overlap
    itself (lock files), work that cannot take the scheduler down with
    it (fork per run), and a shutdown that leaves no stale locks behind
    (signal-to-token translation plus an idempotent cleanup).

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRONSPINE SCHEDULER                                                          │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cronspine.scheduling import Supervisor                        │   │
│  │                                                                      │   │
│  │   def export(supervisor):                                            │   │
│  │       build_nightly_export()                                         │   │
│  │                                                                      │   │
│  │   supervisor = Supervisor("exports")                                 │   │
│  │   supervisor.job("0 2 * * *", export, name="nightly")                │   │
│  │   supervisor.job("every 10 seconds", "echo heartbeat")               │   │
│  │                                                                      │   │
│  │   raise SystemExit(supervisor.start())                               │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Architecture:                                                                │
│   ┌──────────────┐   fire_job()   ┌──────────────────────────────┐           │
│   │  Backend     │ ─────────────► │   Supervisor                 │           │
│   │  (timing)    │                │  ┌──────────┐ ┌───────────┐  │           │
│   └──────────────┘                │  │ Jobs     │ │ LockMgr   │  │           │
│   • Timer (default)               │  │          │ │ (files)   │  │           │
│   • Poll                          │  └──────────┘ └───────────┘  │           │
│                                   │         ┌──────────────┐     │           │
│   SIGTERM/SIGINT ──► token ──────►│         │ ForkExecutor │     │           │
│                                   │         └──────────────┘     │           │
│                                   └──────────────────────────────┘           │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: cron expression evaluation                                      │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a job in the scheduling process
    ✅ ``ForkExecutor.spawn()`` forks one child per attempt
    ❌ Cleaning up inside a signal handler
    ✅ ``ShutdownToken`` is set; ``Supervisor.shutdown()`` runs afterwards
    ❌ Queueing a job whose previous run is still going
    ✅ ``try_lock`` fails, the attempt is skipped and logged at debug level

Tags:
    cronspine, scheduling, cron, fork, lock-files, graceful-shutdown,
    pluggable-backends, timer, poll

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from typing import Any

from cronspine.core.config import WorkerSettings, get_settings

# Executor
from .executor import ForkExecutor, exit_status

# Job
from .job import Command, ExternalCommand, InProcessCommand, Job, as_command

# Lock Manager
from .lock_manager import FileLockManager

# Output
from .output import LoggingOutput, OutputSink, Verbosity

# Backends
from .poll_backend import PollDriveBackend

# Protocol
from .protocol import BackendHealth, DriveBackend

# Schedule
from .schedule import (
    CronSchedule,
    IntervalSchedule,
    Schedule,
    compute_next_run_time,
    parse_schedule,
    seconds_until,
)

# Signals
from .signals import ShutdownToken, restore_default_signals

# Stats
from .stats import StatsReporter, format_uptime, peak_memory_bytes

# Supervisor
from .supervisor import (
    Supervisor,
    SupervisorHealth,
    SupervisorState,
    SupervisorStats,
    create_backend,
)
from .timer_backend import TimerDriveBackend

__all__ = [
    # Protocol
    "DriveBackend",
    "BackendHealth",
    # Backends
    "TimerDriveBackend",
    "PollDriveBackend",
    "create_backend",
    # Schedule
    "Schedule",
    "CronSchedule",
    "IntervalSchedule",
    "parse_schedule",
    "compute_next_run_time",
    "seconds_until",
    # Job
    "Job",
    "Command",
    "InProcessCommand",
    "ExternalCommand",
    "as_command",
    # Lock Manager
    "FileLockManager",
    # Executor
    "ForkExecutor",
    "exit_status",
    # Signals
    "ShutdownToken",
    "restore_default_signals",
    # Output
    "OutputSink",
    "LoggingOutput",
    "Verbosity",
    # Stats
    "StatsReporter",
    "format_uptime",
    "peak_memory_bytes",
    # Supervisor
    "Supervisor",
    "SupervisorState",
    "SupervisorStats",
    "SupervisorHealth",
    "create_supervisor",
]


def create_supervisor(
    name: str | None = None,
    settings: WorkerSettings | None = None,
    **overrides: Any,
) -> Supervisor:
    """Factory function to create a supervisor from settings.

    Args:
        name: Worker name (default: ``settings.name``)
        settings: Settings to use (default: :func:`get_settings`)
        **overrides: Any :class:`Supervisor` keyword argument

    Returns:
        Configured Supervisor in the ``CREATED`` state

    Example:
        >>> supervisor = create_supervisor("reports", drive_mode="poll")
        >>> supervisor.job("@hourly", "echo hourly")
        >>> supervisor.start()
    """
    return Supervisor(name, settings=settings or get_settings(), **overrides)
