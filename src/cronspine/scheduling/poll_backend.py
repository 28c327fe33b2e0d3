"""Fixed-interval polling drive backend.

┌──────────────────────────────────────────────────────────────────────────────┐
│  POLL BACKEND                                                                 │
│                                                                               │
│   run(supervisor, token)                                                      │
│      │  token set by Supervisor.start()'s SIGTERM/SIGINT handlers             │
│      ▼                                                                        │
│   while not token.is_set():                                                   │
│       tick_count += 1                                                         │
│       reap finished children                                                  │
│       for job in jobs (registration order):                                   │
│           if job.is_due(now): supervisor.fire_job(job, now)                   │
│       stats report if its interval elapsed                                    │
│       token.wait(interval)  ◄──── returns early on SIGTERM/SIGINT             │
│      │                                                                        │
│      ▼                                                                        │
│   return; the supervisor runs shutdown() with the handlers still installed    │
└──────────────────────────────────────────────────────────────────────────────┘

The loop runs in the calling thread; the supervisor is single-threaded and
gets its parallelism from fork.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cronspine.core.errors import is_fatal

from .output import Verbosity
from .protocol import BackendHealth

if TYPE_CHECKING:
    from .signals import ShutdownToken
    from .supervisor import Supervisor

logger = logging.getLogger(__name__)


class PollDriveBackend:
    """Checks every job once per ``interval_seconds``.

    Example:
        >>> backend = PollDriveBackend(interval_seconds=1.0)
        >>> supervisor = Supervisor("reports", backend=backend)
        >>> supervisor.register_job("every 5 seconds", "echo tick")
        >>> supervisor.start()  # blocks until SIGTERM/SIGINT
    """

    name = "poll"

    def __init__(self, interval_seconds: float = 1.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._interval = interval_seconds
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._running = False

    def run(self, supervisor: Supervisor, token: ShutdownToken) -> None:
        """Poll until ``token`` is set.

        Raises:
            ForkError: If a fork failed during a pass.
        """
        self._running = True
        logger.info("PollDriveBackend started (interval=%ss)", self._interval)
        try:
            while not token.is_set():
                self.tick(supervisor)
                if token.wait(self._interval):
                    break
        finally:
            self._running = False
            logger.info("PollDriveBackend stopped")

    def tick(self, supervisor: Supervisor) -> None:
        """One pass over all jobs."""
        now = supervisor.clock()
        self._tick_count += 1
        self._last_tick = now

        supervisor.reap_children()
        for job in supervisor.jobs:
            if not job.is_due(now):
                supervisor.output.writeln(
                    "Skipped: The job is not ready to run.",
                    Verbosity.DEBUG,
                    job_id=job.id,
                    next_run_time=job.next_run_time.isoformat() if job.next_run_time else None,
                )
                continue
            try:
                supervisor.fire_job(job, now)
            except Exception as e:
                if is_fatal(e):
                    raise
                logger.exception("Firing job %s failed: %s", job.id, e)

        reporter = supervisor.stats_reporter
        if reporter is not None and reporter.is_due(now):
            reporter.report(now)

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        return BackendHealth(
            healthy=self._running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval},
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count
