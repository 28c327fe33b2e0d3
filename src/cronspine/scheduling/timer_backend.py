"""Per-job timer drive backend (default).

┌──────────────────────────────────────────────────────────────────────────────┐
│  TIMER BACKEND                                                                │
│                                                                               │
│   asyncio.run(_serve)                                                         │
│      │  token.add_waker(wake)          handlers owned by Supervisor.start()  │
│      │  SIGCHLD ──► supervisor.reap_children()                               │
│      ▼                                                                        │
│   for job in jobs:                                                            │
│       handles[job.id] = loop.call_later(seconds_until(next_run_time), fire)   │
│                                                                               │
│   fire(job):                                                                  │
│       supervisor.fire_job(job, now, rearm=arm)                                │
│            ├── last/next run time updated                                     │
│            ├── arm(job)           next timer armed before the fork           │
│            └── try_lock ──► fork | skip                                       │
│                                                                               │
│   await stopped.wait()  ◄──── token waker (SIGTERM/SIGINT or shutdown())     │
│      │                                                                        │
│      ▼                                                                        │
│   cancel every handle, token.remove_waker(wake)                               │
└──────────────────────────────────────────────────────────────────────────────┘

Each job owns exactly one pending handle at any time, so the loop sleeps
until the earliest job is due instead of waking every second.  A
``ForkError`` raised inside a callback stops the loop and is re-raised by
``run()`` once the loop has been torn down.

SIGTERM/SIGINT handlers belong to the supervisor, which keeps them until
its lock cleanup is done.  Registering SIGCHLD with the loop also points
the wakeup fd at it, so those handlers run without waiting for a timer.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cronspine.core.errors import is_fatal

from .job import Job
from .output import Verbosity
from .protocol import BackendHealth
from .schedule import seconds_until

if TYPE_CHECKING:
    from .signals import ShutdownToken
    from .supervisor import Supervisor

logger = logging.getLogger(__name__)

# Timers run on the monotonic clock; a wall clock stepped backwards makes
# them fire early, and such a fire is re-armed instead of run.
EARLY_FIRE_TOLERANCE_SECONDS = 0.5


class TimerDriveBackend:
    """One ``loop.call_later`` handle per job on a private asyncio loop.

    ``run()`` creates its own loop with :func:`asyncio.run`, so it must be
    called from synchronous code in the main thread (the usual place for a
    daemon's entry point).
    """

    name = "timer"

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._stats_handle: asyncio.TimerHandle | None = None
        self._stopped: asyncio.Event | None = None
        self._fatal: BaseException | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._running = False

    def run(self, supervisor: Supervisor, token: ShutdownToken) -> None:
        """Serve timers until ``token`` is set.

        Raises:
            ForkError: If a fork failed inside a timer callback.
        """
        self._fatal = None
        asyncio.run(self._serve(supervisor, token))
        if self._fatal is not None:
            fatal, self._fatal = self._fatal, None
            raise fatal

    async def _serve(self, supervisor: Supervisor, token: ShutdownToken) -> None:
        loop = asyncio.get_running_loop()
        stopped = asyncio.Event()
        self._stopped = stopped

        def wake() -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(stopped.set)

        token.add_waker(wake)
        reaping = self._watch_children(loop, supervisor)
        self._running = True
        logger.info("TimerDriveBackend started (%d jobs)", len(supervisor.jobs))
        try:
            if token.is_set():
                return
            for job in supervisor.jobs:
                self._arm(loop, supervisor, job)
            if supervisor.stats_reporter is not None:
                self._arm_stats(loop, supervisor)
            await stopped.wait()
        finally:
            self._cancel_all()
            if reaping:
                loop.remove_signal_handler(signal.SIGCHLD)
            token.remove_waker(wake)
            self._running = False
            self._stopped = None
            logger.info("TimerDriveBackend stopped")

    def _watch_children(self, loop: asyncio.AbstractEventLoop, supervisor: Supervisor) -> bool:
        try:
            loop.add_signal_handler(signal.SIGCHLD, supervisor.reap_children)
        except (RuntimeError, ValueError):
            logger.debug("SIGCHLD handler unavailable, reaping on each timer fire only")
            return False
        return True

    # === Timers ===

    def _arm(self, loop: asyncio.AbstractEventLoop, supervisor: Supervisor, job: Job) -> None:
        if job.next_run_time is None:
            return
        delay = seconds_until(job.next_run_time, supervisor.clock())
        previous = self._handles.pop(job.id, None)
        if previous is not None:
            previous.cancel()
        self._handles[job.id] = loop.call_later(delay, self._fire, loop, supervisor, job)
        supervisor.output.writeln(
            "Timer armed.",
            Verbosity.DEBUG,
            job_id=job.id,
            next_run_time=job.next_run_time.isoformat(),
            delay_seconds=round(delay, 3),
        )

    def _fire(self, loop: asyncio.AbstractEventLoop, supervisor: Supervisor, job: Job) -> None:
        self._handles.pop(job.id, None)
        if self._stopped is None or self._stopped.is_set():
            return

        now = supervisor.clock()
        if job.next_run_time is not None and seconds_until(job.next_run_time, now) > EARLY_FIRE_TOLERANCE_SECONDS:
            self._arm(loop, supervisor, job)
            return

        self._tick_count += 1
        self._last_tick = now
        supervisor.reap_children()
        try:
            supervisor.fire_job(job, now, rearm=lambda fired: self._arm(loop, supervisor, fired))
        except Exception as e:
            if is_fatal(e):
                self._fatal = e
                self._stopped.set()
                return
            logger.exception("Firing job %s failed: %s", job.id, e)
            if job.id not in self._handles:
                self._arm(loop, supervisor, job)

    def _arm_stats(self, loop: asyncio.AbstractEventLoop, supervisor: Supervisor) -> None:
        reporter = supervisor.stats_reporter
        assert reporter is not None

        def report() -> None:
            reporter.report(supervisor.clock())
            self._arm_stats(loop, supervisor)

        self._stats_handle = loop.call_later(reporter.interval_seconds, report)

    def _cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        if self._stats_handle is not None:
            self._stats_handle.cancel()
            self._stats_handle = None

    # === Health ===

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        return BackendHealth(
            healthy=self._running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"armed_timers": len(self._handles)},
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def armed_job_ids(self) -> list[str]:
        return list(self._handles)
