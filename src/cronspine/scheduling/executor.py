"""Fork-per-run job executor.

┌──────────────────────────────────────────────────────────────────────────────┐
│  FORK EXECUTOR                                                                │
│                                                                               │
│   supervisor (master)                                                         │
│        │ lock taken                                                          │
│        ▼                                                                      │
│   spawn(job) ── os.fork() ──┬── parent: children[pid] = job, return pid       │
│        │                    │                                                 │
│        │ OSError            └── child:  is_master = False                     │
│        ▼                                restore default signals               │
│   ForkError (fatal)                     run command ──► status                │
│                                         job.unlock()                          │
│                                         flush stdout/stderr                   │
│                                         os._exit(status)                      │
│                                                                               │
│   reap() ── waitpid(pid, WNOHANG) for each known child ──► [(pid, status)]    │
└──────────────────────────────────────────────────────────────────────────────┘

Exit status of a child:

    InProcessCommand   None -> 0, int -> itself (0..255, else 1),
                       bool -> 0 if true else 1, other -> 0,
                       exception -> 1, SystemExit -> its code
    ExternalCommand    command exit code; killed by signal N -> 128 + N
    anything else      70 (EX_SOFTWARE)

The child never returns into the scheduling loop.  ``os._exit`` skips
atexit hooks, so a child can never run the supervisor's shutdown.
"""

from __future__ import annotations

import logging
import os
import subprocess
from datetime import datetime
from typing import TYPE_CHECKING, Any, NoReturn

from cronspine.core.errors import ForkError, UnsupportedCommandError
from cronspine.core.logging import bind_context

from .job import ExternalCommand, InProcessCommand, Job
from .output import Verbosity
from .signals import restore_default_signals

if TYPE_CHECKING:
    from .supervisor import Supervisor

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNSUPPORTED = 70


def exit_status(result: Any) -> int:
    """Map the return value of an in-process command to an exit status."""
    if result is None:
        return EXIT_SUCCESS
    if isinstance(result, bool):
        return EXIT_SUCCESS if result else EXIT_FAILURE
    if isinstance(result, int):
        return result if 0 <= result <= 255 else EXIT_FAILURE
    return EXIT_SUCCESS


class ForkExecutor:
    """Runs each job attempt in a forked child of the supervisor."""

    def __init__(self, supervisor: Supervisor) -> None:
        self.supervisor = supervisor

    @property
    def output(self):
        return self.supervisor.output

    def spawn(self, job: Job, now: datetime) -> int:
        """Fork a child that runs ``job``.

        The caller must hold the job's lock; the child releases it.

        Returns:
            Pid of the child (in the parent; the child never returns).

        Raises:
            ForkError: If the operating system refuses to fork.
        """
        # Anything still buffered would be written twice, once per process.
        self.output.flush()
        try:
            pid = os.fork()
        except OSError as exc:
            raise ForkError(f"Cannot fork for job {job.id}: {exc}", cause=exc).with_context(
                job_id=job.id, command=job.command.describe()
            ) from exc

        if pid == 0:
            self.run_in_child(job, now)

        self.supervisor.children[pid] = job
        self.output.writeln("Forked a child process.", Verbosity.DEBUG, job_id=job.id, pid=pid)
        return pid

    # === Child side ===

    def run_in_child(self, job: Job, now: datetime) -> NoReturn:
        """Body of the forked child.  Always ends in ``os._exit``."""
        status = EXIT_FAILURE
        try:
            self.supervisor.is_master = False
            restore_default_signals()
            bind_context(job_id=job.id, child_pid=os.getpid())
            self.output.writeln("Running a job.", job_id=job.id, pid=os.getpid(), scheduled_at=now.isoformat())
            status = self.execute(job)
        except UnsupportedCommandError as exc:
            self.output.writeln("Unsupported command.", job_id=job.id, error=exc.to_dict())
            status = EXIT_UNSUPPORTED
        except SystemExit as exc:
            status = EXIT_FAILURE if isinstance(exc.code, str) else exit_status(exc.code)
        except BaseException:  # noqa: BLE001 - nothing may unwind out of a forked child
            logger.exception("Job %s failed", job.id)
            status = EXIT_FAILURE
        finally:
            self._finish_child(job, status)

    def _finish_child(self, job: Job, status: int) -> NoReturn:
        try:
            if job.unlock():
                self.output.writeln("Job unlock: removed file.", Verbosity.DEBUG, job_id=job.id, path=str(job.lock_path))
            self.output.writeln("Job finished.", Verbosity.DEBUG, job_id=job.id, status=status)
        except OSError:
            logger.exception("Cannot release lock for job %s", job.id)
        finally:
            try:
                self.output.flush()
            finally:
                os._exit(status)

    def execute(self, job: Job) -> int:
        """Run the job's command in the current process and return its status.

        Raises:
            UnsupportedCommandError: For a command variant this executor does not know.
        """
        command = job.command
        if isinstance(command, InProcessCommand):
            return exit_status(command.func(self.supervisor))
        if isinstance(command, ExternalCommand):
            return self._run_external(command)
        raise UnsupportedCommandError(command).with_context(job_id=job.id)

    def _run_external(self, command: ExternalCommand) -> int:
        process = subprocess.Popen(
            command.command_line,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
        assert process.stdout is not None
        with process.stdout:
            for line in process.stdout:
                self.output.write(line)
        returncode = process.wait()
        if returncode < 0:
            return 128 - returncode
        return returncode

    # === Parent side ===

    def reap(self) -> list[tuple[int, int]]:
        """Collect finished children without blocking.

        Returns:
            ``(pid, exit_status)`` for every child that has exited
        """
        finished: list[tuple[int, int]] = []
        for pid in list(self.supervisor.children):
            try:
                waited, raw_status = os.waitpid(pid, os.WNOHANG)
            except ChildProcessError:
                # Already collected elsewhere.
                self.supervisor.children.pop(pid, None)
                continue
            if waited == 0:
                continue

            job = self.supervisor.children.pop(pid)
            status = os.waitstatus_to_exitcode(raw_status)
            if status < 0:
                status = 128 - status
            self.output.writeln("Child process exited.", Verbosity.DEBUG, job_id=job.id, pid=pid, status=status)
            finished.append((pid, status))
        return finished
