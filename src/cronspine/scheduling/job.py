"""Job entity and command variants.

A job is registered once, before the supervisor starts, and lives for the
whole process.  Its command is a tagged variant fixed at registration:

    Command = InProcessCommand(callable) | ExternalCommand(command_line)

``as_command`` is the single place where user input is coerced into that
variant; anything else is rejected with ``UnsupportedCommandError`` before
the daemon starts.

Tags:
    cronspine, scheduling, job, command, entity

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Union

from cronspine.core.errors import UnsupportedCommandError

from .schedule import Schedule

if TYPE_CHECKING:
    from pathlib import Path

    from .lock_manager import FileLockManager


@dataclass(frozen=True)
class InProcessCommand:
    """Python callable run inside the forked child.

    Called with the supervisor as its only argument; the return value
    becomes the child's exit status.
    """

    func: Callable[[Any], Any]

    def describe(self) -> str:
        return getattr(self.func, "__qualname__", None) or repr(self.func)


@dataclass(frozen=True)
class ExternalCommand:
    """Shell command line run as a subprocess of the forked child."""

    command_line: str

    def __post_init__(self) -> None:
        if not self.command_line.strip():
            raise UnsupportedCommandError(self.command_line, "Command line cannot be empty")

    def describe(self) -> str:
        return self.command_line


Command = Union[InProcessCommand, ExternalCommand]


def as_command(command: Any) -> Command:
    """Coerce a registration argument into a :data:`Command`.

    Raises:
        UnsupportedCommandError: If ``command`` is neither a string nor callable.
    """
    if isinstance(command, (InProcessCommand, ExternalCommand)):
        return command
    if isinstance(command, str):
        return ExternalCommand(command)
    if callable(command):
        return InProcessCommand(command)
    raise UnsupportedCommandError(command)


@dataclass(eq=False)
class Job:
    """A statically registered job.

    Attributes:
        id: Stable identifier (explicit name or registration ordinal)
        schedule: Parsed schedule expression
        command: In-process callable or external command line
        last_run_time: Most recent fire attempt, skipped attempts included
        next_run_time: Next scheduled fire
    """

    id: str
    schedule: Schedule
    command: Command
    lock_manager: FileLockManager = field(repr=False)
    last_run_time: datetime | None = None
    next_run_time: datetime | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "command" and "command" in self.__dict__:
            raise AttributeError("A job's command cannot change after registration")
        super().__setattr__(name, value)

    @property
    def lock_path(self) -> Path:
        return self.lock_manager.lock_path(self.id)

    @property
    def locked(self) -> bool:
        return self.lock_manager.is_locked(self.id)

    def lock(self) -> bool:
        return self.lock_manager.try_lock(self.id)

    def unlock(self) -> bool:
        return self.lock_manager.unlock(self.id)

    def is_due(self, now: datetime) -> bool:
        """True once ``next_run_time`` is now or in the past."""
        return self.next_run_time is not None and self.next_run_time <= now

    def describe(self) -> str:
        return f"{self.id} [{self.schedule}] {self.command.describe()}"
