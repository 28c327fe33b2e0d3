"""Drive backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DRIVE BACKEND PROTOCOL                                                       │
│                                                                               │
│  Backends control WHEN a job is looked at; the Supervisor controls WHAT      │
│  happens when it is (reschedule, lock, fork).                                │
│                                                                               │
│   ┌─────────────────┐   advance_job() + arm + dispatch_job()                 │
│   │  Timer Backend  │ ─────────────────────────────────┐                     │
│   │  (default)      │   one asyncio timer per job       │                     │
│   └─────────────────┘                                   ▼                     │
│                                              ┌─────────────────────┐          │
│   ┌─────────────────┐   fire_job()           │  Supervisor         │          │
│   │  Poll Backend   │ ─────────────────────► │  - reschedule       │          │
│   │                 │   fixed-interval pass   │  - try_lock / skip  │          │
│   └─────────────────┘                        │  - fork executor    │          │
│                                              └─────────────────────┘          │
│                                                                               │
│  Both backends:                                                               │
│  - block the calling thread until the ShutdownToken is set                   │
│  - observe the token; Supervisor.start() owns the SIGTERM/SIGINT handlers     │
│  - reap finished children without blocking                                   │
│  - re-raise ForkError after leaving their loop                               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .signals import ShutdownToken
    from .supervisor import Supervisor


@runtime_checkable
class DriveBackend(Protocol):
    """Protocol for the loops that drive a Supervisor.

    Implementations:
        - TimerDriveBackend: one asyncio timer per job (default)
        - PollDriveBackend: fixed-interval pass over all jobs

    Example (custom backend):
        >>> class OnceBackend:
        ...     name = "once"
        ...
        ...     def run(self, supervisor, token):
        ...         now = supervisor.clock()
        ...         for job in supervisor.jobs:
        ...             supervisor.fire_job(job, now)
        ...
        ...     def health(self) -> dict:
        ...         return {"healthy": True, "backend": "once"}
    """

    name: str

    def run(self, supervisor: Supervisor, token: ShutdownToken) -> None:
        """Drive ``supervisor`` until ``token`` is set.

        Raises:
            ForkError: If a fork failed; the loop stops first.
        """
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool, whether the loop is running
                - backend: str, backend name
                - tick_count: int, number of passes or timer fires
                - last_tick: str | None, ISO timestamp of the last one
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
