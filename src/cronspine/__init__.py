"""
cronspine - a cron-like daemon you embed in your own process.

Register jobs on a :class:`~cronspine.scheduling.Supervisor`, call
``start()``, and each due job runs in a forked child guarded by a lock
file until SIGTERM or SIGINT asks the supervisor to stop.
"""

__version__ = "0.1.0"

from cronspine.scheduling import (  # noqa: E402
    ExternalCommand,
    InProcessCommand,
    Job,
    Supervisor,
    SupervisorState,
    compute_next_run_time,
    create_supervisor,
    parse_schedule,
)

__all__ = [
    "__version__",
    "Supervisor",
    "SupervisorState",
    "Job",
    "InProcessCommand",
    "ExternalCommand",
    "parse_schedule",
    "compute_next_run_time",
    "create_supervisor",
]
