"""
Component enumerations for the worker daemon.

Each enum represents one pluggable dimension of a worker.  Values are plain
strings so they can be set from ``CRONSPINE_*`` environment variables.

Example::

    from cronspine.core.config.components import DriveMode

    DriveMode("poll")   # DriveMode.POLL
"""

from __future__ import annotations

from enum import Enum


class DriveMode(str, Enum):
    """How the scheduling loop decides that a job is due.

    ``TIMER`` arms one event-loop timer per job and is the default.
    ``POLL`` scans every job once per ``poll_interval_seconds``.
    """

    TIMER = "timer"
    POLL = "poll"


class LogFormat(str, Enum):
    """Supported log renderers."""

    CONSOLE = "console"
    JSON = "json"
