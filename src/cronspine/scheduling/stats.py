"""Periodic worker statistics.

When enabled, the supervisor reports how long it has been up and how much
memory it has used at its peak, every ``stats_interval_seconds``.  In timer
mode the report is one more loop timer; in poll mode it runs on the first
pass where the interval has elapsed.
"""

from __future__ import annotations

import resource
import sys
from datetime import datetime, timedelta
from typing import Any

from .output import OutputSink


def format_uptime(seconds: float) -> str:
    """``HH:MM:SS``; hours keep growing past 24."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def peak_memory_bytes() -> int:
    """Peak resident set size of this process."""
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS bytes.
    if sys.platform == "darwin":
        return int(usage)
    return int(usage) * 1024


class StatsReporter:
    def __init__(self, output: OutputSink, interval_seconds: float = 60.0) -> None:
        self.output = output
        self.interval_seconds = interval_seconds
        self.boot_time: datetime | None = None
        self.last_report: datetime | None = None
        self.report_count = 0

    def start(self, boot_time: datetime) -> None:
        self.boot_time = boot_time
        self.last_report = boot_time

    def uptime(self, now: datetime) -> float:
        if self.boot_time is None:
            return 0.0
        return (now - self.boot_time).total_seconds()

    def is_due(self, now: datetime) -> bool:
        if self.last_report is None:
            return False
        return now - self.last_report >= timedelta(seconds=self.interval_seconds)

    def snapshot(self, now: datetime) -> dict[str, Any]:
        return {
            "uptime": format_uptime(self.uptime(now)),
            "peak_memory_bytes": peak_memory_bytes(),
        }

    def report(self, now: datetime) -> dict[str, Any]:
        """Write one stats line and return what was written."""
        stats = self.snapshot(now)
        self.output.writeln("Stats report.", **stats)
        self.last_report = now
        self.report_count += 1
        return stats
