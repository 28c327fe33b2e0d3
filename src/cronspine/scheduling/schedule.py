"""Schedule expressions and next-run computation.

Manifesto:
    Next-run computation is a pure data operation: same expression, same
    ``after`` instant, same answer.  Keeping it free of clocks and I/O
    lets both drive modes (timer and poll) share it and lets tests pin
    time without patching anything.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE EXPRESSIONS                                                         │
│                                                                               │
│  parse_schedule(expr) ──► CronSchedule | IntervalSchedule                    │
│                                                                               │
│  Cron (croniter):                                                             │
│    "*/5 * * * *"          minute hour day-of-month month day-of-week          │
│    "*/10 * * * * *"       six fields, trailing seconds                        │
│    "@hourly", "@daily"    croniter aliases                                    │
│                                                                               │
│  Interval:                                                                    │
│    "every 1 second", "every 5 minutes", "every 2h", "@every 1h30m"           │
│    30, 0.5, timedelta(minutes=1)                                             │
│                                                                               │
│  compute_next_run_time(schedule, after) ──► datetime (UTC, > after)          │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    cronspine, scheduling, cron, croniter, interval, pure-function

Doc-Types:
    api-reference
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterError, croniter

from cronspine.core.errors import InvalidScheduleError

_UNIT_SECONDS: dict[str, float] = {
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
}

_INTERVAL_PREFIX = re.compile(r"^(?:@every|every)\b\s*", re.IGNORECASE)
_DURATION = re.compile(r"(?:\d+(?:\.\d+)?\s*[a-z]+\s*)+")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")


def utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _zone(timezone: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidScheduleError(timezone, reason="unknown timezone", cause=exc) from exc


@dataclass(frozen=True)
class CronSchedule:
    """Cron expression evaluated in ``timezone``."""

    expression: str
    timezone: str = "UTC"

    def next_after(self, after: datetime) -> datetime:
        """Next matching instant strictly after ``after``, in UTC."""
        local = _ensure_aware(after).astimezone(_zone(self.timezone))
        try:
            itr = croniter(self.expression, local)
            candidate = itr.get_next(datetime)
            while candidate <= local:
                candidate = itr.get_next(datetime)
        except (CroniterError, ValueError, KeyError) as exc:
            raise InvalidScheduleError(self.expression, reason=str(exc), cause=exc) from exc
        return candidate.astimezone(UTC)

    def __str__(self) -> str:
        return self.expression


@dataclass(frozen=True)
class IntervalSchedule:
    """Fixed period, anchored on the ``after`` instant it is asked about."""

    seconds: float
    expression: str | None = field(default=None, compare=False)
    _interval: timedelta = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        label = self.expression if self.expression is not None else self.seconds
        if not math.isfinite(self.seconds) or self.seconds <= 0:
            raise InvalidScheduleError(label, reason="interval must be a positive, finite number of seconds")
        try:
            interval = timedelta(seconds=self.seconds)
            utcnow() + interval
        except OverflowError as exc:
            raise InvalidScheduleError(label, reason="interval is too large", cause=exc) from exc
        object.__setattr__(self, "_interval", interval)

    @property
    def interval(self) -> timedelta:
        return self._interval

    def next_after(self, after: datetime) -> datetime:
        try:
            return _ensure_aware(after).astimezone(UTC) + self._interval
        except OverflowError as exc:
            raise InvalidScheduleError(str(self), reason="next run is out of range", cause=exc) from exc

    def __str__(self) -> str:
        if self.expression:
            return self.expression
        return f"every {self.seconds:g}s"


Schedule = Union[CronSchedule, IntervalSchedule]


def _parse_duration(text: str, expression: str) -> float:
    text = text.strip().lower()
    if not text:
        raise InvalidScheduleError(expression, reason="missing interval")

    # "every second", "every minute"
    if text in _UNIT_SECONDS:
        return _UNIT_SECONDS[text]

    if not _DURATION.fullmatch(text):
        raise InvalidScheduleError(expression, reason="cannot parse interval")

    total = 0.0
    for amount, unit in _DURATION_PART.findall(text):
        if unit not in _UNIT_SECONDS:
            raise InvalidScheduleError(expression, reason=f"unknown unit {unit!r}")
        total += float(amount) * _UNIT_SECONDS[unit]
    return total


def parse_schedule(expression: Any, timezone: str | None = None) -> Schedule:
    """Resolve a schedule expression into a :data:`Schedule`.

    Args:
        expression: cron string, interval string, positive number of
            seconds, positive ``timedelta``, or an existing schedule.
        timezone: IANA zone used for cron evaluation (default ``UTC``).

    Raises:
        InvalidScheduleError: If the expression cannot be resolved.
    """
    if isinstance(expression, (CronSchedule, IntervalSchedule)):
        return expression

    if isinstance(expression, bool):
        raise InvalidScheduleError(expression, reason="booleans are not schedules")

    if isinstance(expression, (int, float)):
        try:
            seconds = float(expression)
        except OverflowError as exc:
            raise InvalidScheduleError(expression, reason="interval is too large", cause=exc) from exc
        return IntervalSchedule(seconds)

    if isinstance(expression, timedelta):
        return IntervalSchedule(expression.total_seconds(), expression=str(expression))

    if not isinstance(expression, str):
        raise InvalidScheduleError(expression, reason=f"unsupported type {type(expression).__name__}")

    text = expression.strip()
    if not text:
        raise InvalidScheduleError(expression, reason="empty expression")

    prefix = _INTERVAL_PREFIX.match(text)
    if prefix:
        seconds = _parse_duration(text[prefix.end():], expression)
        return IntervalSchedule(seconds, expression=text)

    tz = timezone or "UTC"
    _zone(tz)
    if not croniter.is_valid(text):
        raise InvalidScheduleError(expression, reason="not a valid cron expression")
    return CronSchedule(text, timezone=tz)


def compute_next_run_time(schedule: Any, after: datetime) -> datetime:
    """Compute the next run time strictly after ``after``.

    Pure and deterministic for a given ``schedule`` and ``after``.

    Raises:
        InvalidScheduleError: If ``schedule`` is a raw expression that
            cannot be parsed.

    Example:
        >>> compute_next_run_time("*/5 * * * *", datetime(2025, 1, 1, 12, 2, tzinfo=UTC))
        datetime.datetime(2025, 1, 1, 12, 5, tzinfo=datetime.timezone.utc)
    """
    return parse_schedule(schedule).next_after(after)


def seconds_until(moment: datetime, now: datetime) -> float:
    """Non-negative number of seconds from ``now`` until ``moment``."""
    delta = (_ensure_aware(moment) - _ensure_aware(now)).total_seconds()
    return max(delta, 0.0)
