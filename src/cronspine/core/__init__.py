"""Core primitives shared by the scheduler and the CLI: errors, logging, settings."""

from .errors import (
    ConfigError,
    CronSpineError,
    ErrorCategory,
    ErrorContext,
    ForkError,
    InvalidScheduleError,
    JobRegistrationError,
    LockError,
    UnsupportedCommandError,
)
from .logging import LogContext, configure_logging, get_logger

__all__ = [
    "ConfigError",
    "CronSpineError",
    "ErrorCategory",
    "ErrorContext",
    "ForkError",
    "InvalidScheduleError",
    "JobRegistrationError",
    "LockError",
    "UnsupportedCommandError",
    "LogContext",
    "configure_logging",
    "get_logger",
]
