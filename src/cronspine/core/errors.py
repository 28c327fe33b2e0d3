"""
Structured error types for cronspine.

Provides a small hierarchy of typed errors with enough metadata to decide
how far a failure is allowed to spread: a malformed schedule rejects one
registration, an unsupported command kills one forked child, and a fork
failure takes the whole supervisor down.

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure domain
    - **Explicit Blast Radius:** Each error knows whether it is process-fatal
    - **Rich Context:** Errors carry job id, pid and lock path for logging
    - **Error Chaining:** Preserve the original ``OSError`` as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      CronSpineError                             │
        │             (category, fatal, context, cause)                    │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ScheduleError        ExecutionError        RegistrationError   │
        │  (SCHEDULE)           (EXECUTION)           (REGISTRATION)      │
        │       │                    │                      │              │
        │  InvalidScheduleError ForkError (fatal)     JobRegistrationError│
        │                       UnsupportedCommandError                   │
        │                                                                  │
        │  LockError            ConfigError                               │
        │  (LOCK)               (CONFIG)                                  │
        └─────────────────────────────────────────────────────────────────┘

    Lock contention is deliberately absent: a job whose lock is held is
    skipped for the cycle and logged at debug level, it never raises.

Examples:
    >>> error = InvalidScheduleError("every banana", reason="unknown unit")
    >>> error.category
    <ErrorCategory.SCHEDULE: 'SCHEDULE'>
    >>> error.fatal
    False

    >>> try:
    ...     raise OSError(11, "Resource temporarily unavailable")
    ... except OSError as e:
    ...     error = ForkError("fork() failed", cause=e).with_context(job_id="backup")
    >>> error.fatal
    True
    >>> error.context.job_id
    'backup'

Tags:
    error-handling, exception-hierarchy, cronspine, fork, scheduling

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    SCHEDULE = "SCHEDULE"
    EXECUTION = "EXECUTION"
    REGISTRATION = "REGISTRATION"
    LOCK = "LOCK"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields end up in :meth:`to_dict`, so a context can be
    created empty and filled in as the error travels up the stack.

    Attributes:
        job_id: Identifier of the job involved
        schedule: Schedule expression involved
        command: Printable form of the job command
        pid: Process id involved (child or supervisor)
        lock_path: Lock file path involved
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    schedule: str | None = None
    command: str | None = None
    pid: int | None = None
    lock_path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "schedule", "command", "pid", "lock_path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CronSpineError(Exception):
    """
    Base exception for all cronspine errors.

    Every instance carries:
    - **category:** ErrorCategory for classification
    - **fatal:** Whether the supervising process must stop
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_fatal`` so call sites
    rarely have to pass them.

    Examples:
        >>> error = CronSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["fatal"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        fatal: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.fatal = fatal if fatal is not None else self.default_fatal
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CronSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ForkError("fork() failed", cause=exc).with_context(job_id=job.id)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "fatal": self.fatal,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SCHEDULE ERRORS
# =============================================================================


class ScheduleError(CronSpineError):
    """Schedule configuration or evaluation error."""

    default_category = ErrorCategory.SCHEDULE


class InvalidScheduleError(ScheduleError):
    """
    Schedule expression cannot be parsed.

    Raised at registration time so a worker never starts with an
    unschedulable job.
    """

    def __init__(self, expression: Any, reason: str | None = None, **kwargs: Any):
        self.expression = expression
        self.reason = reason
        message = f"Invalid schedule expression: {expression!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, **kwargs)
        self.context.schedule = str(expression)


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(CronSpineError):
    """Error while starting or running a job."""

    default_category = ErrorCategory.EXECUTION


class ForkError(ExecutionError):
    """
    The operating system refused to fork.

    Fatal: a forking scheduler that cannot fork makes no forward progress,
    so the supervisor shuts down instead of skipping jobs forever.
    """

    default_fatal = True


class UnsupportedCommandError(ExecutionError):
    """
    A job command is neither an in-process callable nor a command line.

    Fatal to that job only: raised at registration for foreign objects and
    turned into a non-zero child exit status inside the executor.
    """

    def __init__(self, command: Any, message: str | None = None, **kwargs: Any):
        self.command = command
        super().__init__(
            message or f"Unsupported command type: {type(command).__name__}",
            **kwargs,
        )


# =============================================================================
# REGISTRATION / LOCK / CONFIG ERRORS
# =============================================================================


class RegistrationError(CronSpineError):
    """Job registration error."""

    default_category = ErrorCategory.REGISTRATION


class JobRegistrationError(RegistrationError):
    """Duplicate job id or registration after the supervisor started."""

    pass


class LockError(CronSpineError):
    """Lock directory cannot be used (permissions, missing parent...)."""

    default_category = ErrorCategory.LOCK


class ConfigError(CronSpineError):
    """Configuration value is invalid."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_fatal(error: BaseException) -> bool:
    """Check if an error must terminate the supervising process."""
    if isinstance(error, CronSpineError):
        return error.fatal
    return False


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, CronSpineError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.EXECUTION
    if isinstance(error, ValueError):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CronSpineError",
    "ScheduleError",
    "InvalidScheduleError",
    "ExecutionError",
    "ForkError",
    "UnsupportedCommandError",
    "RegistrationError",
    "JobRegistrationError",
    "LockError",
    "ConfigError",
    "is_fatal",
    "categorize_error",
]
