"""Output sink used by the worker for progress and diagnostic lines.

The scheduler never prints directly.  It writes leveled lines to an
``OutputSink`` (job init, lock/unlock, fork, skip reasons) and raw command
output through ``write``.  ``LoggingOutput`` is the default sink: leveled
lines become structlog events, raw output goes to a text stream.
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import Any, Protocol, TextIO, runtime_checkable

from cronspine.core.logging import get_logger


class Verbosity(IntEnum):
    NORMAL = 1
    DEBUG = 2


@runtime_checkable
class OutputSink(Protocol):
    """Leveled writer the worker reports through."""

    @property
    def is_debug(self) -> bool: ...

    def writeln(self, message: str, level: Verbosity = Verbosity.NORMAL, **fields: Any) -> None: ...

    def write(self, text: str) -> None: ...

    def flush(self) -> None: ...


class LoggingOutput:
    """``OutputSink`` backed by :mod:`cronspine.core.logging`.

    ``NORMAL`` lines are logged at info level.  ``DEBUG`` lines are only
    emitted when the sink was created with ``debug=True`` and are logged
    at debug level.
    """

    def __init__(self, debug: bool = False, stream: TextIO | None = None, name: str = "cronspine") -> None:
        self._debug = debug
        self._stream = stream
        self._logger = get_logger(name)

    @property
    def is_debug(self) -> bool:
        return self._debug

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capture and forked children see the live stdout.
        return self._stream or sys.stdout

    def writeln(self, message: str, level: Verbosity = Verbosity.NORMAL, **fields: Any) -> None:
        if level >= Verbosity.DEBUG:
            if self._debug:
                self._logger.debug(message, **fields)
            return
        self._logger.info(message, **fields)

    def write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def flush(self) -> None:
        self.stream.flush()
        if self.stream is not sys.stderr:
            sys.stderr.flush()
