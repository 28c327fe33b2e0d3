"""Translate termination signals into a cancellation token.

The signal handler does one thing: set the token.  Whatever loop drives the
scheduler checks the token at its iteration boundary and returns, and the
supervisor performs the actual cleanup afterwards, outside signal context.

    SIGTERM / SIGINT ──► ShutdownToken.trigger(signum)
                              │
                              ├── threading.Event.set()     (poll loop wakes from wait())
                              └── wakers()                  (timer loop: asyncio.Event.set)

The supervisor subscribes once before its backend runs and unsubscribes
only after ``shutdown()`` has released every lock, so a second signal
during teardown lands on the token rather than on the default action.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)


class ShutdownToken:
    """Cancellation token set once by a signal or an explicit request."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._wakers: list[Callable[[], Any]] = []
        self._previous: dict[int, Any] = {}
        self.signum: int | None = None

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def trigger(self, signum: int | None = None) -> None:
        """Request shutdown.  Safe to call repeatedly; the first signal wins."""
        if self.signum is None and signum is not None:
            self.signum = signum
        self._event.set()
        for waker in list(self._wakers):
            waker()

    def add_waker(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` whenever the token is triggered."""
        self._wakers.append(callback)

    def remove_waker(self, callback: Callable[[], Any]) -> None:
        if callback in self._wakers:
            self._wakers.remove(callback)

    @property
    def signal_name(self) -> str | None:
        if self.signum is None:
            return None
        return signal.Signals(self.signum).name

    # === Subscription ===

    def subscribe(self) -> None:
        """Install ``signal.signal`` handlers for SIGTERM and SIGINT.

        Calling it again while subscribed does nothing.  The handlers stay
        in place until :meth:`unsubscribe`, so repeated signals only set
        the token again.
        """
        if self._previous:
            return
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._previous[int(sig)] = signal.signal(sig, self._handle_signal)
            except ValueError:
                # Not in the main thread; shutdown() must be called explicitly.
                logger.warning("Cannot install handler for %s outside the main thread", sig.name)

    @property
    def subscribed(self) -> bool:
        return bool(self._previous)

    def unsubscribe(self) -> None:
        """Put back the handlers that :meth:`subscribe` replaced."""
        for signum, previous in self._previous.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.trigger(signum)


def restore_default_signals() -> None:
    """Reset SIGTERM/SIGINT/SIGCHLD to their defaults.  Used in forked children."""
    for sig in (*SHUTDOWN_SIGNALS, signal.SIGCHLD):
        signal.signal(sig, signal.SIG_DFL)
    try:
        signal.set_wakeup_fd(-1)
    except ValueError:
        # Not the main thread; there is no wakeup fd to detach.
        return
