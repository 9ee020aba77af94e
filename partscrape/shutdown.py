"""Stopping a crawl early on SIGINT/SIGTERM.

The first signal sets a flag that crawl workers check before popping their
next task; pages already loading are allowed to finish. A second signal closes
the registered page sessions and exits with status 130.
"""

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional

from partscrape.logging_config import get_logger

__all__ = [
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
    "handle_signals",
]

logger = get_logger("shutdown")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """Process-wide stop flag plus the cleanups a forced exit must run."""

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._cleanups: List[Callable[[], None]] = []
        self._cleanups_lock = threading.Lock()
        self._previous: Dict[int, Any] = {}
        self.received_signal: Optional[str] = None

    @property
    def shutdown_requested(self) -> bool:
        return self._stop.is_set()

    def request_shutdown(self) -> None:
        """Ask workers to stop after their current task."""
        self._stop.set()

    def reset(self) -> None:
        self._stop.clear()
        self.received_signal = None

    def register_cleanup(self, callback: Callable[[], None]) -> None:
        with self._cleanups_lock:
            self._cleanups.append(callback)

    def unregister_cleanup(self, callback: Callable[[], None]) -> None:
        with self._cleanups_lock:
            if callback in self._cleanups:
                self._cleanups.remove(callback)

    def run_cleanups(self) -> None:
        with self._cleanups_lock:
            callbacks, self._cleanups = self._cleanups, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cleanup during forced exit failed: {e}")

    def install(self) -> bool:
        """Take over SIGINT/SIGTERM; False when not on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return False
        for signum in STOP_SIGNALS:
            self._previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._on_signal)
        return True

    def uninstall(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def _on_signal(self, signum: int, frame) -> None:
        name = signal.Signals(signum).name
        if self._stop.is_set():
            logger.error(f"Received {name} again, closing sessions and exiting")
            self.run_cleanups()
            sys.exit(130)

        self.received_signal = name
        logger.warning(f"Received {name}: no new models will be crawled (send again to force quit)")
        self._stop.set()


_handler = ShutdownHandler()


def get_shutdown_handler() -> ShutdownHandler:
    return _handler


def shutdown_requested() -> bool:
    return _handler.shutdown_requested


@contextmanager
def handle_signals() -> Generator[ShutdownHandler, None, None]:
    """Install the stop handlers for the duration of one run."""
    _handler.reset()
    installed = _handler.install()
    try:
        yield _handler
    finally:
        if installed:
            _handler.uninstall()
