"""Periodic maintenance of the store pools, and waiting for shutdown signals."""

from __future__ import annotations

import logging
import signal
import threading
import time
from typing import Callable

from .fst import FSTPool
from .kv import KVPool

__all__ = ["Tasker", "ShutdownSignal"]

logger = logging.getLogger(__name__)

TICK_INTERVAL = 10.0


class Tasker:
    """Runs janitor, flush and consolidate passes at a fixed interval."""

    def __init__(
        self, kv_pool: KVPool, fst_pool: FSTPool, interval: float = TICK_INTERVAL
    ) -> None:
        self.kv_pool = kv_pool
        self.fst_pool = fst_pool
        self.interval = interval

    def tick(self) -> None:
        """Run one maintenance pass over both pools."""
        self.kv_pool.janitor()
        self.fst_pool.janitor()

        self.kv_pool.flush(False)
        self.fst_pool.consolidate(False)

    def run(self, stop_event: threading.Event | None = None) -> int:
        """Tick every ``interval`` seconds until ``stop_event`` is set; return ticks run."""
        stop_event = stop_event or threading.Event()
        logger.info("tasker is now active")
        ticks = 0
        while not stop_event.wait(self.interval):
            logger.debug("running a tasker tick...")
            started = time.monotonic()
            self.tick()
            ticks += 1
            took = time.monotonic() - started
            logger.info(
                "ran tasker tick (took %ds + %dms)", int(took), int((took % 1) * 1000)
            )
        return ticks


def _shutdown_signals() -> list[signal.Signals]:
    names = ("SIGINT", "SIGQUIT", "SIGTERM")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


class ShutdownSignal:
    """Catches interrupt, quit and terminate signals so shutdown can be handled.

    Must be created in the main thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._received: int | None = None
        self._previous: dict[signal.Signals, object] = {}
        for signum in _shutdown_signals():
            self._previous[signum] = signal.signal(signum, self._handle)

    def _handle(self, signum: int, _frame: object) -> None:
        if self._received is None:
            self._received = signum
        self._event.set()

    def __enter__(self) -> ShutdownSignal:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Restore the signal handlers that were in place before."""
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def at_exit(self, handler: Callable[[int], None]) -> None:
        """Block until a shutdown signal arrives, then call ``handler`` with its number."""
        while not self._event.wait(0.1):
            pass
        assert self._received is not None
        handler(int(self._received))