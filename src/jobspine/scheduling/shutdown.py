"""Graceful shutdown: stop claiming, then drain in-flight jobs."""

from __future__ import annotations

import threading
import time

from jobspine.core.logging import get_logger

from .dispatcher import ActiveJobCounter
from .poller import DueJobPoller

logger = get_logger(__name__)


class ShutdownCoordinator:
    """Stops the poller, then waits for the active-job counter to reach zero.

    There is no mid-execution cancellation: in-flight jobs always finish and
    record their outcome. ``timeout`` bounds the wait only; jobs still
    running when it expires keep running.
    """

    def __init__(
        self,
        poller: DueJobPoller,
        counter: ActiveJobCounter,
        poll_interval: float = 0.1,
    ) -> None:
        self._poller = poller
        self._counter = counter
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._drained = False

    @property
    def drained(self) -> bool:
        return self._drained

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop new claims and block until in-flight jobs finish.

        Returns:
            True once drained, False if *timeout* expired first
        """
        with self._lock:
            started = time.monotonic()
            self._poller.stop()

            in_flight = self._counter.value
            if in_flight:
                logger.info("draining_jobs", in_flight=in_flight)

            remaining = None
            if timeout is not None:
                remaining = max(timeout - (time.monotonic() - started), 0.0)

            drained = self._counter.wait_for_zero(remaining, self._poll_interval)
            if drained:
                self._drained = True
                logger.info("shutdown_complete", waited_seconds=round(time.monotonic() - started, 3))
            else:
                logger.warning("shutdown_timed_out", in_flight=self._counter.value, timeout=timeout)
            return drained
