"""Due-job poller.

Each tick is one transactional claim followed by a dispatch per claimed
job. A tick never waits for dispatched jobs, and a failing tick is logged
and forgotten; the next tick starts from scratch.

On start the poller runs one claim pass immediately instead of waiting for
the first tick. That pass picks up jobs that became due while no worker was
running.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from jobspine.core.logging import get_logger
from jobspine.core.models import Job, utcnow
from jobspine.core.protocols import JobStore

from .protocol import SchedulerBackend

logger = get_logger(__name__)


@dataclass
class PollerStats:
    """Statistics for the poller."""

    tick_count: int = 0
    jobs_claimed: int = 0
    jobs_dispatched: int = 0
    errors: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "jobs_claimed": self.jobs_claimed,
            "jobs_dispatched": self.jobs_dispatched,
            "errors": self.errors,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


class DueJobPoller:
    """Claims due jobs on every backend tick and hands them to *dispatch*.

    Args:
        store: Job store providing ``claim_due_jobs``
        backend: Timing backend producing ticks
        dispatch: Called once per claimed job; must not block on execution
        clock: Source of "now" for the due predicate
    """

    def __init__(
        self,
        store: JobStore,
        backend: SchedulerBackend,
        dispatch: Callable[[Job], Any],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.backend = backend
        self._dispatch = dispatch
        self._clock = clock
        self._stopped = threading.Event()
        self._tick_lock = threading.RLock()
        self.stats = PollerStats()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("poller_already_running")
            return
        self._stopped.clear()
        self._running = True
        logger.info("poller_starting", backend=self.backend.name)
        self.tick()
        self.backend.start(self.tick)

    def stop(self) -> None:
        """Stop ticking; a tick in progress finishes before this returns.

        Also refuses later manual ``tick()`` calls, even if never started.
        """
        self._stopped.set()
        if not self._running:
            return
        self.backend.stop()
        # Wait out a tick that outlived the backend join
        with self._tick_lock:
            self._running = False
        logger.info("poller_stopped", **self.stats.to_dict())

    def tick(self) -> int:
        """Run one claim pass. Returns the number of jobs claimed."""
        with self._tick_lock:
            if self._stopped.is_set():
                return 0

            now = self._clock()
            self.stats.tick_count += 1
            self.stats.last_tick = now

            try:
                jobs = self._store.claim_due_jobs(now)
            except Exception as e:
                self.stats.errors += 1
                self.stats.last_error = str(e)
                logger.error("poll_failed", error=str(e), exc_type=type(e).__name__)
                return 0

            if not jobs:
                logger.debug("no_jobs_due")
                return 0

            self.stats.jobs_claimed += len(jobs)
            logger.info("jobs_due", count=len(jobs))

            for job in jobs:
                try:
                    self._dispatch(job)
                    self.stats.jobs_dispatched += 1
                except Exception as e:
                    self.stats.errors += 1
                    self.stats.last_error = str(e)
                    logger.exception("dispatch_failed", job_id=job.id, error=str(e))

            return len(jobs)
