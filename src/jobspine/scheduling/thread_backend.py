"""Threading-based tick backends.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                               │
│                                                                               │
│   start(tick)                                                                 │
│      │                                                                        │
│      ▼                                                                        │
│   Daemon Thread (loop)                                                        │
│      while not stop_event.wait(next_delay()):                                 │
│          tick_count += 1                                                      │
│          last_tick = now()                                                    │
│          tick()          ◄── exceptions logged, loop continues                │
│                                                                               │
│   stop()                                                                      │
│      stop_event.set(); thread.join(timeout)                                   │
│                                                                               │
│  ThreadSchedulerBackend   next_delay() = fixed interval                       │
│  CronSchedulerBackend     next_delay() = seconds until next croniter fire     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from croniter import croniter

from jobspine.core.errors import ConfigError
from jobspine.core.logging import get_logger

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Fixed-interval tick loop on a daemon thread.

    Example:
        >>> backend = ThreadSchedulerBackend(interval_seconds=5.0)
        >>> backend.start(lambda: print("Tick!"))
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, interval_seconds: float = 60.0, join_timeout: float | None = 30.0) -> None:
        if interval_seconds <= 0:
            raise ConfigError(f"interval_seconds must be positive, got {interval_seconds}")
        self._interval = interval_seconds
        self._join_timeout = join_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._started = False
        self._lock = threading.Lock()

    def _next_delay(self) -> float:
        return self._interval

    def _describe(self) -> dict[str, Any]:
        return {"interval_seconds": self._interval}

    def start(self, tick_callback: TickCallback) -> None:
        """Start the tick loop in a daemon thread."""
        if self._started:
            logger.warning("backend_already_started", backend=self.name)
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("backend_started", backend=self.name, **self._describe())
            while not self._stop_event.wait(self._next_delay()):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)

                try:
                    tick_callback()
                except Exception as e:
                    logger.exception("tick_failed", backend=self.name, error=str(e))

            logger.info("backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"jobspine-{self.name}")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the tick loop, waiting for the current tick to complete."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("backend_thread_still_alive", backend=self.name)

        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra=self._describe(),
        )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()


class CronSchedulerBackend(ThreadSchedulerBackend):
    """Tick on a cron expression (default: every minute).

    The delay is recomputed after every tick from the wall clock, so a slow
    tick does not shift later fire times.
    """

    name = "cron"

    def __init__(self, expression: str = "* * * * *", join_timeout: float | None = 30.0) -> None:
        if not croniter.is_valid(expression):
            raise ConfigError(f"Invalid cron expression: {expression!r}").with_context(
                expression=expression
            )
        super().__init__(interval_seconds=60.0, join_timeout=join_timeout)
        self._expression = expression

    @property
    def expression(self) -> str:
        return self._expression

    def next_fire_time(self, now: datetime | None = None) -> datetime:
        base = now or datetime.now(UTC)
        return croniter(self._expression, base).get_next(datetime)

    def _next_delay(self) -> float:
        now = datetime.now(UTC)
        return max((self.next_fire_time(now) - now).total_seconds(), 0.0)

    def _describe(self) -> dict[str, Any]:
        return {"cron": self._expression}
