"""Scheduler backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOL                                                   │
│                                                                               │
│  Backends control WHEN ticks happen; the DueJobPoller controls WHAT happens  │
│  on each tick (one claim pass + dispatch).                                    │
│                                                                               │
│   ┌──────────────────────┐      tick()      ┌─────────────────┐              │
│   │ ThreadSchedulerBackend│ ───────────────► │  DueJobPoller   │              │
│   │ (fixed interval)      │                  │                 │              │
│   └──────────────────────┘                   │  - claim        │              │
│                                              │  - dispatch     │              │
│   ┌──────────────────────┐      tick()       │                 │              │
│   │ CronSchedulerBackend  │ ───────────────► │                 │              │
│   │ (croniter expression) │                  └─────────────────┘              │
│   └──────────────────────┘                                                    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], None]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for pluggable scheduler timing backends.

    A backend is responsible ONLY for timing: calling the tick callback on
    its cadence. Timing parameters are passed to the backend's constructor.
    """

    name: str

    def start(self, tick_callback: TickCallback) -> None:
        """Start the tick loop. Must not block the caller."""
        ...

    def stop(self) -> None:
        """Stop the tick loop, waiting for a tick in progress to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health.

        Returns:
            dict with at least:
                - healthy: bool
                - backend: str
                - tick_count: int
                - last_tick: str | None (ISO timestamp)
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
