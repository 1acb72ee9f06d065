"""Job scheduler service - wiring and lifecycle.

Manifesto:
    JobSchedulerService combines backend (timing), repository (data), lock
    service (safety), dispatcher (execution) and shutdown coordinator
    (drain) into one object with ``start()`` and ``shutdown()``. Every
    collaborator is injected, so tests swap in SQLite, in-memory locks and
    a recording executor without touching the wiring.

Tags:
    jobspine, scheduling, orchestrator, beat-as-poller, service

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB SCHEDULER SERVICE                                                        │
│                                                                               │
│   Backend ──tick──► DueJobPoller ──claim──► JobStore                          │
│                          │                                                    │
│                          └──dispatch──► DistributedDispatcher                 │
│                                           ├── LockService (acquire/release)   │
│                                           ├── JobExecutor                     │
│                                           └── OutcomeHandler                  │
│                                                 ├── JobStore.record_outcome   │
│                                                 ├── MetricsRecorder           │
│                                                 ├── RecurrenceEngine          │
│                                                 └── Notifier (best-effort)    │
│                                                                               │
│   shutdown() ──► ShutdownCoordinator: poller.stop(); wait counter == 0        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from jobspine.core.errors import ConfigError
from jobspine.core.logging import get_logger
from jobspine.core.metrics import InMemoryMetrics, PrometheusMetrics
from jobspine.core.models import utcnow
from jobspine.core.protocols import JobExecutor, JobStore, LockService, MetricsRecorder, Notifier

from .dispatcher import ActiveJobCounter, DistributedDispatcher
from .poller import DueJobPoller, PollerStats
from .protocol import SchedulerBackend
from .recurrence import RecurrenceEngine
from .retry import RetryStrategy, strategy_from_settings
from .shutdown import ShutdownCoordinator
from .state_machine import OutcomeHandler
from .thread_backend import CronSchedulerBackend, ThreadSchedulerBackend

if TYPE_CHECKING:
    from jobspine.core.settings import JobSpineSettings

logger = get_logger(__name__)


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    instance_id: str
    backend: dict[str, Any]
    active_jobs: int = 0
    last_tick: datetime | None = None
    poller: PollerStats = field(default_factory=PollerStats)
    dispatcher: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "instance_id": self.instance_id,
            "backend": self.backend,
            "active_jobs": self.active_jobs,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "poller": self.poller.to_dict(),
            "dispatcher": self.dispatcher,
        }


class JobSchedulerService:
    """Distributed job scheduler for one worker process.

    Example:
        >>> service = JobSchedulerService(
        ...     store=JobRepository.from_url("sqlite:///jobspine.db"),
        ...     locks=RedisLockService.from_url("redis://localhost:6379/0"),
        ...     executor=registry,
        ...     backend=CronSchedulerBackend("* * * * *"),
        ... )
        >>> service.start()
        >>> # Later...
        >>> service.shutdown()
    """

    def __init__(
        self,
        store: JobStore,
        locks: LockService,
        executor: JobExecutor,
        backend: SchedulerBackend | None = None,
        *,
        metrics: MetricsRecorder | None = None,
        notifier: Notifier | None = None,
        retry: RetryStrategy | None = None,
        lock_ttl_seconds: float = 30,
        max_workers: int = 4,
        drain_poll_interval: float = 0.1,
        instance_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.executor = executor
        self.backend = backend or CronSchedulerBackend()
        self.metrics = metrics if metrics is not None else InMemoryMetrics()
        self.instance_id = instance_id or f"{socket.gethostname()}-{uuid4().hex[:6]}"

        self.recurrence = RecurrenceEngine(store, clock)
        self.outcomes = OutcomeHandler(
            store,
            self.metrics,
            recurrence=self.recurrence,
            notifier=notifier,
            retry=retry,
            clock=clock,
        )
        self.counter = ActiveJobCounter()
        self.dispatcher = DistributedDispatcher(
            store,
            locks,
            executor,
            self.outcomes,
            lock_ttl_seconds=lock_ttl_seconds,
            max_workers=max_workers,
            counter=self.counter,
            instance_id=self.instance_id,
        )
        self.poller = DueJobPoller(store, self.backend, self.dispatcher.dispatch, clock)
        self.coordinator = ShutdownCoordinator(self.poller, self.counter, drain_poll_interval)
        self._running = False
        self._closed = False

    # === Lifecycle ===

    def start(self) -> None:
        """Run the recovery claim pass and start ticking."""
        if self._running:
            logger.warning("scheduler_already_running", instance_id=self.instance_id)
            return
        if self._closed:
            raise RuntimeError("JobSchedulerService cannot be restarted after shutdown")

        logger.info("scheduler_starting", instance_id=self.instance_id, backend=self.backend.name)
        self._running = True
        self.poller.start()

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop claiming and wait for in-flight jobs.

        Safe to call more than once and before ``start()``.

        Returns:
            True if every in-flight job finished, False if *timeout* expired
        """
        logger.info("scheduler_stopping", instance_id=self.instance_id)
        drained = self.coordinator.shutdown(timeout)
        self._running = False
        if not self._closed:
            self.dispatcher.close(wait=drained)
            self._closed = True
        return drained

    @property
    def is_running(self) -> bool:
        return self._running

    def run_once(self) -> int:
        """Run one claim pass outside the backend schedule."""
        return self.poller.tick()

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        backend_health = self.backend.health()
        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            instance_id=self.instance_id,
            backend=backend_health,
            active_jobs=self.counter.value,
            last_tick=self.poller.stats.last_tick,
            poller=self.poller.stats,
            dispatcher=self.dispatcher.stats.to_dict(),
        )


def build_backend(settings: JobSpineSettings) -> SchedulerBackend:
    """Fixed interval when ``poll_interval_seconds`` is set, cron otherwise."""
    if settings.poll_interval_seconds:
        return ThreadSchedulerBackend(interval_seconds=settings.poll_interval_seconds)
    return CronSchedulerBackend(settings.poll_cron)


def build_lock_service(settings: JobSpineSettings) -> LockService:
    from jobspine.core.locks import InMemoryLockService, RedisLockService

    if settings.lock_backend == "redis":
        return RedisLockService.from_url(settings.redis_url)
    if settings.lock_backend == "memory":
        return InMemoryLockService()
    raise ConfigError(f"Unknown lock backend: {settings.lock_backend!r}")


def build_metrics(settings: JobSpineSettings) -> MetricsRecorder:
    if settings.metrics_backend == "prometheus":
        return PrometheusMetrics()
    if settings.metrics_backend == "memory":
        return InMemoryMetrics()
    raise ConfigError(f"Unknown metrics backend: {settings.metrics_backend!r}")


def create_scheduler(
    settings: JobSpineSettings | None = None,
    executor: JobExecutor | None = None,
    *,
    store: JobStore | None = None,
    locks: LockService | None = None,
    backend: SchedulerBackend | None = None,
    metrics: MetricsRecorder | None = None,
    notifier: Notifier | None = None,
) -> JobSchedulerService:
    """Build a JobSchedulerService from settings.

    Anything passed explicitly wins over what the settings would build.
    The executor defaults to the global handler registry.
    """
    from jobspine.core.repositories import JobRepository
    from jobspine.core.settings import get_settings
    from jobspine.execution import get_default_registry

    settings = settings or get_settings()
    return JobSchedulerService(
        store=store or JobRepository.from_url(settings.database_url, echo=settings.database_echo),
        locks=locks or build_lock_service(settings),
        executor=executor or get_default_registry(),
        backend=backend or build_backend(settings),
        metrics=metrics if metrics is not None else build_metrics(settings),
        notifier=notifier,
        retry=strategy_from_settings(settings.retry_backoff_seconds, settings.retry_backoff_max_seconds),
        lock_ttl_seconds=settings.lock_ttl_seconds,
        max_workers=settings.max_workers,
        drain_poll_interval=settings.drain_poll_interval,
        instance_id=settings.instance_id,
    )
