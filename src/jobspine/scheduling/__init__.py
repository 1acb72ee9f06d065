"""Scheduling engine: poller, dispatcher, state machine, recurrence, shutdown.

Architecture::

    scheduling/
    ├── protocol.py        SchedulerBackend, TickCallback, BackendHealth
    ├── thread_backend.py  ThreadSchedulerBackend (interval), CronSchedulerBackend
    ├── poller.py          DueJobPoller (claim pass per tick)
    ├── dispatcher.py      DistributedDispatcher, ActiveJobCounter
    ├── state_machine.py   next_state, Transition, OutcomeHandler
    ├── retry.py           ImmediateRetry, ExponentialBackoff
    ├── recurrence.py      next_occurrence, RecurrenceEngine, register_recurrence
    ├── shutdown.py        ShutdownCoordinator
    └── service.py         JobSchedulerService, create_scheduler
"""

from .dispatcher import ActiveJobCounter, DispatcherStats, DistributedDispatcher
from .poller import DueJobPoller, PollerStats
from .protocol import BackendHealth, SchedulerBackend, TickCallback
from .recurrence import (
    RecurrenceEngine,
    build_successor,
    known_recurrences,
    next_occurrence,
    register_recurrence,
    unregister_recurrence,
)
from .retry import ExponentialBackoff, ImmediateRetry, RetryStrategy
from .service import (
    JobSchedulerService,
    SchedulerHealth,
    build_backend,
    build_lock_service,
    build_metrics,
    create_scheduler,
)
from .shutdown import ShutdownCoordinator
from .state_machine import OutcomeHandler, Transition, next_state
from .thread_backend import CronSchedulerBackend, ThreadSchedulerBackend

__all__ = [
    "ActiveJobCounter",
    "DispatcherStats",
    "DistributedDispatcher",
    "DueJobPoller",
    "PollerStats",
    "BackendHealth",
    "SchedulerBackend",
    "TickCallback",
    "RecurrenceEngine",
    "build_successor",
    "known_recurrences",
    "next_occurrence",
    "register_recurrence",
    "unregister_recurrence",
    "ExponentialBackoff",
    "ImmediateRetry",
    "RetryStrategy",
    "JobSchedulerService",
    "SchedulerHealth",
    "build_backend",
    "build_lock_service",
    "build_metrics",
    "create_scheduler",
    "ShutdownCoordinator",
    "OutcomeHandler",
    "Transition",
    "next_state",
    "CronSchedulerBackend",
    "ThreadSchedulerBackend",
]
