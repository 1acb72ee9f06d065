"""
Canonical protocol definitions for jobspine.

The scheduling core depends on shapes, not implementations: a job store, a
lock service, an execution callback, a metrics sink and an optional
notifier. Every concrete adapter (SQLAlchemy repository, Redis locks,
prometheus counters, handler registry) satisfies one of these, and tests
substitute in-memory doubles.

Architecture:
    ::

        protocols.py
        ├── JobStore          claim_due_jobs / record_outcome / update_job / insert_job
        ├── LockService       try_acquire / compare_and_delete / get
        ├── JobExecutor       execute(job) -> Success | Failure
        ├── MetricsRecorder   increment_processed / _failed / _dead_lettered
        └── Notifier          notify_completed(job)

Tags:
    protocol, contracts, jobspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from jobspine.core.models import ExecutionOutcome, Job, JobLog, JobLogStatus


@runtime_checkable
class JobStore(Protocol):
    """Repository over job rows and append-only log rows."""

    def claim_due_jobs(self, now: datetime) -> list[Job]:
        """Atomically select due pending jobs and mark them running.

        Returns the pre-update snapshots of the claimed jobs.
        """
        ...

    def update_job(self, job_id: str, **fields: Any) -> Job:
        """Apply a partial update. Raises ``JobNotFoundError``."""
        ...

    def insert_job(self, job: Job) -> Job:
        """Insert a new job row."""
        ...

    def append_log(self, job_id: str, status: JobLogStatus, message: str) -> JobLog:
        """Append a log row. Raises ``JobNotFoundError``."""
        ...

    def record_outcome(
        self,
        job_id: str,
        fields: dict[str, Any],
        log_status: JobLogStatus,
        log_message: str,
        successor: Job | None = None,
    ) -> Job:
        """Update the row, append its log and insert *successor* atomically."""
        ...


@runtime_checkable
class LockService(Protocol):
    """Distributed key-value lock with owner tokens and expiry."""

    def try_acquire(self, key: str, token: str, ttl_seconds: float) -> bool:
        """Set *key* to *token* only if absent. Never blocks."""
        ...

    def compare_and_delete(self, key: str, expected_token: str) -> bool:
        """Delete *key* only if it still holds *expected_token*."""
        ...

    def get(self, key: str) -> str | None:
        """Return the current token for *key*, or None."""
        ...


@runtime_checkable
class JobExecutor(Protocol):
    """Execution callback provided by the caller.

    May raise; any exception is treated as a failure.
    """

    def execute(self, job: Job) -> ExecutionOutcome:
        ...


@runtime_checkable
class MetricsRecorder(Protocol):
    """Fire-and-forget counters reported by the outcome handler."""

    def increment_processed(self) -> None: ...

    def increment_failed(self) -> None: ...

    def increment_dead_lettered(self) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Best-effort side effect after a job completes."""

    def notify_completed(self, job: Job) -> None: ...


__all__ = [
    "JobStore",
    "LockService",
    "JobExecutor",
    "MetricsRecorder",
    "Notifier",
]
