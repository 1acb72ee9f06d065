"""Job and job-log models.

Manifesto:
    The scheduling core passes plain dataclasses around, never ORM rows, so
    the state machine and recurrence engine stay pure and unit-testable and
    a snapshot handed to a worker thread cannot lazily touch a session.

Tags:
    jobspine, models, dataclasses, job-lifecycle

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_job_id() -> str:
    """Generate a fresh, never reused job identity."""
    return str(uuid4())


def ensure_utc(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes (as returned by SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class JobStatus(str, Enum):
    """Persisted job status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobLogStatus(str, Enum):
    """Status recorded on an append-only job log entry."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


@dataclass
class Job:
    """A unit of schedulable work (``jobs`` row)."""

    name: str
    scheduled_at: datetime
    id: str = field(default_factory=new_job_id)
    payload: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    recurrence: str = "none"
    retry_count: int = 0
    max_retries: int = 3
    dead_lettered: bool = False
    last_executed_at: datetime | None = None
    # Earliest retry time under backoff; scheduled_at keeps the original slot
    next_attempt_at: datetime | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.lower() != "none"

    def is_due(self, now: datetime) -> bool:
        """A job is due when pending and its next attempt time has passed."""
        return self.status == JobStatus.PENDING and self.due_at <= now

    @property
    def due_at(self) -> datetime:
        return self.next_attempt_at or self.scheduled_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "payload": self.payload,
            "status": self.status.value,
            "scheduled_at": self.scheduled_at.isoformat(),
            "recurrence": self.recurrence,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "dead_lettered": self.dead_lettered,
            "last_executed_at": (
                self.last_executed_at.isoformat() if self.last_executed_at else None
            ),
            "next_attempt_at": (
                self.next_attempt_at.isoformat() if self.next_attempt_at else None
            ),
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# job_logs
# ---------------------------------------------------------------------------


@dataclass
class JobLog:
    """Append-only event record for a job (``job_logs`` row)."""

    job_id: str
    status: JobLogStatus
    message: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    logged_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "status": self.status.value,
            "message": self.message,
            "logged_at": self.logged_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Execution outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    """The execution callback finished the job."""

    detail: str | None = None


@dataclass(frozen=True)
class Failure:
    """The execution callback reported (or raised) a failure."""

    reason: str


ExecutionOutcome = Success | Failure


__all__ = [
    "utcnow",
    "new_job_id",
    "ensure_utc",
    "JobStatus",
    "JobLogStatus",
    "Job",
    "JobLog",
    "Success",
    "Failure",
    "ExecutionOutcome",
]
