"""Recurrence engine.

A successful recurring job is never re-armed in place. Its row keeps its
terminal status as history and a successor row with a fresh id is inserted
with ``scheduled_at`` advanced from the original ``scheduled_at`` (not from
the execution time), so a late run does not drift the series.

Rules are looked up case-insensitively. ``none`` and unknown rules produce
no successor.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from jobspine.core.logging import get_logger
from jobspine.core.models import Job, JobStatus, new_job_id, utcnow
from jobspine.core.protocols import JobStore

logger = get_logger(__name__)

RecurrenceRule = Callable[[datetime], datetime]

NO_RECURRENCE = "none"

_RULES: dict[str, RecurrenceRule] = {
    "daily": lambda scheduled_at: scheduled_at + timedelta(days=1),
    "weekly": lambda scheduled_at: scheduled_at + timedelta(days=7),
}


def register_recurrence(name: str, rule: RecurrenceRule) -> None:
    """Register (or replace) a recurrence rule."""
    key = name.strip().lower()
    if key == NO_RECURRENCE:
        raise ValueError(f"{NO_RECURRENCE!r} is reserved")
    _RULES[key] = rule


def unregister_recurrence(name: str) -> bool:
    return _RULES.pop(name.strip().lower(), None) is not None


def known_recurrences() -> list[str]:
    return [NO_RECURRENCE, *sorted(_RULES)]


def next_occurrence(scheduled_at: datetime, rule: str | None) -> datetime | None:
    """Next ``scheduled_at`` for *rule*, or None when the job does not recur.

    >>> next_occurrence(datetime(2024, 1, 1, tzinfo=UTC), "daily")
    datetime.datetime(2024, 1, 2, 0, 0, tzinfo=datetime.timezone.utc)
    """
    if not rule:
        return None
    fn = _RULES.get(rule.strip().lower())
    return fn(scheduled_at) if fn else None


def build_successor(job: Job, now: datetime | None = None) -> Job | None:
    """Fresh pending copy of *job* at its next occurrence, or None."""
    scheduled_at = next_occurrence(job.scheduled_at, job.recurrence)
    if scheduled_at is None:
        return None
    now = now or utcnow()
    return Job(
        id=new_job_id(),
        name=job.name,
        payload=dict(job.payload),
        status=JobStatus.PENDING,
        scheduled_at=scheduled_at,
        recurrence=job.recurrence,
        retry_count=0,
        max_retries=job.max_retries,
        dead_lettered=False,
        last_executed_at=None,
        metadata=dict(job.metadata) if job.metadata is not None else None,
        created_at=now,
        updated_at=now,
    )


class RecurrenceEngine:
    """Builds (and optionally inserts) the successor of a recurring job."""

    def __init__(self, store: JobStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def successor_for(self, job: Job) -> Job | None:
        """Next occurrence of *job*, or None for one-off jobs and unknown rules."""
        successor = build_successor(job, now=self._clock())
        if successor is None and job.is_recurring:
            logger.warning("unknown_recurrence", job_id=job.id, recurrence=job.recurrence)
        return successor

    def reschedule(self, job: Job) -> Job | None:
        """Insert the successor of *job* on its own."""
        successor = self.successor_for(job)
        if successor is None:
            return None

        self._store.insert_job(successor)
        logger.info(
            "job_rescheduled",
            job_id=job.id,
            successor_id=successor.id,
            scheduled_at=successor.scheduled_at.isoformat(),
        )
        return successor
