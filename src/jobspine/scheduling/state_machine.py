"""Job state machine and outcome handling.

Manifesto:
    Deciding the next state is pure: ``next_state(job, outcome, now)``
    returns a ``Transition`` and touches nothing. ``OutcomeHandler`` applies
    it: the row update, its log entry and the successor of a recurring job
    in one store transaction, then the counters and the notifier. The dispatcher calls the handler before it
    releases the job lock, so once an outcome is recorded nobody observes
    the job as ``running``.

Tags:
    jobspine, state-machine, retry, dead-letter

Doc-Types:
    api-reference, state-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  OUTCOME TRANSITIONS                (n' = retry_count + 1)                    │
│                                                                               │
│   running ──Success──────────────► completed   retry_count = 0               │
│      │                                          + successor if recurring      │
│      │                                                                        │
│      ├──Failure, n' <  max_retries ► pending    retry_count = n'             │
│      │                                          (next_attempt_at = now+delay) │
│      │                                                                        │
│      └──Failure, n' >= max_retries ► failed     retry_count = n'             │
│                                                 dead_lettered = true          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from jobspine.core.errors import JobSpineError
from jobspine.core.logging import get_logger
from jobspine.core.models import (
    ExecutionOutcome,
    Failure,
    Job,
    JobLogStatus,
    JobStatus,
    Success,
    utcnow,
)
from jobspine.core.protocols import JobStore, MetricsRecorder, Notifier

from .recurrence import RecurrenceEngine
from .retry import ImmediateRetry, RetryStrategy

logger = get_logger(__name__)

PROCESSED = "processed"
FAILED = "failed"
DEAD_LETTERED = "dead_lettered"

SUCCESS_MESSAGE = "Job executed successfully"


@dataclass(frozen=True)
class Transition:
    """Everything one outcome changes, computed without side effects."""

    fields: dict[str, Any]
    log_status: JobLogStatus
    log_message: str
    counters: tuple[str, ...] = ()
    reschedule: bool = False
    notify: bool = False

    @property
    def status(self) -> JobStatus:
        return self.fields["status"]

    @property
    def dead_lettered(self) -> bool:
        return bool(self.fields.get("dead_lettered", False))


def next_state(
    job: Job,
    outcome: ExecutionOutcome,
    now: datetime,
    retry: RetryStrategy | None = None,
) -> Transition:
    """Map a job and its execution outcome to the transition to persist."""
    if isinstance(outcome, Success):
        return Transition(
            fields={
                "status": JobStatus.COMPLETED,
                "retry_count": 0,
                "dead_lettered": False,
                "last_executed_at": now,
                "next_attempt_at": None,
            },
            log_status=JobLogStatus.COMPLETED,
            log_message=SUCCESS_MESSAGE,
            counters=(PROCESSED,),
            reschedule=job.is_recurring,
            notify=True,
        )

    reason = outcome.reason if isinstance(outcome, Failure) else str(outcome)
    attempt = job.retry_count + 1

    if attempt >= job.max_retries:
        return Transition(
            fields={
                "status": JobStatus.FAILED,
                "retry_count": attempt,
                "dead_lettered": True,
                "last_executed_at": now,
                "next_attempt_at": None,
            },
            log_status=JobLogStatus.FAILED,
            log_message=f"Job failed (attempt {attempt}/{job.max_retries}), dead-lettered: {reason}",
            counters=(FAILED, DEAD_LETTERED),
        )

    # scheduled_at is left alone so a recurring series keeps its slot
    delay = (retry or ImmediateRetry()).next_delay(attempt)
    fields: dict[str, Any] = {
        "status": JobStatus.PENDING,
        "retry_count": attempt,
        "dead_lettered": False,
        "last_executed_at": now,
        "next_attempt_at": now + timedelta(seconds=delay) if delay > 0 else None,
    }

    return Transition(
        fields=fields,
        log_status=JobLogStatus.FAILED,
        log_message=f"Job failed (attempt {attempt}/{job.max_retries}): {reason}",
        counters=(FAILED,),
    )


@dataclass
class OutcomeStats:
    completed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    notify_errors: int = 0
    last_error: str | None = field(default=None, repr=False)


class OutcomeHandler:
    """Persists a transition and runs its follow-ups.

    Store errors propagate to the caller (the dispatcher logs them). A
    failing notifier never changes the recorded outcome.
    """

    _COUNTERS: dict[str, str] = {
        PROCESSED: "increment_processed",
        FAILED: "increment_failed",
        DEAD_LETTERED: "increment_dead_lettered",
    }

    def __init__(
        self,
        store: JobStore,
        metrics: MetricsRecorder,
        recurrence: RecurrenceEngine | None = None,
        notifier: Notifier | None = None,
        retry: RetryStrategy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._metrics = metrics
        self._recurrence = recurrence if recurrence is not None else RecurrenceEngine(store, clock)
        self._notifier = notifier
        self._retry = retry or ImmediateRetry()
        self._clock = clock
        self.stats = OutcomeStats()

    def handle(self, job: Job, outcome: ExecutionOutcome) -> Transition:
        transition = next_state(job, outcome, self._clock(), self._retry)

        # The successor derives from the claimed snapshot's scheduled_at
        successor = self._recurrence.successor_for(job) if transition.reschedule else None
        updated = self._store.record_outcome(
            job.id,
            transition.fields,
            transition.log_status,
            transition.log_message,
            successor,
        )

        for counter in transition.counters:
            getattr(self._metrics, self._COUNTERS[counter])()

        if transition.status == JobStatus.COMPLETED:
            self.stats.completed += 1
            logger.info("job_completed", job_id=job.id, name=job.name)
            if successor is not None:
                logger.info(
                    "job_rescheduled",
                    job_id=job.id,
                    successor_id=successor.id,
                    scheduled_at=successor.scheduled_at.isoformat(),
                )
        elif transition.dead_lettered:
            self.stats.dead_lettered += 1
            logger.error(
                "job_dead_lettered",
                job_id=job.id,
                retry_count=transition.fields["retry_count"],
                max_retries=job.max_retries,
            )
        else:
            self.stats.retried += 1
            logger.warning(
                "job_failed_will_retry",
                job_id=job.id,
                retry_count=transition.fields["retry_count"],
                max_retries=job.max_retries,
                next_attempt_at=updated.due_at.isoformat(),
            )

        if transition.notify and self._notifier is not None:
            self._notify(updated)

        return transition

    def _notify(self, job: Job) -> None:
        try:
            self._notifier.notify_completed(job)
        except Exception as e:
            self.stats.notify_errors += 1
            self.stats.last_error = str(e)
            logger.warning("notification_failed", job_id=job.id, error=str(e))
            try:
                self._store.append_log(job.id, JobLogStatus.FAILED, f"Failed to send notification: {e}")
            except JobSpineError as log_error:
                logger.error("notification_log_failed", job_id=job.id, error=str(log_error))
