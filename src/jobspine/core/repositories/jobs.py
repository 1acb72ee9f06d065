"""Job repository - transactional, lock-aware access to job and log rows.

Manifesto:
    The job row is the single source of truth for status. It is mutated in
    exactly two places: the claim transaction (pending -> running) and the
    outcome write after execution. Both go through this repository, and
    every other component sees plain ``Job`` snapshots.

Tags:
    jobspine, repository, sqlalchemy, claim, transactions

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  CLAIM TRANSACTION                                                            │
│                                                                               │
│   BEGIN                        (BEGIN IMMEDIATE on SQLite)                   │
│     SELECT * FROM jobs                                                        │
│      WHERE status = 'pending'                                                │
│        AND COALESCE(next_attempt_at, scheduled_at) <= :now                   │
│      FOR UPDATE                 ◄── blocks a concurrent claimer              │
│     UPDATE jobs SET status = 'running', updated_at = :now   (per row)        │
│      WHERE id = :id AND status = 'pending'                                   │
│   COMMIT                                                                      │
│                                                                               │
│  A second claimer's SELECT runs after the first COMMIT, when the             │
│  ``status = 'pending'`` predicate no longer matches the claimed rows.        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobspine.core.errors import JobNotFoundError, TransientStoreError
from jobspine.core.logging import get_logger
from jobspine.core.models import (
    Job,
    JobLog,
    JobLogStatus,
    JobStatus,
    ensure_utc,
    new_job_id,
    utcnow,
)
from jobspine.core.orm.session import create_jobspine_engine, jobspine_session_factory
from jobspine.core.orm.tables import JobLogTable, JobTable

logger = get_logger(__name__)

# Job fields callers may change through update_job()
_UPDATABLE_FIELDS = {
    "name",
    "payload",
    "status",
    "scheduled_at",
    "recurrence",
    "retry_count",
    "max_retries",
    "dead_lettered",
    "last_executed_at",
    "next_attempt_at",
    "metadata",
}

_DATETIME_FIELDS = ("scheduled_at", "last_executed_at", "next_attempt_at")


@dataclass
class JobCreate:
    """DTO for creating a new job."""

    name: str
    scheduled_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    recurrence: str = "none"
    max_retries: int = 3
    metadata: dict[str, Any] | None = None


class JobRepository:
    """SQLAlchemy-backed job store.

    Each call runs in its own short session, so one repository can be shared
    by the poller thread and every dispatch worker thread.

    Example:
        >>> repo = JobRepository.from_url("sqlite:///jobspine.db")
        >>> repo.create_job(JobCreate(name="report", scheduled_at=utcnow()))
        >>> claimed = repo.claim_due_jobs(utcnow())
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> JobRepository:
        engine = create_jobspine_engine(url, echo=echo)
        return cls(jobspine_session_factory(engine))

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        """Run one unit of work; driver errors become TransientStoreError."""
        try:
            with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise TransientStoreError(
                f"{operation} failed: {e}", cause=e
            ).with_context(operation=operation) from e

    # === Claim ===

    def claim_due_jobs(self, now: datetime) -> list[Job]:
        """Select due pending jobs and mark them running in one transaction.

        Args:
            now: Instant compared against ``next_attempt_at`` or, when unset, ``scheduled_at``

        Returns:
            Pre-update snapshots (status ``pending``) of the claimed jobs
        """
        now = ensure_utc(now)
        with self._transaction("claim_due_jobs") as session:
            rows = (
                session.execute(
                    select(JobTable)
                    .where(
                        JobTable.status == JobStatus.PENDING.value,
                        _due_at() <= now,
                    )
                    .order_by(_due_at())
                    .with_for_update()
                )
                .scalars()
                .all()
            )
            if not rows:
                return []

            snapshots = [_row_to_job(row) for row in rows]
            stamp = utcnow()
            claimed: list[Job] = []
            for job in snapshots:
                # Only transition if still pending
                result = session.execute(
                    update(JobTable)
                    .where(
                        JobTable.id == job.id,
                        JobTable.status == JobStatus.PENDING.value,
                    )
                    .values(status=JobStatus.RUNNING.value, updated_at=stamp)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    logger.warning("claim_lost", job_id=job.id)
                    continue
                claimed.append(job)

        if claimed:
            logger.debug("jobs_claimed", count=len(claimed))
        return claimed

    # === Jobs ===

    def create_job(self, data: JobCreate) -> Job:
        """Create a pending job from a DTO."""
        now = utcnow()
        return self.insert_job(
            Job(
                id=new_job_id(),
                name=data.name,
                payload=dict(data.payload),
                status=JobStatus.PENDING,
                scheduled_at=data.scheduled_at,
                recurrence=data.recurrence or "none",
                max_retries=data.max_retries,
                metadata=data.metadata,
                created_at=now,
                updated_at=now,
            )
        )

    def insert_job(self, job: Job) -> Job:
        """Insert *job* as a new row."""
        with self._transaction("insert_job") as session:
            session.add(_job_to_row(job))
        logger.debug("job_inserted", job_id=job.id, name=job.name)
        return job

    def get_job(self, job_id: str) -> Job | None:
        with self._transaction("get_job") as session:
            row = session.get(JobTable, job_id)
            return _row_to_job(row) if row else None

    def update_job(self, job_id: str, **fields: Any) -> Job:
        """Apply a partial update and bump ``updated_at``.

        Raises:
            JobNotFoundError: If no job has this id
            ValueError: If a field is not updatable
        """
        _check_updatable(fields)
        with self._transaction("update_job") as session:
            return _apply_update(session, job_id, fields)

    def record_outcome(
        self,
        job_id: str,
        fields: dict[str, Any],
        log_status: JobLogStatus | str,
        log_message: str,
        successor: Job | None = None,
    ) -> Job:
        """Persist an execution outcome in one transaction.

        The row update, the log entry and the successor of a recurring job
        commit together or not at all.

        Raises:
            JobNotFoundError: If no job has this id
        """
        _check_updatable(fields)
        with self._transaction("record_outcome") as session:
            updated = _apply_update(session, job_id, fields)
            session.add(_log_to_row(_new_log(job_id, log_status, log_message)))
            if successor is not None:
                session.add(_job_to_row(successor))
        return updated

    def list_jobs(
        self,
        status: JobStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Job]:
        stmt = select(JobTable).order_by(JobTable.scheduled_at)
        if status is not None:
            stmt = stmt.where(JobTable.status == JobStatus(status).value)
        with self._transaction("list_jobs") as session:
            rows = session.execute(stmt.limit(limit).offset(offset)).scalars().all()
            return [_row_to_job(row) for row in rows]

    def list_dead_lettered(self, limit: int = 100) -> list[Job]:
        """Jobs that exhausted their retries."""
        with self._transaction("list_dead_lettered") as session:
            rows = (
                session.execute(
                    select(JobTable)
                    .where(JobTable.dead_lettered.is_(True))
                    .order_by(JobTable.updated_at.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [_row_to_job(row) for row in rows]

    # === Logs ===

    def append_log(self, job_id: str, status: JobLogStatus | str, message: str) -> JobLog:
        """Append one log row for *job_id*.

        Raises:
            JobNotFoundError: If no job has this id
        """
        entry = _new_log(job_id, status, message)
        with self._transaction("append_log") as session:
            if session.get(JobTable, job_id) is None:
                raise JobNotFoundError(job_id)
            session.add(_log_to_row(entry))
        return entry

    def list_logs(self, job_id: str) -> list[JobLog]:
        """Log trail for a job, oldest first."""
        with self._transaction("list_logs") as session:
            rows = (
                session.execute(
                    select(JobLogTable)
                    .where(JobLogTable.job_id == job_id)
                    .order_by(JobLogTable.logged_at, JobLogTable.id)
                )
                .scalars()
                .all()
            )
            return [
                JobLog(
                    id=row.id,
                    job_id=row.job_id,
                    status=JobLogStatus(row.status),
                    message=row.message,
                    logged_at=ensure_utc(row.logged_at),
                )
                for row in rows
            ]


def _due_at():
    return func.coalesce(JobTable.next_attempt_at, JobTable.scheduled_at)


def _check_updatable(fields: dict[str, Any]) -> None:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update job fields: {sorted(unknown)}")


def _apply_update(session: Session, job_id: str, fields: dict[str, Any]) -> Job:
    row = session.get(JobTable, job_id)
    if row is None:
        raise JobNotFoundError(job_id)

    for key, value in fields.items():
        if key == "status":
            value = JobStatus(value).value
        elif key in _DATETIME_FIELDS:
            value = ensure_utc(value)
        setattr(row, "job_metadata" if key == "metadata" else key, value)
    row.updated_at = utcnow()
    session.flush()
    return _row_to_job(row)


def _new_log(job_id: str, status: JobLogStatus | str, message: str) -> JobLog:
    return JobLog(
        id=str(uuid4()),
        job_id=job_id,
        status=JobLogStatus(status),
        message=message,
        logged_at=utcnow(),
    )


def _log_to_row(entry: JobLog) -> JobLogTable:
    return JobLogTable(
        id=entry.id,
        job_id=entry.job_id,
        status=entry.status.value,
        message=entry.message,
        logged_at=entry.logged_at,
    )


def _job_to_row(job: Job) -> JobTable:
    return JobTable(
        id=job.id,
        name=job.name,
        payload=job.payload,
        status=JobStatus(job.status).value,
        scheduled_at=ensure_utc(job.scheduled_at),
        recurrence=job.recurrence,
        job_metadata=job.metadata,
        last_executed_at=ensure_utc(job.last_executed_at),
        next_attempt_at=ensure_utc(job.next_attempt_at),
        retry_count=job.retry_count,
        max_retries=job.max_retries,
        dead_lettered=job.dead_lettered,
        created_at=ensure_utc(job.created_at),
        updated_at=ensure_utc(job.updated_at),
    )


def _row_to_job(row: JobTable) -> Job:
    return Job(
        id=row.id,
        name=row.name,
        payload=dict(row.payload or {}),
        status=JobStatus(row.status),
        scheduled_at=ensure_utc(row.scheduled_at),
        recurrence=row.recurrence,
        retry_count=row.retry_count,
        max_retries=row.max_retries,
        dead_lettered=bool(row.dead_lettered),
        last_executed_at=ensure_utc(row.last_executed_at),
        next_attempt_at=ensure_utc(row.next_attempt_at),
        metadata=row.job_metadata,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


__all__ = ["JobCreate", "JobRepository"]
