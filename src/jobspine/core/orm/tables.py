"""Job table definitions: jobs, job_logs.

Tags:
    jobspine, orm, sqlalchemy, tables

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jobspine.core.orm.base import JobSpineBase


class JobTable(JobSpineBase):
    __tablename__ = "jobs"
    __table_args__ = (Index("ix_jobs_status_scheduled_at", "status", "scheduled_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    scheduled_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    recurrence: Mapped[str] = mapped_column(String(50), nullable=False, default="none")
    # "metadata" is reserved on declarative classes
    job_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    last_executed_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)
    next_attempt_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)
    retry_count: Mapped[int] = mapped_column(nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(nullable=False, default=3)
    dead_lettered: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(nullable=False)

    logs: Mapped[list[JobLogTable]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class JobLogTable(JobSpineBase):
    __tablename__ = "job_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str | None] = mapped_column(nullable=True)
    logged_at: Mapped[datetime.datetime] = mapped_column(nullable=False)

    job: Mapped[JobTable] = relationship(back_populates="logs")
