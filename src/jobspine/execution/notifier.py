"""Completion notifiers.

Notification is a best-effort side effect after a job completes and is not
transactional with the state change. The outcome handler records a failed
delivery as a ``failed`` job log and leaves the job ``completed``.
"""

from __future__ import annotations

from jobspine.core.logging import get_logger
from jobspine.core.models import Job

logger = get_logger(__name__)


class LoggingNotifier:
    """Notifier that emits a structured log event per completed job."""

    def __init__(self, event: str = "job_completed_notification") -> None:
        self.event = event

    def notify_completed(self, job: Job) -> None:
        logger.info(
            self.event,
            job_id=job.id,
            job_name=job.name,
            recurrence=job.recurrence,
        )


class CallbackNotifier:
    """Adapts a plain function ``fn(job)`` to the ``Notifier`` protocol."""

    def __init__(self, callback) -> None:
        self._callback = callback

    def notify_completed(self, job: Job) -> None:
        self._callback(job)
