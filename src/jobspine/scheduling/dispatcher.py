"""Distributed dispatcher - per-job lock, thread-pool execution, owned release.

Manifesto:
    A claimed job is executed only by the worker that wins its lock. The
    lock is tried once, on the pool thread right before the callback runs,
    and never waited on: a held key means another worker owns the job, so
    this worker skips it and leaves its status alone. Taking the lock at
    execution time means a job queued behind busy threads does not burn its
    TTL while it waits.

Tags:
    jobspine, dispatcher, distributed-locks, thread-pool

Doc-Types:
    api-reference, sequence-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  DISPATCH SEQUENCE                                                            │
│                                                                               │
│   poller thread                pool thread                                    │
│   ─────────────                ───────────                                    │
│   counter += 1                                                                │
│   submit ────────────────────► try_acquire(job-lock:<id>, token, ttl)         │
│   return                         ├─ False ──► skip                            │
│                                  └─ True                                      │
│                                     append_log(started)                       │
│                                     executor.execute(job)                     │
│                                     outcome_handler.handle(job, outcome)      │
│                                     compare_and_delete(key, token)            │
│                                counter -= 1                                   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from jobspine.core.errors import JobSpineError, LockServiceError
from jobspine.core.locks import job_lock_key
from jobspine.core.logging import LogContext, get_logger
from jobspine.core.models import ExecutionOutcome, Failure, Job, JobLogStatus, Success
from jobspine.core.protocols import JobExecutor, JobStore, LockService

from .state_machine import OutcomeHandler

logger = get_logger(__name__)


class ActiveJobCounter:
    """Count of jobs handed to the pool and not yet finished in this process."""

    def __init__(self) -> None:
        self._value = 0
        self._cond = threading.Condition()

    def increment(self) -> int:
        with self._cond:
            self._value += 1
            return self._value

    def decrement(self) -> int:
        with self._cond:
            if self._value == 0:
                raise RuntimeError("ActiveJobCounter decremented below zero")
            self._value -= 1
            if self._value == 0:
                self._cond.notify_all()
            return self._value

    @property
    def value(self) -> int:
        with self._cond:
            return self._value

    def wait_for_zero(self, timeout: float | None = None, poll_interval: float = 0.1) -> bool:
        """Block until the count is zero.

        Re-checks every *poll_interval* seconds. Returns False if *timeout*
        elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._value > 0:
                wait = poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait = min(wait, remaining)
                self._cond.wait(wait)
            return True


@dataclass
class DispatcherStats:
    dispatched: int = 0
    skipped: int = 0
    lock_errors: int = 0
    outcome_errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "lock_errors": self.lock_errors,
            "outcome_errors": self.outcome_errors,
        }


class DistributedDispatcher:
    """Runs claimed jobs under a per-job distributed lock.

    Args:
        store: Job store (``started`` log entries)
        locks: Lock service holding ``job-lock:<id>`` keys
        executor: Execution callback
        outcome_handler: Persists the outcome before the lock is released
        lock_ttl_seconds: Lock expiry; must exceed the slowest job
        max_workers: Thread pool size
        counter: Shared active-job counter (created if omitted)
        instance_id: Included in lock tokens to ease debugging
    """

    def __init__(
        self,
        store: JobStore,
        locks: LockService,
        executor: JobExecutor,
        outcome_handler: OutcomeHandler,
        *,
        lock_ttl_seconds: float = 30,
        max_workers: int = 4,
        counter: ActiveJobCounter | None = None,
        instance_id: str | None = None,
    ) -> None:
        self._store = store
        self._locks = locks
        self._executor = executor
        self._outcome_handler = outcome_handler
        self._lock_ttl = lock_ttl_seconds
        self.counter = counter or ActiveJobCounter()
        self._instance_id = instance_id or uuid4().hex[:8]
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"jobspine-{self._instance_id}",
        )
        self._stats_lock = threading.Lock()
        self.stats = DispatcherStats()

    def _bump(self, name: str) -> None:
        with self._stats_lock:
            setattr(self.stats, name, getattr(self.stats, name) + 1)

    def _new_token(self) -> str:
        return f"{self._instance_id}:{uuid4().hex}"

    def dispatch(self, job: Job) -> Future:
        """Queue *job* on the pool; never blocks on the lock or the callback.

        The future resolves to True when the job ran, False when it was
        skipped because its lock was held or the lock service failed.
        """
        self.counter.increment()
        try:
            future = self._pool.submit(self._run, job)
        except RuntimeError:
            # Pool already shut down
            self.counter.decrement()
            raise
        self._bump("dispatched")
        return future

    def _run(self, job: Job) -> bool:
        try:
            key = job_lock_key(job.id)
            token = self._new_token()
            if not self._acquire(job, key, token):
                return False
            try:
                with LogContext(job_id=job.id, job_name=job.name):
                    self._execute_and_record(job)
            finally:
                self._release(job, key, token)
            return True
        finally:
            self.counter.decrement()

    def _acquire(self, job: Job, key: str, token: str) -> bool:
        try:
            acquired = self._locks.try_acquire(key, token, self._lock_ttl)
        except LockServiceError as e:
            self._bump("lock_errors")
            logger.error("lock_acquire_failed", job_id=job.id, error=str(e))
            return False

        if not acquired:
            self._bump("skipped")
            logger.info("job_locked_elsewhere", job_id=job.id, lock_key=key)
        return acquired

    def _execute_and_record(self, job: Job) -> None:
        try:
            self._store.append_log(job.id, JobLogStatus.STARTED, "Job execution started")
        except JobSpineError as e:
            logger.error("start_log_failed", job_id=job.id, error=str(e))

        logger.info("job_executing", job_id=job.id)
        outcome = self.invoke(job)

        try:
            self._outcome_handler.handle(job, outcome)
        except Exception as e:
            # Job stays running; the lock is still released below
            self._bump("outcome_errors")
            logger.exception("outcome_persist_failed", job_id=job.id, error=str(e))

    def invoke(self, job: Job) -> ExecutionOutcome:
        """Call the executor, turning exceptions and odd returns into an outcome."""
        try:
            outcome = self._executor.execute(job)
        except Exception as e:
            logger.warning("job_execution_raised", job_id=job.id, error=str(e), exc_type=type(e).__name__)
            return Failure(reason=str(e) or type(e).__name__)

        if outcome is None:
            return Success()
        if not isinstance(outcome, Success | Failure):
            return Success(detail=str(outcome))
        return outcome

    def _release(self, job: Job, key: str, token: str) -> None:
        try:
            released = self._locks.compare_and_delete(key, token)
        except LockServiceError as e:
            logger.error("lock_release_failed", job_id=job.id, error=str(e))
            return
        if not released:
            logger.warning("lock_lost_before_release", job_id=job.id, lock_key=key)

    def close(self, wait: bool = True) -> None:
        """Shut down the thread pool."""
        self._pool.shutdown(wait=wait, cancel_futures=False)
