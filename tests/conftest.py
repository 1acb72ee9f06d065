"""
Shared pytest fixtures for jobspine tests.

This module provides:
- File-backed SQLite repositories (worker threads need a real file)
- In-memory lock service and metrics recorder
- A recording execution callback with scripted outcomes
- A manual tick backend so tests drive the poller directly
- Settings / handler-registry / log-context cleanup for isolation
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import structlog

from jobspine.core.locks import InMemoryLockService
from jobspine.core.logging import clear_context
from jobspine.core.metrics import InMemoryMetrics
from jobspine.core.models import ExecutionOutcome, Failure, Job, Success, utcnow
from jobspine.core.orm import create_jobspine_engine, init_db, jobspine_session_factory
from jobspine.core.repositories import JobRepository
from jobspine.core.settings import reset_settings
from jobspine.execution import reset_default_registry

# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """Fresh settings, handler registry and logging state for every test."""
    for key in ("JOBSPINE_DATABASE_URL", "JOBSPINE_LOCK_BACKEND", "JOBSPINE_POLL_CRON"):
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    reset_default_registry()
    clear_context()
    yield
    reset_settings()
    reset_default_registry()
    clear_context()
    structlog.reset_defaults()


# =============================================================================
# Persistence
# =============================================================================


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'jobspine.db'}"


@pytest.fixture
def engine(db_url):
    eng = create_jobspine_engine(db_url)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repository(engine) -> JobRepository:
    return JobRepository(jobspine_session_factory(engine))


@pytest.fixture
def make_job(repository) -> Callable[..., Job]:
    """Insert a job that is due one minute ago unless overridden."""

    def _make(name: str = "job", **overrides: Any) -> Job:
        overrides.setdefault("scheduled_at", utcnow() - timedelta(minutes=1))
        return repository.insert_job(Job(name=name, **overrides))

    return _make


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def locks() -> InMemoryLockService:
    return InMemoryLockService()


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


class RecordingExecutor:
    """Execution callback that records calls and returns scripted outcomes.

    ``outcomes`` maps a job name to an ``ExecutionOutcome``, an exception
    instance to raise, or a callable ``fn(job)``. Unlisted jobs succeed.
    When ``gate`` is set, every call blocks until the gate is opened.
    """

    def __init__(self, outcomes: dict[str, Any] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.calls: list[Job] = []
        self.gate: threading.Event | None = None
        self.entered = threading.Semaphore(0)
        self._lock = threading.Lock()

    def execute(self, job: Job) -> ExecutionOutcome:
        with self._lock:
            self.calls.append(job)
        self.entered.release()
        if self.gate is not None:
            self.gate.wait(timeout=10)

        outcome = self.outcomes.get(job.name, Success())
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome) and not isinstance(outcome, Success | Failure):
            return outcome(job)
        return outcome

    @property
    def call_ids(self) -> list[str]:
        with self._lock:
            return [job.id for job in self.calls]


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


class ManualBackend:
    """Backend whose ticks are fired by the test."""

    name = "manual"

    def __init__(self) -> None:
        self.callback = None
        self.started = False
        self.stop_calls = 0

    def start(self, tick_callback) -> None:
        self.callback = tick_callback
        self.started = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.started = False

    def fire(self) -> None:
        assert self.callback is not None, "backend not started"
        self.callback()

    def health(self) -> dict[str, Any]:
        return {"healthy": self.started, "backend": self.name, "tick_count": 0, "last_tick": None}


@pytest.fixture
def backend() -> ManualBackend:
    return ManualBackend()


@pytest.fixture
def jan_first() -> datetime:
    return datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
