"""
Structured error types for jobspine.

Every error raised by the scheduling core carries a category, a retryable
flag, a context dict and an optional chained cause, so the tick/dispatch
boundaries can log it uniformly and decide whether the next cycle will
simply try again.

Manifesto:
    - **Typed hierarchy:** Store, lock, execution and lookup failures are
      distinct types because they are handled at different seams.
    - **Explicit retry semantics:** Each error knows if the next cycle can
      retry it.
    - **Error chaining:** The driver exception is kept as ``cause``.

Architecture:
    ::

        JobSpineError (category, retryable, context, cause)
        ├── TransientStoreError   DATABASE   retryable
        ├── LockServiceError      LOCK       retryable
        ├── ExecutionFailure      EXECUTION
        │   └── HandlerNotFoundError
        ├── JobNotFoundError      NOT_FOUND
        └── ConfigError           CONFIG

    Lock contention is NOT an error: ``LockService.try_acquire`` returns
    ``False`` and the dispatcher skips the job.

Tags:
    error-handling, exception-hierarchy, retry-logic, jobspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for log routing and retry decisions."""

    DATABASE = "DATABASE"
    LOCK = "LOCK"
    EXECUTION = "EXECUTION"
    NOT_FOUND = "NOT_FOUND"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


class JobSpineError(Exception):
    """Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = JobSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job_id="abc").context
        {'job_id': 'abc'}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class TransientStoreError(JobSpineError):
    """A datastore query failed (connection lost, lock timeout, ...).

    Nothing partial is committed outside the transaction boundary, so the
    aborted tick or write is simply retried on the next cycle.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class LockServiceError(JobSpineError):
    """The distributed lock backend could not be reached."""

    default_category = ErrorCategory.LOCK
    default_retryable = True


class ExecutionFailure(JobSpineError):
    """An execution callback failed.

    Executors may raise this to report a failure with a reason. Any exception
    escaping a callback is routed into the retry/dead-letter state machine.
    """

    default_category = ErrorCategory.EXECUTION


class HandlerNotFoundError(ExecutionFailure):
    """No handler is registered for a job."""


class JobNotFoundError(JobSpineError):
    """An update or log write targeted a job id that does not exist."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, job_id: str, **kwargs: Any):
        super().__init__(f"Job with ID {job_id} not found", **kwargs)
        self.job_id = job_id
        self.context.setdefault("job_id", job_id)


class ConfigError(JobSpineError):
    """Invalid or missing configuration."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "JobSpineError",
    "TransientStoreError",
    "LockServiceError",
    "ExecutionFailure",
    "HandlerNotFoundError",
    "JobNotFoundError",
    "ConfigError",
]
