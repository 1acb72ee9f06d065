"""jobspine.core - models, errors, settings, logging, persistence and locks."""

from jobspine.core.errors import (
    ConfigError,
    ErrorCategory,
    ExecutionFailure,
    HandlerNotFoundError,
    JobNotFoundError,
    JobSpineError,
    LockServiceError,
    TransientStoreError,
)
from jobspine.core.models import (
    ExecutionOutcome,
    Failure,
    Job,
    JobLog,
    JobLogStatus,
    JobStatus,
    Success,
    utcnow,
)

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ExecutionFailure",
    "HandlerNotFoundError",
    "JobNotFoundError",
    "JobSpineError",
    "LockServiceError",
    "TransientStoreError",
    "ExecutionOutcome",
    "Failure",
    "Job",
    "JobLog",
    "JobLogStatus",
    "JobStatus",
    "Success",
    "utcnow",
]
