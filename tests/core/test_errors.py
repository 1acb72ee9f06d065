"""Tests for the jobspine error hierarchy."""

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


class TestJobSpineError:
    def test_defaults(self):
        err = JobSpineError("boom")
        assert err.message == "boom"
        assert str(err) == "boom"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False
        assert err.context == {}

    def test_with_context_is_fluent(self):
        err = JobSpineError("boom").with_context(job_id="j1", attempt=2)
        assert err.context == {"job_id": "j1", "attempt": 2}

    def test_cause_is_chained(self):
        root = ValueError("root cause")
        err = JobSpineError("wrapped", cause=root)
        assert err.__cause__ is root
        assert err.to_dict()["cause"] == "root cause"

    def test_to_dict(self):
        err = TransientStoreError("db down").with_context(operation="claim_due_jobs")
        data = err.to_dict()
        assert data["error_type"] == "TransientStoreError"
        assert data["category"] == "DATABASE"
        assert data["retryable"] is True
        assert data["context"] == {"operation": "claim_due_jobs"}


class TestSubclasses:
    def test_categories_and_retryability(self):
        assert TransientStoreError("x").retryable is True
        assert LockServiceError("x").category == ErrorCategory.LOCK
        assert LockServiceError("x").retryable is True
        assert ExecutionFailure("x").category == ErrorCategory.EXECUTION
        assert ConfigError("x").category == ErrorCategory.CONFIG
        assert ConfigError("x").retryable is False

    def test_handler_not_found_is_execution_failure(self):
        assert isinstance(HandlerNotFoundError("missing"), ExecutionFailure)

    def test_job_not_found_message_and_context(self):
        err = JobNotFoundError("abc")
        assert err.message == "Job with ID abc not found"
        assert err.job_id == "abc"
        assert err.context["job_id"] == "abc"
        assert err.category == ErrorCategory.NOT_FOUND
        assert err.retryable is False

    def test_explicit_retryable_overrides_default(self):
        assert TransientStoreError("x", retryable=False).retryable is False
