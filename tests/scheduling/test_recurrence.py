"""Tests for the recurrence engine."""

from datetime import UTC, datetime, timedelta

import pytest

from jobspine.core.models import Job, JobStatus
from jobspine.scheduling.recurrence import (
    RecurrenceEngine,
    build_successor,
    known_recurrences,
    next_occurrence,
    register_recurrence,
    unregister_recurrence,
)


class TestNextOccurrence:
    def test_daily(self, jan_first):
        assert next_occurrence(jan_first, "daily") == datetime(2024, 1, 2, tzinfo=UTC)

    def test_weekly(self, jan_first):
        assert next_occurrence(jan_first, "weekly") == datetime(2024, 1, 8, tzinfo=UTC)

    def test_month_and_leap_day_boundaries(self):
        assert next_occurrence(datetime(2024, 2, 28, 9, 30, tzinfo=UTC), "daily") == datetime(
            2024, 2, 29, 9, 30, tzinfo=UTC
        )
        assert next_occurrence(datetime(2024, 12, 28, tzinfo=UTC), "weekly") == datetime(
            2025, 1, 4, tzinfo=UTC
        )

    @pytest.mark.parametrize("rule", ["DAILY", "Daily", " daily "])
    def test_case_insensitive(self, jan_first, rule):
        assert next_occurrence(jan_first, rule) == jan_first + timedelta(days=1)

    @pytest.mark.parametrize("rule", ["none", "None", "hourly", "", None])
    def test_no_occurrence(self, jan_first, rule):
        assert next_occurrence(jan_first, rule) is None


class TestRegistration:
    def test_register_custom_rule(self, jan_first):
        register_recurrence("hourly", lambda at: at + timedelta(hours=1))
        try:
            assert next_occurrence(jan_first, "Hourly") == jan_first + timedelta(hours=1)
            assert "hourly" in known_recurrences()
        finally:
            assert unregister_recurrence("hourly") is True

    def test_none_is_reserved(self):
        with pytest.raises(ValueError):
            register_recurrence("none", lambda at: at)


class TestBuildSuccessor:
    def test_daily_scenario(self, jan_first):
        """Daily job at 2024-01-01T00:00 -> successor at 2024-01-02T00:00."""
        job = Job(
            name="report",
            scheduled_at=jan_first,
            recurrence="daily",
            max_retries=3,
            status=JobStatus.COMPLETED,
            retry_count=0,
            payload={"to": "ops@example.com"},
            metadata={"owner": "ops"},
            last_executed_at=jan_first,
        )
        now = datetime(2024, 1, 1, 0, 0, 5, tzinfo=UTC)
        successor = build_successor(job, now=now)

        assert successor.id != job.id
        assert successor.scheduled_at == datetime(2024, 1, 2, tzinfo=UTC)
        assert successor.status == JobStatus.PENDING
        assert successor.retry_count == 0
        assert successor.dead_lettered is False
        assert successor.last_executed_at is None
        assert successor.name == "report"
        assert successor.payload == {"to": "ops@example.com"}
        assert successor.payload is not job.payload
        assert successor.metadata == {"owner": "ops"}
        assert successor.max_retries == 3
        assert successor.recurrence == "daily"
        assert successor.created_at == successor.updated_at == now

    def test_non_recurring(self, jan_first):
        assert build_successor(Job(name="x", scheduled_at=jan_first)) is None


class TestRecurrenceEngine:
    def test_reschedule_inserts_row(self, repository, make_job, jan_first):
        job = make_job("weekly", scheduled_at=jan_first, recurrence="weekly", status=JobStatus.COMPLETED)
        engine = RecurrenceEngine(repository)

        successor = engine.reschedule(job)

        stored = repository.get_job(successor.id)
        assert stored.scheduled_at == datetime(2024, 1, 8, tzinfo=UTC)
        assert stored.status == JobStatus.PENDING
        assert repository.get_job(job.id).status == JobStatus.COMPLETED

    def test_unknown_rule_inserts_nothing(self, repository, make_job):
        job = make_job("odd", recurrence="fortnightly")
        assert RecurrenceEngine(repository).reschedule(job) is None
        assert len(repository.list_jobs()) == 1
