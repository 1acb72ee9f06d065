"""Tests for the jobspine CLI."""

import json

import pytest
from typer.testing import CliRunner

from jobspine.cli import app
from jobspine.core.models import Failure
from jobspine.execution import register_handler

runner = CliRunner()


@pytest.fixture
def invoke(db_url):
    """Run a CLI command against the test database."""

    def _invoke(*args: str):
        return runner.invoke(app, [*args, "--database", db_url])

    return _invoke


def _add(invoke, name: str, *extra: str) -> dict:
    result = invoke("jobs", "add", name, "--json", *extra)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.startswith("jobspine ")

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "worker" in result.output
        assert "jobs" in result.output


class TestDb:
    def test_init(self, invoke):
        result = invoke("db", "init")
        assert result.exit_code == 0, result.output
        assert "Initialised" in result.output


class TestJobs:
    def test_add_and_show(self, invoke):
        job = _add(invoke, "nightly", "--payload", '{"table": "events"}', "--recurrence", "Daily")
        assert job["status"] == "pending"
        assert job["recurrence"] == "daily"
        assert job["payload"] == {"table": "events"}
        assert job["max_retries"] == 3

        result = invoke("jobs", "show", job["id"], "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["id"] == job["id"]

    def test_add_with_due_time_and_retries(self, invoke):
        job = _add(invoke, "later", "--at", "2030-05-01T10:00:00", "--max-retries", "5")
        assert job["scheduled_at"].startswith("2030-05-01T10:00:00")
        assert job["max_retries"] == 5

    def test_add_rejects_bad_payload(self, invoke):
        assert invoke("jobs", "add", "x", "--payload", "not json").exit_code == 2
        assert invoke("jobs", "add", "x", "--payload", "[1, 2]").exit_code == 2

    def test_add_rejects_unknown_recurrence(self, invoke):
        result = invoke("jobs", "add", "x", "--recurrence", "hourly")
        assert result.exit_code == 2

    def test_add_rejects_bad_datetime(self, invoke):
        assert invoke("jobs", "add", "x", "--at", "tomorrow").exit_code == 2

    def test_list(self, invoke):
        _add(invoke, "a")
        _add(invoke, "b")

        result = invoke("jobs", "list", "--json")
        assert result.exit_code == 0, result.output
        assert sorted(j["name"] for j in json.loads(result.stdout)) == ["a", "b"]

        result = invoke("jobs", "list", "--status", "completed", "--json")
        assert json.loads(result.stdout) == []

    def test_list_empty_table(self, invoke):
        result = invoke("jobs", "list")
        assert result.exit_code == 0
        assert "No items." in result.output

    def test_show_missing(self, invoke):
        result = invoke("jobs", "show", "does-not-exist")
        assert result.exit_code == 1
        assert "Job with ID does-not-exist not found" in result.output

    def test_logs_and_dead_letters_empty(self, invoke):
        job = _add(invoke, "a")
        result = invoke("jobs", "logs", job["id"], "--json")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

        result = invoke("jobs", "dead-letters", "--json")
        assert json.loads(result.stdout) == []


class TestWorker:
    def test_once_runs_due_jobs(self, invoke):
        seen = []

        @register_handler("cli-job")
        def _handler(job):
            seen.append(job.id)

        job = _add(invoke, "cli-job")

        result = invoke("worker", "start", "--once", "--lock-backend", "memory")
        assert result.exit_code == 0, result.output
        assert "Worker stopped" in result.output
        assert seen == [job["id"]]

        shown = json.loads(invoke("jobs", "show", job["id"], "--json").stdout)
        assert shown["status"] == "completed"
        logs = json.loads(invoke("jobs", "logs", job["id"], "--json").stdout)
        assert [entry["status"] for entry in logs] == ["started", "completed"]

    def test_once_dead_letters_exhausted_job(self, invoke):
        register_handler("always-fails")(lambda job: Failure("nope"))
        job = _add(invoke, "always-fails", "--max-retries", "1")

        result = invoke("worker", "start", "--once", "--lock-backend", "memory")
        assert result.exit_code == 0, result.output

        dead = json.loads(invoke("jobs", "dead-letters", "--json").stdout)
        assert [j["id"] for j in dead] == [job["id"]]
        assert dead[0]["status"] == "failed"

    def test_unknown_handler_is_recorded_as_failure(self, invoke):
        job = _add(invoke, "unregistered", "--max-retries", "3")
        result = invoke("worker", "start", "--once", "--lock-backend", "memory")
        assert result.exit_code == 0, result.output

        shown = json.loads(invoke("jobs", "show", job["id"], "--json").stdout)
        assert shown["status"] == "pending"
        assert shown["retry_count"] == 1

    def test_bad_import(self, invoke):
        result = invoke("worker", "start", "--once", "--import", "no.such.module")
        assert result.exit_code == 1
        assert "Cannot import handler module" in result.output

    def test_bad_cron(self, invoke):
        result = invoke("worker", "start", "--once", "--cron", "nope")
        assert result.exit_code == 2

    def test_metrics_port_serves_prometheus_registry(self, invoke, monkeypatch):
        served = []
        monkeypatch.setattr(
            "prometheus_client.start_http_server",
            lambda port, registry: served.append((port, registry)),
        )
        register_handler("counted")(lambda job: "ok")
        _add(invoke, "counted")

        result = invoke("worker", "start", "--once", "--lock-backend", "memory", "--metrics-port", "9464")
        assert result.exit_code == 0, result.output
        assert "Serving metrics on :9464/metrics" in result.output

        [(port, registry)] = served
        assert port == 9464
        assert registry.get_sample_value("jobs_processed_total") == 1.0

    def test_metrics_port_in_use(self, invoke, monkeypatch):
        def _busy(port, registry):
            raise OSError("Address already in use")

        monkeypatch.setattr("prometheus_client.start_http_server", _busy)
        result = invoke("worker", "start", "--once", "--lock-backend", "memory", "--metrics-port", "9464")
        assert result.exit_code == 1
        assert "Cannot serve metrics on port 9464" in result.output
