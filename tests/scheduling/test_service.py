"""End-to-end tests for JobSchedulerService wiring."""

from datetime import timedelta

import pytest

from jobspine.core.errors import ConfigError
from jobspine.core.locks import InMemoryLockService, job_lock_key
from jobspine.core.metrics import InMemoryMetrics, PrometheusMetrics
from jobspine.core.models import Failure, JobLogStatus, JobStatus, utcnow
from jobspine.core.settings import JobSpineSettings
from jobspine.scheduling import (
    CronSchedulerBackend,
    JobSchedulerService,
    ThreadSchedulerBackend,
    build_backend,
    build_lock_service,
    build_metrics,
    create_scheduler,
)


@pytest.fixture
def service(repository, locks, executor, metrics, backend):
    svc = JobSchedulerService(
        repository,
        locks,
        executor,
        backend,
        metrics=metrics,
        max_workers=2,
        drain_poll_interval=0.01,
        instance_id="worker-1",
    )
    yield svc
    svc.shutdown(timeout=10)


class TestJobSchedulerService:
    def test_start_claims_and_runs_due_jobs(self, service, repository, make_job, locks):
        job = make_job("nightly")

        service.start()
        assert service.shutdown(timeout=10) is True

        stored = repository.get_job(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.last_executed_at is not None
        assert locks.active_keys() == []

    def test_recurring_daily_job(self, service, repository, make_job, jan_first):
        job = make_job("report", scheduled_at=jan_first, recurrence="daily")

        service.run_once()
        service.shutdown(timeout=10)

        pending = repository.list_jobs(status=JobStatus.PENDING)
        assert len(pending) == 1
        successor = pending[0]
        assert successor.name == "report"
        assert successor.scheduled_at == jan_first + timedelta(days=1)
        assert successor.recurrence == "daily"
        assert repository.get_job(job.id).status == JobStatus.COMPLETED

    def test_failures_until_dead_letter(self, service, repository, make_job, executor, backend, metrics):
        executor.outcomes["flaky"] = Failure("upstream 503")
        job = make_job("flaky", max_retries=2)

        service.start()
        # The outcome is recorded on a worker thread; wait for it before ticking again
        service.dispatcher.counter.wait_for_zero(timeout=10)
        backend.fire()
        service.dispatcher.counter.wait_for_zero(timeout=10)
        service.shutdown(timeout=10)

        stored = repository.get_job(job.id)
        assert stored.dead_lettered is True
        assert stored.status == JobStatus.FAILED
        assert stored.retry_count == 2
        assert [j.id for j in repository.list_dead_lettered()] == [job.id]
        assert metrics.snapshot() == {"processed": 0, "failed": 2, "dead_lettered": 1}

    def test_job_locked_elsewhere_is_left_running(self, service, repository, make_job, locks, executor):
        job = make_job("contended")
        locks.try_acquire(job_lock_key(job.id), "worker-2", 30)

        service.run_once()
        service.shutdown(timeout=10)

        assert executor.calls == []
        assert repository.get_job(job.id).status == JobStatus.RUNNING

    def test_shutdown_waits_for_in_flight(self, service, repository, make_job, executor):
        import threading

        executor.gate = threading.Event()
        job = make_job("slow")
        service.start()
        assert executor.entered.acquire(timeout=5)

        assert service.coordinator.shutdown(timeout=0.05) is False
        executor.gate.set()
        assert service.shutdown(timeout=10) is True
        assert repository.get_job(job.id).status == JobStatus.COMPLETED
        assert [log.status for log in repository.list_logs(job.id)] == [
            JobLogStatus.STARTED,
            JobLogStatus.COMPLETED,
        ]

    def test_no_claims_after_shutdown(self, service, make_job, backend, executor):
        service.start()
        callback = backend.callback
        service.shutdown(timeout=10)

        make_job("late")
        callback()
        assert executor.calls == []

    def test_cannot_restart(self, service):
        service.start()
        service.shutdown(timeout=10)
        with pytest.raises(RuntimeError):
            service.start()

    def test_shutdown_before_start(self, service):
        assert service.shutdown() is True
        assert service.shutdown() is True

    def test_run_once_after_shutdown_claims_nothing(self, service, repository, make_job, executor):
        service.run_once()
        service.shutdown(timeout=10)

        job = make_job("late")
        assert service.run_once() == 0
        assert repository.get_job(job.id).status == JobStatus.PENDING
        assert executor.calls == []

    def test_health(self, service, make_job):
        assert service.health().healthy is False
        service.start()
        health = service.health()
        assert health.healthy is True
        assert health.instance_id == "worker-1"
        assert health.backend["backend"] == "manual"
        data = health.to_dict()
        assert data["poller"]["tick_count"] == 1
        assert data["active_jobs"] >= 0


class TestFactories:
    def test_build_backend_interval(self):
        backend = build_backend(JobSpineSettings(_env_file=None, poll_interval_seconds=5))
        assert isinstance(backend, ThreadSchedulerBackend)
        assert backend.health()["interval_seconds"] == 5

    def test_build_backend_cron(self):
        backend = build_backend(JobSpineSettings(_env_file=None, poll_cron="*/5 * * * *"))
        assert isinstance(backend, CronSchedulerBackend)
        assert backend.expression == "*/5 * * * *"

    def test_build_lock_service_memory(self):
        locks = build_lock_service(JobSpineSettings(_env_file=None, lock_backend="memory"))
        assert isinstance(locks, InMemoryLockService)

    def test_build_lock_service_unknown(self):
        settings = JobSpineSettings(_env_file=None).model_copy(update={"lock_backend": "zookeeper"})
        with pytest.raises(ConfigError):
            build_lock_service(settings)

    def test_build_metrics(self):
        assert isinstance(build_metrics(JobSpineSettings(_env_file=None)), InMemoryMetrics)
        prom = build_metrics(JobSpineSettings(_env_file=None, metrics_backend="prometheus"))
        assert isinstance(prom, PrometheusMetrics)

    def test_build_metrics_unknown(self):
        settings = JobSpineSettings(_env_file=None).model_copy(update={"metrics_backend": "statsd"})
        with pytest.raises(ConfigError):
            build_metrics(settings)

    def test_create_scheduler_counts_into_prometheus(self, db_url, engine, repository, make_job, executor):
        settings = JobSpineSettings(
            _env_file=None, database_url=db_url, lock_backend="memory", metrics_backend="prometheus"
        )
        make_job("a")

        service = create_scheduler(settings, executor, store=repository)
        try:
            service.run_once()
        finally:
            service.shutdown(timeout=10)

        assert isinstance(service.metrics, PrometheusMetrics)
        assert service.metrics.registry.get_sample_value("jobs_processed_total") == 1.0

    def test_create_scheduler_from_settings(self, db_url, engine, repository, make_job, executor):
        settings = JobSpineSettings(
            _env_file=None,
            database_url=db_url,
            lock_backend="memory",
            poll_interval_seconds=60,
            max_workers=1,
            instance_id="from-settings",
        )
        job = make_job("a")

        service = create_scheduler(settings, executor)
        try:
            assert service.instance_id == "from-settings"
            assert isinstance(service.locks, InMemoryLockService)
            assert service.run_once() == 1
        finally:
            assert service.shutdown(timeout=10) is True

        assert executor.call_ids == [job.id]
        assert repository.get_job(job.id).status == JobStatus.COMPLETED

    def test_create_scheduler_uses_default_registry(self, db_url, engine, repository, make_job):
        from jobspine.execution import register_handler

        seen = []

        @register_handler("registered")
        def _handler(job):
            seen.append(job.id)
            return "ok"

        job = make_job("registered", scheduled_at=utcnow() - timedelta(seconds=1))
        settings = JobSpineSettings(_env_file=None, database_url=db_url, lock_backend="memory")
        service = create_scheduler(settings, store=repository)
        try:
            service.run_once()
        finally:
            service.shutdown(timeout=10)

        assert seen == [job.id]
        assert repository.list_logs(job.id)[-1].message == "Job executed successfully"
