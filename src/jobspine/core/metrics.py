"""Job outcome counters.

The outcome handler only needs three fire-and-forget counters. Two
recorders ship: ``InMemoryMetrics`` for tests and embedding, and
``PrometheusMetrics`` which registers ``prometheus_client`` counters on its
own ``CollectorRegistry`` so several schedulers in one process (or one test
session) never collide on metric names. Names carry no prefix unless a
``namespace`` is given: ``jobs_processed_total`` or ``<namespace>_jobs_processed_total``.
"""

from __future__ import annotations

import threading

from prometheus_client import CollectorRegistry, Counter, generate_latest


class InMemoryMetrics:
    """Thread-safe in-process counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.processed = 0
        self.failed = 0
        self.dead_lettered = 0

    def increment_processed(self) -> None:
        with self._lock:
            self.processed += 1

    def increment_failed(self) -> None:
        with self._lock:
            self.failed += 1

    def increment_dead_lettered(self) -> None:
        with self._lock:
            self.dead_lettered += 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "processed": self.processed,
                "failed": self.failed,
                "dead_lettered": self.dead_lettered,
            }


class PrometheusMetrics:
    """Prometheus counters for job outcomes."""

    def __init__(self, registry: CollectorRegistry | None = None, namespace: str = "") -> None:
        self.registry = registry or CollectorRegistry()
        self.jobs_processed = Counter(
            "jobs_processed",
            "Total number of jobs processed",
            namespace=namespace,
            registry=self.registry,
        )
        self.jobs_failed = Counter(
            "jobs_failed",
            "Total number of jobs failed",
            namespace=namespace,
            registry=self.registry,
        )
        self.jobs_dead_lettered = Counter(
            "jobs_dead_lettered",
            "Total number of jobs dead-lettered",
            namespace=namespace,
            registry=self.registry,
        )

    def increment_processed(self) -> None:
        self.jobs_processed.inc()

    def increment_failed(self) -> None:
        self.jobs_failed.inc()

    def increment_dead_lettered(self) -> None:
        self.jobs_dead_lettered.inc()

    def render(self) -> bytes:
        """Exposition-format text for a /metrics endpoint."""
        return generate_latest(self.registry)
