"""
CLI: ``jobspine worker``: run a scheduler worker process.
"""

from __future__ import annotations

import importlib
import signal
import threading
from typing import Any

import typer

from jobspine.cli.utils import DATABASE_OPTION_HELP, console, fail, get_repository
from jobspine.core.errors import JobSpineError

app = typer.Typer(no_args_is_help=True)


def _settings_with(**overrides: Any):
    from jobspine.core.settings import get_settings

    updates = {k: v for k, v in overrides.items() if v is not None}
    return get_settings().model_copy(update=updates)


def _serve_metrics(metrics: Any, port: int) -> None:
    from prometheus_client import start_http_server

    try:
        start_http_server(port, registry=metrics.registry)
    except OSError as e:
        fail(f"Cannot serve metrics on port {port}: {e}")
    console.print(f"Serving metrics on :{port}/metrics")


@app.command("start")
def start(
    interval: float | None = typer.Option(  # noqa: UP007
        None, "--interval", "-i", min=0.01, help="Poll every N seconds (overrides --cron)"
    ),
    cron: str | None = typer.Option(None, "--cron", help="Poll on a cron expression"),  # noqa: UP007
    workers: int | None = typer.Option(None, "--workers", "-w", min=1, help="Concurrent job threads"),  # noqa: UP007
    lock_backend: str | None = typer.Option(None, "--lock-backend", help="redis or memory"),  # noqa: UP007
    metrics_port: int | None = typer.Option(  # noqa: UP007
        None, "--metrics-port", min=1, max=65535, help="Serve Prometheus /metrics on this port"
    ),
    handlers: list[str] = typer.Option(  # noqa: B008
        [], "--import", help="Module registering handlers (repeatable)"
    ),
    once: bool = typer.Option(False, "--once", help="Run one claim pass, drain, and exit"),
    drain_timeout: float | None = typer.Option(  # noqa: UP007
        None, "--drain-timeout", help="Give up draining after N seconds"
    ),
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
) -> None:
    """Start a worker: claim due jobs, run them under per-job locks, drain on exit.

    SIGINT / SIGTERM stop claiming and wait for in-flight jobs.

    Example::

        jobspine worker start --import myapp.jobs --workers 8
        jobspine worker start --interval 5 --lock-backend memory
    """
    from jobspine.core.settings import JobSpineSettings
    from jobspine.scheduling import create_scheduler

    if cron is not None:
        from croniter import croniter

        if not croniter.is_valid(cron):
            raise typer.BadParameter(f"Invalid cron expression: {cron!r}")

    settings: JobSpineSettings = _settings_with(
        poll_interval_seconds=interval,
        poll_cron=cron,
        max_workers=workers,
        lock_backend=lock_backend,
        metrics_port=metrics_port,
        database_url=database,
    )
    if settings.metrics_port is not None:
        settings = settings.model_copy(update={"metrics_backend": "prometheus"})
    if cron is not None and interval is None:
        settings = settings.model_copy(update={"poll_interval_seconds": None})

    for module in handlers:
        try:
            importlib.import_module(module)
        except ImportError as e:
            fail(f"Cannot import handler module {module!r}: {e}")

    try:
        service = create_scheduler(settings, store=get_repository(settings.database_url))
    except JobSpineError as e:
        fail(e)

    if settings.metrics_port is not None:
        _serve_metrics(service.metrics, settings.metrics_port)

    cadence = (
        f"every {settings.poll_interval_seconds}s"
        if settings.poll_interval_seconds
        else f"cron '{settings.poll_cron}'"
    )
    console.print(
        f"[bold green]Starting jobspine worker[/bold green] {service.instance_id} "
        f"(threads={settings.max_workers}, poll={cadence}, locks={settings.lock_backend})"
    )

    stop_requested = threading.Event()

    def _handle_signal(signum, frame):
        console.print(f"\n[yellow]Received signal {signum}, draining...[/yellow]")
        stop_requested.set()

    if not once:
        try:
            signal.signal(signal.SIGINT, _handle_signal)
            signal.signal(signal.SIGTERM, _handle_signal)
        except ValueError:
            pass  # Not in main thread

    try:
        if once:
            service.run_once()
        else:
            service.start()
            while not stop_requested.wait(1.0):
                pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    finally:
        drained = service.shutdown(timeout=drain_timeout)

    if not drained:
        console.print("[red]Drain timed out; some jobs were still running[/red]")
        raise typer.Exit(code=2)

    stats = service.health().poller
    console.print(f"[green]Worker stopped[/green] (ticks={stats.tick_count}, claimed={stats.jobs_claimed})")
