"""
CLI utility helpers: output formatting and repository access.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from jobspine.core.errors import JobSpineError
from jobspine.core.models import Job, JobLog, ensure_utc
from jobspine.core.repositories import JobRepository

console = Console()
err_console = Console(stderr=True)

DATABASE_OPTION_HELP = "Database URL (defaults to JOBSPINE_DATABASE_URL)"


# ── Repository helper ────────────────────────────────────────────────────


def get_repository(database: str | None = None) -> JobRepository:
    """Open a JobRepository for *database* or the configured URL.

    Tables are created on first use so commands work against a fresh file.
    """
    from jobspine.core.orm import create_jobspine_engine, init_db, jobspine_session_factory
    from jobspine.core.settings import get_settings

    settings = get_settings()
    engine = create_jobspine_engine(database or settings.database_url, echo=settings.database_echo)
    try:
        init_db(engine)
    except SQLAlchemyError as e:
        fail(f"Cannot open database: {e}")
    return JobRepository(jobspine_session_factory(engine))


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 option value; naive values are taken as UTC."""
    if value is None:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError as e:
        raise typer.BadParameter(f"Not an ISO-8601 datetime: {value!r}") from e


def fail(error: JobSpineError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, JobSpineError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_jobs(jobs: Sequence[Job], *, as_json: bool = False, title: str = "Jobs") -> None:
    """Render jobs as a Rich table (or JSON)."""
    if as_json:
        print_json([job.to_dict() for job in jobs])
        return
    if not jobs:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in ("id", "name", "status", "scheduled_at", "recurrence", "retries", "dead"):
        table.add_column(col, overflow="fold")
    for job in jobs:
        table.add_row(
            job.id,
            job.name,
            job.status.value,
            job.scheduled_at.isoformat(),
            job.recurrence,
            f"{job.retry_count}/{job.max_retries}",
            "yes" if job.dead_lettered else "",
        )
    console.print(table)


def print_job(job: Job, *, as_json: bool = False) -> None:
    data = job.to_dict()
    if as_json:
        print_json(data)
        return
    console.print(f"[bold]Job {job.id}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def print_logs(logs: Sequence[JobLog], *, as_json: bool = False) -> None:
    if as_json:
        print_json([entry.to_dict() for entry in logs])
        return
    if not logs:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title="Job Logs", pad_edge=False)
    for col in ("logged_at", "status", "message"):
        table.add_column(col, overflow="fold")
    for entry in logs:
        table.add_row(entry.logged_at.isoformat(), entry.status.value, entry.message or "")
    console.print(table)
