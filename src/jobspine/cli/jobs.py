"""
CLI: ``jobspine jobs``: create and inspect jobs.
"""

from __future__ import annotations

import json

import typer

from jobspine.cli.utils import (
    DATABASE_OPTION_HELP,
    console,
    fail,
    get_repository,
    parse_datetime,
    print_job,
    print_jobs,
    print_logs,
)
from jobspine.core.errors import JobSpineError
from jobspine.core.models import JobStatus, utcnow
from jobspine.core.repositories import JobCreate
from jobspine.scheduling.recurrence import known_recurrences

app = typer.Typer(no_args_is_help=True)


@app.command("add")
def add(
    name: str = typer.Argument(..., help="Job name (also the default handler name)"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON object passed to the handler"),
    at: str | None = typer.Option(None, "--at", help="ISO-8601 due time (default: now)"),  # noqa: UP007
    recurrence: str = typer.Option("none", "--recurrence", "-r", help="none, daily or weekly"),
    max_retries: int | None = typer.Option(None, "--max-retries", min=0),  # noqa: UP007
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create a pending job.

    Example::

        jobspine jobs add nightly-report --recurrence daily --at 2024-01-01T02:00:00
        jobspine jobs add send-mail --payload '{"to": "ops@example.com"}'
    """
    from jobspine.core.settings import get_settings

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise typer.BadParameter("--payload must be a JSON object")

    if recurrence.lower() not in known_recurrences():
        raise typer.BadParameter(
            f"Unknown recurrence {recurrence!r}; expected one of {known_recurrences()}"
        )

    retries = max_retries if max_retries is not None else get_settings().default_max_retries
    try:
        job = get_repository(database).create_job(
            JobCreate(
                name=name,
                scheduled_at=parse_datetime(at) or utcnow(),
                payload=data,
                recurrence=recurrence.lower(),
                max_retries=retries,
            )
        )
    except JobSpineError as e:
        fail(e)

    if json_out:
        print_job(job, as_json=True)
    else:
        console.print(f"[green]Created job[/green] {job.id} due {job.scheduled_at.isoformat()}")


@app.command("list")
def list_jobs(
    status: JobStatus | None = typer.Option(None, "--status", "-s", case_sensitive=False),  # noqa: UP007
    limit: int = typer.Option(100, "--limit", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs ordered by due time."""
    try:
        jobs = get_repository(database).list_jobs(status=status, limit=limit, offset=offset)
    except JobSpineError as e:
        fail(e)
    print_jobs(jobs, as_json=json_out)


@app.command("show")
def show(
    job_id: str = typer.Argument(...),
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one job."""
    try:
        job = get_repository(database).get_job(job_id)
    except JobSpineError as e:
        fail(e)
    if job is None:
        fail(f"Job with ID {job_id} not found")
    print_job(job, as_json=json_out)


@app.command("logs")
def logs(
    job_id: str = typer.Argument(...),
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the log trail of a job, oldest first."""
    try:
        entries = get_repository(database).list_logs(job_id)
    except JobSpineError as e:
        fail(e)
    print_logs(entries, as_json=json_out)


@app.command("dead-letters")
def dead_letters(
    limit: int = typer.Option(100, "--limit", min=1),
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List dead-lettered jobs."""
    try:
        jobs = get_repository(database).list_dead_lettered(limit=limit)
    except JobSpineError as e:
        fail(e)
    print_jobs(jobs, as_json=json_out, title="Dead-lettered Jobs")
