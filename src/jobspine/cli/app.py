"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="jobspine",
    help="jobspine: distributed job scheduling with retries and dead-lettering.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("spine-jobs")
        except PackageNotFoundError:
            from jobspine import __version__ as v
        typer.echo(f"jobspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI: run workers, manage jobs, and set up the database."""
    import sys

    from jobspine.core.logging import configure_logging
    from jobspine.core.settings import get_settings

    settings = get_settings()
    # stdout carries command output (tables, --json), so logs go to stderr
    configure_logging(
        settings.log_level,
        json_format=settings.log_format == "json",
        service=settings.service_name,
        stream=sys.stderr,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from jobspine.cli.db import app as db_app  # noqa: E402
from jobspine.cli.jobs import app as jobs_app  # noqa: E402
from jobspine.cli.worker import app as worker_app  # noqa: E402

app.add_typer(worker_app, name="worker", help="Run a scheduler worker.")
app.add_typer(jobs_app, name="jobs", help="Create and inspect jobs.")
app.add_typer(db_app, name="db", help="Database operations.")
