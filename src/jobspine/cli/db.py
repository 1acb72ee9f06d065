"""
CLI: ``jobspine db``: database management commands.
"""

from __future__ import annotations

import typer
from sqlalchemy.exc import SQLAlchemyError

from jobspine.cli.utils import DATABASE_OPTION_HELP, console, fail

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help=DATABASE_OPTION_HELP),  # noqa: UP007
) -> None:
    """Create the jobs and job_logs tables if they do not exist."""
    from jobspine.core.orm import create_jobspine_engine, init_db
    from jobspine.core.settings import get_settings

    url = database or get_settings().database_url
    engine = create_jobspine_engine(url)
    try:
        init_db(engine)
    except SQLAlchemyError as e:
        fail(f"Database init failed: {e}")
    finally:
        engine.dispose()
    console.print(f"[green]Initialised[/green] {engine.url.render_as_string(hide_password=True)}")
