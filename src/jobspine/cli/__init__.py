"""
jobspine CLI: Typer-based command-line interface.

Entry point: ``jobspine`` (see pyproject.toml ``[project.scripts]``).
"""

from jobspine.cli.app import app

__all__ = ["app"]
