"""
CLI: ``dbqa db`` - store management commands.
"""

from __future__ import annotations

import typer

from dbqa.cli.utils import DatabaseOption, console, open_container

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(database: str | None = DatabaseOption) -> None:
    """Create the DB QA tables (idempotent)."""
    with open_container(database) as container:
        container.store.create_all()
        console.print(f"[green]Initialised[/green] {container.settings.database_url}")
