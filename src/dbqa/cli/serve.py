"""
CLI: ``dbqa serve`` - start the API server.
"""

from __future__ import annotations

import typer
import uvicorn

from dbqa.api import create_app
from dbqa.cli.utils import console, make_settings
from dbqa.logging import configure_logging


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    with_scheduler: bool = typer.Option(False, "--with-scheduler", help="Also run the tick loop"),
    database: str | None = typer.Option(None, "--database", "-d"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the DB QA REST API server."""
    settings = make_settings(database)
    configure_logging(settings.log_level, settings.log_format)
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"[bold green]Starting DB QA API[/bold green] on {host}:{port}")
    uvicorn.run(
        create_app(settings, start_scheduler=with_scheduler),
        host=host,
        port=port,
        log_level=log_level,
    )
