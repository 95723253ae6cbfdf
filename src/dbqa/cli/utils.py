"""
CLI utility helpers - container setup, error reporting and output.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from dbqa.config import DbqaSettings, get_settings
from dbqa.container import DbqaContainer
from dbqa.core.errors import DbqaError
from dbqa.logging import configure_logging

console = Console()
err_console = Console(stderr=True)

DatabaseOption = typer.Option(None, "--database", "-d", help="Store URL (overrides DBQA_DATABASE_URL)")
JsonOption = typer.Option(False, "--json", help="JSON output")


# ── Container helper ─────────────────────────────────────────────────────


def make_settings(database: str | None = None) -> DbqaSettings:
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_url": database})
    return settings


@contextmanager
def open_container(database: str | None = None) -> Iterator[DbqaContainer]:
    """Container for one CLI command; errors exit with code 1."""
    settings = make_settings(database)
    configure_logging(settings.log_level, settings.log_format)
    with handle_errors(), DbqaContainer(settings) as container:
        yield container


@contextmanager
def handle_errors() -> Iterator[None]:
    try:
        yield
    except DbqaError as e:
        err_console.print(f"[bold red]Error[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


def parse_json(value: str | None, option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        err_console.print(f"[bold red]Error[/bold red]: {option} is not valid JSON ({e.msg})")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def output_item(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        console.print(f"  [cyan]{key}[/cyan]: {value}")


def output_list(
    items: list[dict[str, Any]],
    *,
    columns: list[str],
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render records as a Rich table showing ``columns``."""
    if as_json:
        console.print_json(json.dumps(items, default=str))
        return
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*("" if item.get(col) is None else str(item.get(col)) for col in columns))
    console.print(table)
