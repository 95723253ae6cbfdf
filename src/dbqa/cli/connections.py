"""
CLI: ``dbqa connections`` - data-source connections.
"""

from __future__ import annotations

import typer

from dbqa.cli.utils import (
    DatabaseOption,
    JsonOption,
    console,
    err_console,
    open_container,
    output_list,
    parse_json,
)
from dbqa.core.store import ConnectionCreate

app = typer.Typer(no_args_is_help=True)


@app.command("add")
def add_connection(
    name: str = typer.Argument(..., help="Connection name"),
    type: str = typer.Option("postgresql", "--type", "-t", help="Dialect: postgresql, mysql, sqlite, ..."),
    url: str | None = typer.Option(None, "--url", help="Full SQLAlchemy URL"),
    config: str | None = typer.Option(None, "--config", help="JSON with host/port/database/username/password"),
    space: str | None = typer.Option(None, "--space", help="Space ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Register a data-source connection."""
    if (url is None) == (config is None):
        err_console.print("[bold red]Error[/bold red]: pass exactly one of --url or --config")
        raise typer.Exit(code=1)
    payload = {"url": url} if url else parse_json(config, "--config")
    with open_container(database) as container:
        conn = container.store.create_connection(
            ConnectionCreate(name=name, type=type, config=payload, space_id=space)
        )
        console.print(f"[green]Created connection[/green] {conn.id}")


@app.command("list")
def list_connections(
    space: str | None = typer.Option(None, "--space"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List connections (credentials are not shown)."""
    with open_container(database) as container:
        items = [
            {k: v for k, v in c.to_dict().items() if k != "config"}
            for c in container.store.list_connections(space)
        ]
    output_list(items, columns=["id", "name", "type", "space_id"], as_json=json_out, title="Connections")


@app.command("delete")
def delete_connection(
    connection_id: str = typer.Argument(..., help="Connection ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Delete a connection no query uses."""
    with open_container(database) as container:
        if not container.store.delete_connection(connection_id):
            err_console.print(f"[yellow]No connection {connection_id}[/yellow]")
            raise typer.Exit(code=1)
        console.print(f"[green]Deleted[/green] {connection_id}")
