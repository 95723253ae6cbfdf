"""
CLI: ``dbqa queries`` - quality-check queries and their results.
"""

from __future__ import annotations

import typer

from dbqa.cli.utils import (
    DatabaseOption,
    JsonOption,
    console,
    err_console,
    open_container,
    output_item,
    output_list,
    parse_json,
)
from dbqa.core.enums import ExecutionFrequency, ExecutionStatus
from dbqa.core.store import QueryCreate, QueryUpdate

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ["id", "name", "category", "execution_frequency", "enabled", "next_execution_time"]


@app.command("add")
def add_query(
    name: str = typer.Argument(..., help="Query name"),
    connection: str = typer.Option(..., "--connection", "-c", help="Connection ID"),
    sql: str = typer.Option(..., "--sql", help="SQL text"),
    category: str = typer.Option("data_accuracy", "--category", help="Quality category"),
    frequency: ExecutionFrequency = typer.Option(ExecutionFrequency.MANUAL, "--frequency", "-f"),
    expected: str | None = typer.Option(None, "--expected", help="Expected result as JSON"),
    thresholds: str | None = typer.Option(None, "--thresholds", help="Thresholds as JSON"),
    timeout: float | None = typer.Option(None, "--timeout", help="Timeout in seconds"),
    description: str | None = typer.Option(None, "--description"),
    space: str | None = typer.Option(None, "--space"),
    enabled: bool = typer.Option(True, "--enabled/--disabled"),
    database: str | None = DatabaseOption,
) -> None:
    """Create a quality-check query."""
    spec = QueryCreate(
        name=name,
        connection_id=connection,
        query=sql,
        category=category,
        execution_frequency=frequency,
        expected_result=parse_json(expected, "--expected"),
        thresholds=parse_json(thresholds, "--thresholds"),
        timeout_seconds=timeout,
        description=description,
        space_id=space,
        enabled=enabled,
    )
    with open_container(database) as container:
        query = container.store.create_query(spec)
        console.print(f"[green]Created query[/green] {query.id}")


@app.command("list")
def list_queries(
    space: str | None = typer.Option(None, "--space"),
    category: str | None = typer.Option(None, "--category"),
    connection: str | None = typer.Option(None, "--connection"),
    frequency: ExecutionFrequency | None = typer.Option(None, "--frequency"),
    enabled: bool | None = typer.Option(None, "--enabled/--disabled"),
    run_status: str | None = typer.Option(None, "--run-status", help="success, failure, error or never"),
    limit: int = typer.Option(50, "--limit"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List queries."""
    with open_container(database) as container:
        items = [
            q.to_dict()
            for q in container.store.list_queries(
                space_id=space,
                category=category,
                connection_id=connection,
                frequency=frequency,
                enabled=enabled,
                run_status=run_status,
                limit=limit,
                offset=offset,
            )
        ]
    output_list(items, columns=_COLUMNS, as_json=json_out, title="Queries")


@app.command("show")
def show_query(
    query_id: str = typer.Argument(..., help="Query ID"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Show one query."""
    with open_container(database) as container:
        query = container.store.require_query(query_id)
    output_item(query.to_dict(), as_json=json_out, title=f"Query: {query.name}")


@app.command("run")
def run_query(
    query_id: str = typer.Argument(..., help="Query ID"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for an in-flight run"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Run a query now and print the recorded result."""
    with open_container(database) as container:
        report = container.scheduler.run_query_now(query_id, wait=wait)
    output_item(report.result.to_dict(), as_json=json_out, title="Execution Result")
    for transition in report.transitions:
        console.print(f"  alert [cyan]{transition.rule_id}[/cyan]: {transition.action.value}")
    for notification in report.notifications:
        colour = "green" if notification.status.value == "sent" else "red"
        console.print(f"  notify {notification.channel}: [{colour}]{notification.status.value}[/{colour}]")
    if not report.success:
        raise typer.Exit(code=1)


def _set_enabled(query_id: str, enabled: bool, database: str | None) -> None:
    with open_container(database) as container:
        query = container.store.update_query(query_id, QueryUpdate(enabled=enabled))
    state = "enabled" if query.enabled else "disabled"
    console.print(f"[green]{query.name}[/green] {state}; next run: {query.next_execution_time}")


@app.command("enable")
def enable_query(
    query_id: str = typer.Argument(..., help="Query ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Enable a query (scheduled queries become due)."""
    _set_enabled(query_id, True, database)


@app.command("disable")
def disable_query(
    query_id: str = typer.Argument(..., help="Query ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Disable a query; the scheduler stops picking it up."""
    _set_enabled(query_id, False, database)


@app.command("delete")
def delete_query(
    query_id: str = typer.Argument(..., help="Query ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Delete a query with its results, rules and alerts."""
    with open_container(database) as container:
        if not container.scheduler.delete_query(query_id):
            err_console.print(f"[yellow]No query {query_id}[/yellow]")
            raise typer.Exit(code=1)
    console.print(f"[green]Deleted[/green] {query_id}")


@app.command("results")
def list_results(
    query_id: str = typer.Argument(..., help="Query ID"),
    limit: int = typer.Option(20, "--limit"),
    status: ExecutionStatus | None = typer.Option(None, "--status"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Execution history, newest first."""
    with open_container(database) as container:
        container.store.require_query(query_id)
        items = []
        for result in container.store.list_results(query_id, limit=limit, status=status):
            item = result.to_dict()
            item["verdict"] = result.verdict
            items.append(item)
    output_list(
        items,
        columns=["id", "execution_time", "status", "verdict", "execution_duration", "error_message"],
        as_json=json_out,
        title="Results",
    )
