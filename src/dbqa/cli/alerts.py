"""
CLI: ``dbqa alerts`` - inspect, snooze and resolve alerts.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import typer

from dbqa.cli.utils import (
    DatabaseOption,
    JsonOption,
    console,
    err_console,
    open_container,
    output_item,
    output_list,
)
from dbqa.core.enums import AlertSeverity, AlertStatus, NotificationStatus
from dbqa.core.frequency import utcnow

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_alerts(
    query_id: str | None = typer.Option(None, "--query", "-q"),
    status: AlertStatus | None = typer.Option(None, "--status"),
    severity: AlertSeverity | None = typer.Option(None, "--severity"),
    space: str | None = typer.Option(None, "--space"),
    limit: int = typer.Option(50, "--limit"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List alerts, newest first."""
    with open_container(database) as container:
        items = [
            a.to_dict()
            for a in container.store.list_alerts(
                query_id=query_id, status=status, severity=severity, space_id=space, limit=limit
            )
        ]
    output_list(
        items,
        columns=["id", "name", "severity", "status", "trigger_count", "suppressed_count", "last_triggered_at"],
        as_json=json_out,
        title="Alerts",
    )


@app.command("show")
def show_alert(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Show one alert."""
    with open_container(database) as container:
        alert = container.store.require_alert(alert_id)
    output_item(alert.to_dict(), as_json=json_out, title=f"Alert: {alert.name}")


@app.command("snooze")
def snooze_alert(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    minutes: int | None = typer.Option(None, "--minutes", "-m", help="Snooze for N minutes"),
    until: datetime | None = typer.Option(None, "--until", help="Snooze until (UTC)"),
    database: str | None = DatabaseOption,
) -> None:
    """Silence an alert for a while."""
    if (minutes is None) == (until is None):
        err_console.print("[bold red]Error[/bold red]: pass exactly one of --minutes or --until")
        raise typer.Exit(code=1)
    now = utcnow()
    end = until if until is not None else now + timedelta(minutes=minutes or 0)
    with open_container(database) as container:
        alert = container.alert_engine.snooze(alert_id, end, now)
    console.print(f"[green]Snoozed[/green] {alert.id} until {alert.snoozed_until}")


@app.command("resolve")
def resolve_alert(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    database: str | None = DatabaseOption,
) -> None:
    """Resolve an alert by hand."""
    with open_container(database) as container:
        alert = container.alert_engine.resolve(alert_id)
    console.print(f"[green]Resolved[/green] {alert.id} at {alert.resolved_at}")


@app.command("notifications")
def list_notifications(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    status: NotificationStatus | None = typer.Option(None, "--status"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Delivery attempts for an alert."""
    with open_container(database) as container:
        container.store.require_alert(alert_id)
        items = [n.to_dict() for n in container.store.list_notifications(alert_id, status=status)]
    output_list(
        items,
        columns=["id", "channel", "status", "sent_at", "error_message"],
        as_json=json_out,
        title="Notifications",
    )
