"""
CLI: ``dbqa rules`` - alert rules attached to queries.
"""

from __future__ import annotations

import typer

from dbqa.alerting.conditions import AlertCondition
from dbqa.cli.utils import DatabaseOption, JsonOption, console, handle_errors, open_container, output_list, parse_json
from dbqa.core.enums import AlertSeverity, ChannelType
from dbqa.core.store import AlertRuleCreate

app = typer.Typer(no_args_is_help=True)


@app.command("add")
def add_rule(
    query_id: str = typer.Argument(..., help="Query ID"),
    name: str = typer.Argument(..., help="Rule name"),
    severity: AlertSeverity = typer.Option(AlertSeverity.MEDIUM, "--severity", "-s"),
    condition: str | None = typer.Option(None, "--condition", help='JSON, e.g. {"verdicts": ["fail"]}'),
    channel: list[ChannelType] = typer.Option([], "--channel", help="Repeat for several channels"),
    email: str | None = typer.Option(None, "--email", help="Comma-separated recipients"),
    slack: str | None = typer.Option(None, "--slack", help="Slack incoming-webhook URL"),
    webhook: str | None = typer.Option(None, "--webhook", help="Generic webhook URL"),
    throttle: int = typer.Option(60, "--throttle", help="Minutes between re-notifications"),
    notify_on_resolve: bool | None = typer.Option(None, "--notify-on-resolve/--no-notify-on-resolve"),
    description: str | None = typer.Option(None, "--description"),
    database: str | None = DatabaseOption,
) -> None:
    """Attach an alert rule to a query."""
    spec = parse_json(condition, "--condition") or {}
    with handle_errors():
        AlertCondition.parse(spec)
    with open_container(database) as container:
        rule = container.store.create_rule(
            AlertRuleCreate(
                query_id=query_id,
                name=name,
                condition=spec,
                severity=severity,
                description=description,
                notification_channels=[c.value for c in channel],
                email_recipients=email,
                slack_webhook=slack,
                custom_webhook=webhook,
                throttle_minutes=throttle,
                notify_on_resolve=notify_on_resolve,
            )
        )
        console.print(f"[green]Created rule[/green] {rule.id}")


@app.command("list")
def list_rules(
    query_id: str | None = typer.Option(None, "--query", "-q"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List alert rules."""
    with open_container(database) as container:
        items = [r.to_dict() for r in container.store.list_rules(query_id)]
    output_list(
        items,
        columns=["id", "query_id", "name", "severity", "notification_channels", "throttle_minutes", "enabled"],
        as_json=json_out,
        title="Alert Rules",
    )
