"""
Root Typer application for the ``dbqa`` CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from dbqa import __version__

app = Typer(
    name="dbqa",
    help="dbqa - scheduled data-quality checks with alerting.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dbqa {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dbqa CLI - manage connections, queries, rules, alerts and the scheduler."""


from dbqa.cli.alerts import app as alerts_app  # noqa: E402
from dbqa.cli.connections import app as connections_app  # noqa: E402
from dbqa.cli.db import app as db_app  # noqa: E402
from dbqa.cli.queries import app as queries_app  # noqa: E402
from dbqa.cli.rules import app as rules_app  # noqa: E402
from dbqa.cli.scheduler import app as scheduler_app  # noqa: E402
from dbqa.cli.serve import serve  # noqa: E402

app.add_typer(db_app, name="db", help="Store management.")
app.add_typer(connections_app, name="connections", help="Data-source connections.")
app.add_typer(queries_app, name="queries", help="Quality-check queries and results.")
app.add_typer(rules_app, name="rules", help="Alert rules.")
app.add_typer(alerts_app, name="alerts", help="Alerts and notification history.")
app.add_typer(scheduler_app, name="scheduler", help="Scheduler loop.")
app.command("serve")(serve)
