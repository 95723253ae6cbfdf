"""
CLI: ``dbqa scheduler`` - run the tick loop or a single tick.
"""

from __future__ import annotations

import asyncio
import signal
import threading

import typer

from dbqa.cli.utils import DatabaseOption, console, open_container

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    interval: float | None = typer.Option(None, "--interval", help="Tick interval in seconds"),
    database: str | None = DatabaseOption,
) -> None:
    """Run the scheduler in the foreground until interrupted."""
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    with open_container(database) as container:
        if interval:
            container.scheduler.interval = interval
        container.store.create_all()
        container.scheduler.start()
        console.print(
            f"[bold green]Scheduler running[/bold green] "
            f"({container.scheduler.backend.name}, every {container.scheduler.interval}s)"
        )
        while not stop.wait(1.0):
            pass
        console.print("Stopping...")
        container.scheduler.stop()


@app.command("tick")
def tick(database: str | None = DatabaseOption) -> None:
    """Run one tick now and wait for the submitted runs."""
    with open_container(database) as container:
        submitted = asyncio.run(container.scheduler.tick(wait=True))
        stats = container.scheduler.get_stats()
    console.print(
        f"Submitted {len(submitted)} queries: {stats.runs_completed} completed, "
        f"{stats.runs_errored} errored, {stats.queries_skipped} skipped"
    )
