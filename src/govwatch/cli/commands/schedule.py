"""
Scheduler commands.
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run the periodic source checker",
    no_args_is_help=True,
)


def _build_service():
    from govwatch.core.scheduler import SchedulerService

    from ..runtime import load_config, open_database

    config = load_config()
    open_database(config)
    return config, SchedulerService(
        db_url=config.scheduler.data_store_url,
        check_interval_minutes=config.scheduler.check_interval_minutes,
    )


@app.command("start")
def start_scheduler() -> None:
    """Start the scheduler service.

    Runs as a foreground process. Every tick runs the sources whose
    frequency says they are due. Use Ctrl+C to stop.
    """
    config, service = _build_service()

    if not config.scheduler.enabled:
        err_console.print("[yellow]Scheduler is disabled in configs/app.yaml[/yellow]")
        raise typer.Exit(1)

    console.print("[bold]Starting scheduler service...[/bold]")
    console.print(f"[dim]Checking sources every {service.check_interval_minutes} minutes[/dim]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    asyncio.run(service.start())


@app.command("run-now")
def run_schedule_now() -> None:
    """Run one scheduler tick immediately."""
    _, service = _build_service()

    console.print("[bold]Triggering scheduled check[/bold]")
    asyncio.run(service.trigger_now())
