"""
Run command: collect alerts from the configured sources now.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

LEVEL_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "debug": "dim",
}


def _print_entry(entry) -> None:
    if entry.is_session_end:
        return
    style = LEVEL_STYLES.get(entry.level.value, "white")
    console.print(
        f"[dim]{entry.timestamp.strftime('%H:%M:%S')}[/dim] "
        f"[{style}]{entry.level.value.upper():<7}[/{style}] "
        f"[bold]{entry.source}[/bold] {entry.message}"
    )


async def _run_following(orchestrator, options):
    session_id = orchestrator.run_in_background(options)
    task = orchestrator.background_run(session_id)
    console.print(f"[dim]Session:[/dim] {session_id}")

    async for entry in orchestrator.bus.follow(session_id):
        _print_entry(entry)

    return await task


def _print_result(result) -> None:
    table = Table(title="Run Results", show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Found", justify="right")
    table.add_column("Distributed", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Error")

    for name, outcome in result.results.items():
        if outcome.skipped:
            status = "[dim]skipped[/dim]"
        elif outcome.success:
            status = "[green]OK[/green]"
        else:
            status = "[red]FAILED[/red]"
        table.add_row(
            outcome.source,
            status,
            str(outcome.alerts_found),
            str(outcome.alerts_distributed),
            f"{outcome.duration_ms / 1000:.1f}s",
            outcome.error or "",
        )

    console.print()
    console.print(table)

    if result.purge is not None:
        deleted = sum(result.purge.values())
        console.print(f"[dim]Purged:[/dim] {deleted} read alerts")

    summary = (
        f"Found: [cyan]{result.total_alerts_found}[/cyan]  "
        f"Distributed: [cyan]{result.total_alerts_distributed}[/cyan]  "
        f"Duration: {result.duration_ms / 1000:.1f}s"
    )
    if result.errors:
        summary += "\n\n[red]Errors:[/red]\n" + "\n".join(f"  - {e}" for e in result.errors)

    console.print(Panel.fit(
        summary,
        title="[bold]Run completed[/bold]" if result.success else "[bold]Run finished with errors[/bold]",
        border_style="green" if result.success else "red",
    ))


def run_sources(
    force: bool = typer.Option(
        True,
        "--force/--no-force",
        help="Run regardless of enabled flag and frequency",
    ),
    purge: bool = typer.Option(
        False,
        "--purge",
        help="Delete expired read alerts after the run",
    ),
    source: Optional[list[str]] = typer.Option(
        None,
        "--source",
        "-s",
        help="Source to run (seace, osce, sunat); repeatable",
    ),
    follow: bool = typer.Option(
        False,
        "--follow",
        "-f",
        help="Stream the session log while the run progresses",
    ),
) -> None:
    """Run the alert sources now.

    Examples:
        govwatch run
        govwatch run --source seace --follow
        govwatch run --no-force --purge
    """
    from govwatch.core.config.models import SourceName
    from govwatch.core.orchestrator import RunOptions, create_orchestrator

    from ..runtime import load_config, open_database

    valid = {s.value for s in SourceName}
    for name in source or []:
        if name.lower() not in valid:
            err_console.print(f"[red]Unknown source:[/red] {name}")
            err_console.print(f"[dim]Available: {', '.join(sorted(valid))}[/dim]")
            raise typer.Exit(1)

    config = load_config(quiet=follow)
    open_database(config)

    orchestrator = create_orchestrator(config)
    options = RunOptions(
        force=force,
        run_purge=purge,
        sources=[s.lower() for s in source] if source else None,
    )

    if follow:
        result = asyncio.run(_run_following(orchestrator, options))
    else:
        with console.status("[bold]Running sources...[/bold]"):
            result = asyncio.run(orchestrator.run(options))

    orchestrator.bus.close()
    _print_result(result)

    if not result.success:
        raise typer.Exit(1)
