"""
Database management commands.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing tables before creating",
    ),
) -> None:
    """Initialize the database schema.

    Creates all tables. Use --drop to reset the database.
    """
    from govwatch.persistence.db import drop_db, init_db

    from ..runtime import load_config

    config = load_config(quiet=True)

    if drop_existing:
        if not typer.confirm("This will DELETE ALL DATA. Continue?", default=False):
            raise typer.Abort()

        console.print("[yellow]Dropping existing tables...[/yellow]")
        drop_db(config.database.url)

    console.print("Creating database schema...")
    init_db(config.database.url)

    console.print("[green]OK[/green] Database initialized")


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option(
        "head",
        "--revision",
        "-r",
        help="Target revision (default: head)",
    ),
) -> None:
    """Run database migrations."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")

    console.print(f"Running migrations to: {revision}")

    try:
        command.upgrade(alembic_cfg, revision)
        console.print("[green]OK[/green] Migrations complete")
    except Exception as e:
        err_console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("current")
def show_current() -> None:
    """Show current database revision."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")

    console.print("[bold]Current database revision:[/bold]")
    command.current(alembic_cfg, verbose=True)


@app.command("purge")
def purge_alerts(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation",
    ),
) -> None:
    """Delete read alerts older than each source's retention window.

    Unread alerts are never deleted.
    """
    if not force and not typer.confirm("Delete expired read alerts?"):
        raise typer.Abort()

    from govwatch.core.orchestrator import create_orchestrator

    from ..runtime import load_config, open_database

    config = load_config(quiet=True)
    open_database(config)

    errors: list[str] = []
    deleted = create_orchestrator(config).purge(errors)

    table = Table(title="Purged Alerts", show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Deleted", justify="right")
    for source, count in deleted.items():
        table.add_row(source.upper(), str(count))
    console.print(table)

    if errors:
        for error in errors:
            err_console.print(f"[red]{error}[/red]")
        raise typer.Exit(1)
