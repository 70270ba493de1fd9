"""
GovWatch CLI - Main entry point.

Runs the government portal sources, manages their configuration and
serves the admin API.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from govwatch import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

# Force UTF-8 on Windows; portal content is Spanish
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except (AttributeError, OSError):
            pass

console = Console(force_terminal=True, legacy_windows=False)
err_console = Console(stderr=True, force_terminal=True, legacy_windows=False)

app = typer.Typer(
    name=__app_name__,
    help="Government portal alert scraper for SEACE, OSCE and SUNAT",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """GovWatch - Government portal alert scraper."""
    pass


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import config, db, run as run_cmd, schedule  # noqa: E402

app.command("run")(run_cmd.run_sources)
app.add_typer(config.app, name="config", help="View and change source configuration")
app.add_typer(db.app, name="db", help="Database operations")
app.add_typer(schedule.app, name="schedule", help="Run the periodic source checker")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize GovWatch database and configuration.

    Creates required directories, the default configuration file,
    and the database schema.
    """
    from rich.progress import Progress, SpinnerColumn, TextColumn

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Creating directories...", total=None)

        for dir_path in [Path("configs"), Path("data"), Path("logs")]:
            dir_path.mkdir(parents=True, exist_ok=True)

        progress.update(task, description="Creating default configuration...")

        app_config_path = Path("configs/app.yaml")
        if not app_config_path.exists() or force:
            _create_default_app_config(app_config_path)

        progress.update(task, description="Initializing database...")

        from govwatch.core.config.loader import load_app_config
        from govwatch.persistence.db import init_db

        init_db(load_app_config(app_config_path).database.url)

        progress.update(task, description="Done!")

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - GovWatch initialized successfully![/bold green]\n\n"
        "Created:\n"
        "  - [cyan]configs/app.yaml[/cyan] - Application configuration\n"
        "  - [cyan]data/[/cyan] - Database storage\n"
        "  - [cyan]logs/[/cyan] - Log files\n\n"
        "Next steps:\n"
        "  1. Enable sources: [yellow]govwatch config set osce --enabled[/yellow]\n"
        "  2. Configure SEACE: [yellow]govwatch config seace --usuario ... --prompt-clave[/yellow]\n"
        "  3. Run now: [yellow]govwatch run --follow[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    default_config = """\
# GovWatch Configuration

data_dir: data

database:
  url: ${DATABASE_URL:-sqlite:///data/govwatch.db}
  echo: false

logging:
  level: INFO
  file: logs/govwatch.log
  json_format: true
  rich_console: true

fetch:
  timeout_seconds: 8
  server_error_retries: 2

browser:
  headless: true

orchestrator:
  max_candidates: 10
  run_purge: true

scheduler:
  enabled: true
  check_interval_minutes: 15
  data_store_url: sqlite+aiosqlite:///data/schedules.db

api:
  host: 127.0.0.1
  port: 8080
"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config, encoding="utf-8")


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status() -> None:
    """Show source configuration and alert statistics."""
    from rich.table import Table

    from govwatch.core.orchestrator import create_orchestrator

    from .runtime import load_config, open_database

    config = load_config(quiet=True)
    open_database(config)
    report = create_orchestrator(config).status()

    console.print()
    console.print("[bold]GovWatch Status[/bold]")
    console.print()

    table = Table(title="Sources", show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Frequency")
    table.add_column("Alerts", justify="right")
    table.add_column("Today", justify="right")
    table.add_column("Last Run", justify="right")
    table.add_column("Last Error")

    for name, cfg in report["scrapers"].items():
        stats = report["stats"].get(name, {"total": 0, "today": 0})
        status_style = "green" if cfg["enabled"] else "red"
        last_run = cfg["last_run"][:16].replace("T", " ") if cfg["last_run"] else "Never"
        table.add_row(
            name.upper(),
            f"[{status_style}]{'OK' if cfg['enabled'] else 'x'}[/{status_style}]",
            cfg["frequency"],
            str(stats["total"]),
            str(stats["today"]),
            last_run,
            cfg["last_error"] or "",
        )

    console.print(table)


# =============================================================================
# Serve Command
# =============================================================================


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from app.yaml)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from app.yaml)"),
) -> None:
    """Serve the admin HTTP API."""
    import uvicorn

    from govwatch.api import create_app

    from .runtime import load_config, open_database

    config = load_config()
    open_database(config)

    bind_host = host or config.api.host
    bind_port = port or config.api.port
    console.print(f"[bold]Serving admin API on[/bold] http://{bind_host}:{bind_port}")

    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_level="info")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
