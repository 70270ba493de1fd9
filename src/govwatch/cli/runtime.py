"""
Shared bootstrap for CLI commands.
"""

from __future__ import annotations

import typer
from rich.console import Console

from ..core.config.models import AppConfig

err_console = Console(stderr=True)


def load_config(quiet: bool = False) -> AppConfig:
    """Load app.yaml and configure logging.

    Args:
        quiet: Only log warnings and above to the console
    """
    from ..core.config.loader import ConfigError, load_app_config
    from ..core.logging import setup_logging

    try:
        config = load_app_config()
    except ConfigError as e:
        err_console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(1)

    config.ensure_directories()
    setup_logging(
        level="WARNING" if quiet else config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )
    return config


def open_database(config: AppConfig) -> None:
    """Create the schema if needed and register the process-wide engine."""
    from ..persistence.db import init_db

    init_db(config.database.url, echo=config.database.echo)
