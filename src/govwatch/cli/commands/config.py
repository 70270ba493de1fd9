"""
Source configuration commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="View and change source configuration",
    no_args_is_help=True,
)


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "[dim]Never[/dim]"


@app.command("show")
def show_config() -> None:
    """Show every source configuration and the SEACE account."""
    from govwatch.core.config.store import AuthenticatedSettingsStore, ConfigStore
    from govwatch.persistence.db import get_session

    from ..runtime import load_config, open_database

    open_database(load_config(quiet=True))

    table = Table(title="Sources", show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Frequency")
    table.add_column("Retention", justify="right")
    table.add_column("Last Run")
    table.add_column("Last Success")
    table.add_column("Last Error")

    for name, cfg in ConfigStore(get_session).all().items():
        table.add_row(
            name.upper(),
            "[green]yes[/green]" if cfg.enabled else "[red]no[/red]",
            cfg.frequency,
            f"{cfg.retention_days}d",
            _fmt_time(cfg.last_run),
            _fmt_time(cfg.last_success),
            cfg.last_error or "",
        )
    console.print(table)

    seace = AuthenticatedSettingsStore(get_session).get().masked()
    console.print()
    console.print("[bold]SEACE account[/bold]")
    console.print(f"  Mode:     {'authenticated' if seace.enabled else 'public'}")
    console.print(f"  Usuario:  {seace.usuario or '[dim]-[/dim]'}")
    console.print(f"  Clave:    {seace.clave or '[dim]-[/dim]'}")
    console.print(f"  Entidad:  {seace.entidad} ({seace.sigla_entidad})")
    console.print(f"  Año:      {seace.anio}")


@app.command("set")
def set_config(
    source: str = typer.Argument(..., help="Source name (seace, osce, sunat)"),
    enabled: Optional[bool] = typer.Option(
        None,
        "--enabled/--disabled",
        help="Enable or disable the source",
    ),
    frequency: Optional[str] = typer.Option(
        None,
        "--frequency",
        help="hourly, daily or weekly",
    ),
    retention_days: Optional[int] = typer.Option(
        None,
        "--retention-days",
        help="Days read alerts are kept (1-365)",
    ),
) -> None:
    """Change the scheduling settings of a source."""
    from pydantic import ValidationError

    from govwatch.core.config.models import SourceConfigUpdate, SourceName
    from govwatch.core.config.store import ConfigStore
    from govwatch.persistence.db import get_session

    from ..runtime import load_config, open_database

    if source.lower() not in {s.value for s in SourceName}:
        err_console.print(f"[red]Unknown source:[/red] {source}")
        raise typer.Exit(1)

    values = {
        k: v
        for k, v in {
            "enabled": enabled,
            "frequency": frequency,
            "retention_days": retention_days,
        }.items()
        if v is not None
    }
    if not values:
        err_console.print("[yellow]Nothing to change[/yellow]")
        raise typer.Exit(1)

    try:
        update = SourceConfigUpdate.model_validate(values)
    except ValidationError as e:
        err_console.print(f"[red]Invalid value:[/red] {e.errors()[0]['msg']}")
        raise typer.Exit(1)

    open_database(load_config(quiet=True))
    ConfigStore(get_session).update(source.lower(), update)

    for key, value in update.model_dump(exclude_unset=True).items():
        console.print(f"[green]OK[/green] {source.lower()}.{key} = {getattr(value, 'value', value)}")


@app.command("seace")
def set_seace(
    usuario: Optional[str] = typer.Option(None, "--usuario", help="SEACE user"),
    clave: Optional[str] = typer.Option(None, "--clave", help="SEACE password"),
    prompt_clave: bool = typer.Option(
        False,
        "--prompt-clave",
        help="Prompt for the password without echo",
    ),
    entidad: Optional[str] = typer.Option(None, "--entidad", help="Entity name"),
    sigla: Optional[str] = typer.Option(None, "--sigla", help="Entity acronym"),
    anio: Optional[str] = typer.Option(None, "--anio", help="Search year"),
    enabled: Optional[bool] = typer.Option(
        None,
        "--enabled/--disabled",
        help="Use the authenticated flow instead of the public search",
    ),
) -> None:
    """Configure the authenticated SEACE account.

    An empty or masked password is ignored, so the stored one is kept.
    """
    from govwatch.core.config.store import AuthenticatedSettingsStore
    from govwatch.persistence.db import get_session

    from ..runtime import load_config, open_database

    if prompt_clave:
        clave = typer.prompt("Clave SEACE", hide_input=True)

    open_database(load_config(quiet=True))
    written = AuthenticatedSettingsStore(get_session).update(
        usuario=usuario,
        clave=clave,
        entidad=entidad,
        sigla_entidad=sigla,
        anio=anio,
        enabled=enabled,
    )

    if not written:
        console.print("[yellow]No changes written[/yellow]")
        return
    for key in written:
        console.print(f"[green]OK[/green] {key}")


@app.command("validate")
def validate_config(
    path: str = typer.Argument("configs/app.yaml", help="Configuration file to check"),
) -> None:
    """Check an app.yaml file without applying it."""
    from govwatch.core.config.loader import validate_app_config_file

    errors = validate_app_config_file(path)
    if errors:
        err_console.print(f"[red]{path} has {len(errors)} error(s):[/red]")
        for error in errors:
            err_console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print(f"[green]{path} is valid[/green]")
