"""
MySQL Fax CLI - Command Line Interface.

Copy MySQL databases from gateway-only servers to local environments
defined in a Rails-style database.yml.

Commands:
    environments      List configured environments and their roles
    inspect           Show tables, column counts and max ids of a source
    copy              Copy a whole database
    copy-table        Copy one table
    incremental-copy  Copy rows above each destination table's max id
    sync              Copy recent rows of large tables and the rest whole
    shortcuts         List copy_from_<src>_to_<dst> shortcuts
    run               Run a shortcut
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import typer
import yaml
from rich.console import Console

from mysql_fax import __version__
from mysql_fax.config import ConfigRegistry, Settings, load_settings
from mysql_fax.core.operations import FaxService, OperationResult, shortcuts as build_shortcuts
from mysql_fax.errors import FaxError
from mysql_fax.utils.display import (
    print_commands,
    print_environments,
    print_error,
    print_info,
    print_success,
    print_summary,
    print_table_info,
    print_warning,
)
from mysql_fax.utils.logger import setup_logging


# Create the Typer app
app = typer.Typer(
    name="mysql-fax",
    help="Copy MySQL databases from SSH-gated servers to local environments.",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to database.yml (default: settings.database_config).",
)
SETTINGS_OPTION = typer.Option(
    None,
    "--settings",
    "-s",
    help="Path to a TOML/JSON/YAML settings file.",
    exists=True,
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    "-n",
    help="Print commands without executing them.",
)
QUIET_OPTION = typer.Option(
    False,
    "--quiet",
    "-q",
    help="Minimal output.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]mysql-fax[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """MySQL Fax - copy MySQL databases through SSH gateways."""
    pass


# =============================================================================
# ENVIRONMENTS Command
# =============================================================================
@app.command()
def environments(
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
) -> None:
    """List environments and whether each is a source or a destination."""
    _, registry = _load(config_file, settings_file, quiet=True)

    rows = []
    for env in registry:
        if env.gateway_host and env.gateway_user:
            target = f"{env.gateway} → {env.host or 'localhost'}/{env.database or ''}"
        else:
            target = f"{env.host or env.socket or 'localhost'}/{env.database or ''}"
        rows.append((env.name, env.role.value, target))

    if not rows:
        print_info(f"No environments defined in {registry.path}")
        return
    print_environments(rows)


# =============================================================================
# INSPECT Command
# =============================================================================
@app.command()
def inspect(
    source: str = typer.Argument(..., help="Source environment name."),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Show tables of a source database through its gateway."""
    settings, registry = _load(config_file, settings_file, quiet=quiet)
    service = FaxService(settings, registry)

    try:
        tables = service.planner.new_inspector().inspect(source)
    except FaxError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_table_info(f"Tables in {source}", tables.values())


# =============================================================================
# COPY Commands
# =============================================================================
@app.command()
def copy(
    source: str = typer.Argument(..., help="Source environment name."),
    destination: str = typer.Argument(..., help="Destination environment name."),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """
    Copy a whole database.

    Example:
        mysql-fax copy production development
    """
    settings, registry = _load(config_file, settings_file, dry_run=dry_run, quiet=quiet)
    service = FaxService(settings, registry)
    _report(lambda: service.copy(source, destination), quiet)


@app.command("copy-table")
def copy_table(
    source: str = typer.Argument(..., help="Source environment name."),
    destination: str = typer.Argument(..., help="Destination environment name."),
    table: str = typer.Argument(..., help="Table to copy."),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Copy a single table."""
    settings, registry = _load(config_file, settings_file, dry_run=dry_run, quiet=quiet)
    service = FaxService(settings, registry)
    _report(lambda: service.copy_table(source, destination, table), quiet)


@app.command("incremental-copy")
def incremental_copy(
    source: str = typer.Argument(..., help="Source environment name."),
    destination: str = typer.Argument(..., help="Destination environment name."),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Copy rows newer than each destination table's max id."""
    settings, registry = _load(config_file, settings_file, dry_run=dry_run, quiet=quiet)
    service = FaxService(settings, registry)
    _report(lambda: service.incremental_copy(source, destination), quiet)


@app.command()
def sync(
    source: str = typer.Argument(..., help="Source environment name."),
    destination: str = typer.Argument(..., help="Destination environment name."),
    since: datetime = typer.Option(
        ...,
        "--since",
        help="Copy rows of large tables created after this time.",
        formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"],
    ),
    threshold: Optional[int] = typer.Option(
        None,
        "--threshold",
        "-t",
        min=0,
        help="Tables with max id at or below this are copied whole.",
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """
    Copy recent rows of large tables and everything else whole.

    Example:
        mysql-fax sync production development --since 2024-01-01 -t 1000
    """
    settings, registry = _load(config_file, settings_file, dry_run=dry_run, quiet=quiet)
    service = FaxService(settings, registry)
    _report(lambda: service.sync(source, destination, since, threshold), quiet)


# =============================================================================
# SHORTCUT Commands
# =============================================================================
@app.command()
def shortcuts(
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
) -> None:
    """List copy shortcuts for every source/destination pair."""
    _, registry = _load(config_file, settings_file, quiet=True)
    table = build_shortcuts(registry)
    if not table:
        print_info("No source/destination pairs configured.")
        return
    for name, (src, dst) in table.items():
        console.print(f"[cyan]{name}[/cyan]  {src} → {dst}")


@app.command()
def run(
    name: str = typer.Argument(..., help="Shortcut name, e.g. copy_from_production_to_development."),
    config_file: Optional[Path] = CONFIG_OPTION,
    settings_file: Optional[Path] = SETTINGS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    quiet: bool = QUIET_OPTION,
) -> None:
    """Run a copy shortcut."""
    settings, registry = _load(config_file, settings_file, dry_run=dry_run, quiet=quiet)
    service = FaxService(settings, registry)
    _report(lambda: service.run_shortcut(name), quiet)


# =============================================================================
# Helper Functions
# =============================================================================
def _load(
    config_file: Path | None,
    settings_file: Path | None,
    dry_run: bool = False,
    quiet: bool = False,
) -> tuple[Settings, ConfigRegistry]:
    """Build settings, set up logging and read the registry fresh."""
    try:
        settings = load_settings(settings_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if config_file:
        settings.database_config = config_file
    if dry_run:
        settings.dry_run = True

    setup_logging(
        level="WARNING" if quiet else settings.logging.level,
        log_file=settings.logging.file,
        format_style=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    try:
        registry = ConfigRegistry.load(settings.database_config)
    except FaxError as e:
        print_error(str(e))
        raise typer.Exit(1)

    return settings, registry


def _report(operation: Callable[[], OperationResult], quiet: bool) -> None:
    """Run an operation and print its outcome."""
    try:
        result = operation()
    except (FaxError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if result.dry_run:
        print_warning("DRY RUN - No commands were executed")
        if result.commands:
            print_commands(result.rendered())
        else:
            print_info("Nothing to copy.")
        return

    if not quiet:
        console.print()
        print_summary({
            "operation": result.operation.upper(),
            "source": result.source,
            "destination": result.destination,
            "commands": len(result.commands),
            "skipped": len(result.skipped),
            "duration": result.duration_seconds,
        })

    if result.commands:
        print_success(f"{result.operation} {result.source} → {result.destination} completed")
    else:
        print_info("Nothing to copy.")


if __name__ == "__main__":
    app()
