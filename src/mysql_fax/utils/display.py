"""
Rich terminal output for MySQL Fax.

Tables for environments, inspection results and plans, plus one-line
status helpers used by the CLI.
"""

from __future__ import annotations

from typing import Any, Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table


console = Console()


def print_environments(rows: Iterable[tuple[str, str, str]]) -> None:
    """Print (name, role, target) rows."""
    table = Table(title="Environments", border_style="blue")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Role", no_wrap=True)
    table.add_column("Target", style="dim")

    for name, role, target in rows:
        style = "magenta" if role == "source" else "green"
        table.add_row(name, f"[{style}]{role}[/{style}]", target)

    console.print(table)


def print_table_info(title: str, tables: Iterable[Any]) -> None:
    """Print inspection results (objects with name/columns/max_id)."""
    table = Table(title=title, border_style="blue")
    table.add_column("Table", style="cyan")
    table.add_column("Columns", justify="right")
    table.add_column("Max ID", justify="right")

    for info in tables:
        max_id = "[dim]unknown[/dim]" if info.max_id is None else f"{info.max_id:,}"
        table.add_row(info.name, str(len(info.columns)), max_id)

    console.print(table)


def print_summary(stats: dict[str, Any]) -> None:
    """Print a summary table after an operation completes."""
    table = Table(title="Copy Summary", border_style="green")

    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Operation", stats.get("operation", "N/A"))
    table.add_row("Source", stats.get("source", ""))
    table.add_row("Destination", stats.get("destination", ""))
    table.add_row("Commands", str(stats.get("commands", 0)))
    if "skipped" in stats:
        table.add_row("Tables Skipped", str(stats["skipped"]))
    table.add_row("Duration", f"{stats.get('duration', 0):.1f}s")

    console.print(table)


def print_commands(commands: Iterable[str]) -> None:
    """Print rendered commands, one per line, without markup."""
    for command in commands:
        console.print(command, markup=False, highlight=False, soft_wrap=True)


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {escape(message)}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {escape(message)}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {escape(message)}")
