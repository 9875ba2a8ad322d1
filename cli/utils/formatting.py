"""Rich Formatting Utilities for CLI Output"""

from datetime import UTC, datetime
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "PENDING": "yellow",
    "IN_PROGRESS": "cyan",
    "SENT": "green",
    "FAILED": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_epoch_ms(value: int | None) -> str:
    """Render epoch milliseconds as a UTC timestamp"""
    if value is None:
        return "—"
    return datetime.fromtimestamp(value / 1000, UTC).strftime("%Y-%m-%d %H:%M:%S")


def create_stats_table(stats: dict[str, Any]) -> Table:
    """Create a formatted table for queue statistics"""
    table = Table(title="Email Queue", box=box.ROUNDED)

    table.add_column("Status", justify="left", style="bold")
    table.add_column("Jobs", justify="right")

    for status, count in stats.get("by_status", {}).items():
        style = STATUS_STYLES.get(status, "white")
        table.add_row(f"[{style}]{status}[/{style}]", str(count))

    table.add_section()
    table.add_row("Total", str(stats.get("total_jobs", 0)))
    table.add_row("Queue depth", str(stats.get("queue_depth", 0)))
    table.add_row("Stale locks", str(stats.get("stale_locks", 0)))

    return table


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a list of email jobs"""
    table = Table(title="Email Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="right")
    table.add_column("Next Attempt", justify="center", style="yellow")
    table.add_column("Last Error", justify="left", style="white")

    for job in jobs:
        status = job.get("status", "")
        style = STATUS_STYLES.get(status, "white")
        last_error = job.get("last_error") or "—"
        table.add_row(
            job.get("id", "")[:8],  # Short ID
            job.get("type", ""),
            f"[{style}]{status}[/{style}]",
            str(job.get("attempts", 0)),
            format_epoch_ms(job.get("next_attempt_at_ms")),
            escape(last_error[:60] + "..." if len(last_error) > 60 else last_error),
        )

    return table
