"""Mail Queue CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .commands import queue, worker

console = Console()

# Create main Typer app
app = typer.Typer(
    name="mailqueue",
    help="📬 Mail Queue - durable outbound email worker and inspection CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(worker.app, name="worker")
app.add_typer(queue.app, name="queue")


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"📬 [bold cyan]Mail Queue CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]",
        title="Version Info",
        border_style="cyan",
    ))


def _show_version(value: Optional[bool]):
    if value:
        from . import __version__
        console.print(f"Mail Queue CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    📬 Mail Queue CLI

    Run email queue workers next to the API or on their own, and inspect
    pending, sent and dead-lettered jobs.
    """


if __name__ == "__main__":
    app()
