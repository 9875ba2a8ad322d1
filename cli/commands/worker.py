"""Worker Commands - Run email queue workers in this process"""

import asyncio
import os
import signal
import socket

import typer
from rich.console import Console
from rich.panel import Panel

from api.config.logging import get_logger, setup_logging
from api.config.settings import Settings, get_settings
from api.infra.database import Database
from api.v1.infra.email_queue.schemas import TickResult
from api.v1.infra.email_queue.worker import EmailQueueWorker, create_worker
from api.v1.infra.mail.transports import build_transport

from ..utils.formatting import print_error, print_info, print_success

console = Console()
app = typer.Typer(name="worker", help="Email queue worker commands")
logger = get_logger(__name__)


def _build_workers(
    settings: Settings, database: Database, transport, count: int
) -> list[EmailQueueWorker]:
    base_id = f"{socket.gethostname()}-{os.getpid()}"
    return [
        create_worker(settings, database.SessionLocal, transport, worker_id=f"{base_id}-{i}")
        for i in range(count)
    ]


async def _run_once(settings: Settings, count: int) -> TickResult:
    """Run a single tick on each worker and sum the results."""
    database = Database(settings)
    transport = build_transport(settings)
    try:
        workers = _build_workers(settings, database, transport, count)
        total = TickResult()
        for result in await asyncio.gather(*(w.tick() for w in workers)):
            for field in TickResult.model_fields:
                setattr(total, field, getattr(total, field) + getattr(result, field))
        return total
    finally:
        if transport is not None:
            await transport.aclose()
        await database.close()


async def _run_forever(settings: Settings, count: int) -> None:
    """Run worker loops until SIGINT or SIGTERM."""
    database = Database(settings)
    transport = build_transport(settings)
    workers = _build_workers(settings, database, transport, count)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Not supported on this platform, KeyboardInterrupt still ends the run
            pass

    async def _stop_on_signal() -> None:
        await stop_requested.wait()
        logger.info("Shutdown requested, stopping workers", worker_count=len(workers))
        await asyncio.gather(*(w.stop() for w in workers))

    watcher = asyncio.create_task(_stop_on_signal())
    try:
        await asyncio.gather(*(w.start() for w in workers))
    finally:
        watcher.cancel()
        if transport is not None:
            await transport.aclose()
        await database.close()


@app.command("run")
def run_worker(
    count: int = typer.Option(
        1, "--count", "-c", min=1, max=32, help="Number of worker loops to run"
    ),
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit"),
):
    """🚚 Poll the queue and deliver due emails"""
    settings = get_settings()

    if once:
        try:
            result = asyncio.run(_run_once(settings, count))
        except Exception as e:
            print_error(f"Worker tick failed: {e}")
            raise typer.Exit(1)

        console.print(Panel(
            f"• Released: [yellow]{result.released}[/yellow]\n"
            f"• Claimed: [cyan]{result.claimed}[/cyan]\n"
            f"• Sent: [green]{result.sent}[/green]\n"
            f"• Retried: [yellow]{result.retried}[/yellow]\n"
            f"• Failed: [red]{result.failed}[/red]\n"
            f"• Lost: [magenta]{result.lost}[/magenta]",
            title="Tick Result",
            border_style="cyan",
        ))
        print_success("Tick complete")
        return

    setup_logging()
    print_info(
        f"Starting {count} worker(s), polling every {settings.email_queue_poll_ms}ms"
    )
    try:
        asyncio.run(_run_forever(settings, count))
    except KeyboardInterrupt:
        pass
    print_success("Workers stopped")
