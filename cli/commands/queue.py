"""Queue Commands - Inspect email jobs straight from the database"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from api.config.settings import Settings, get_settings
from api.infra.database import Database
from api.v1.infra.email_queue.models import EmailJobStatus
from api.v1.infra.email_queue.schemas import EmailJobResponse
from api.v1.infra.email_queue.service import EmailQueueService
from api.v1.infra.email_queue.store import SqlAlchemyJobStore

from ..utils.formatting import create_jobs_table, create_stats_table, print_error

console = Console()
app = typer.Typer(name="queue", help="Email queue inspection commands")


async def _load_stats(settings: Settings) -> dict:
    database = Database(settings)
    try:
        service = EmailQueueService(settings, SqlAlchemyJobStore(database.SessionLocal))
        stats = await service.get_stats()
        return stats.model_dump()
    finally:
        await database.close()


async def _load_jobs(
    settings: Settings, status: EmailJobStatus | None, limit: int
) -> list[dict]:
    database = Database(settings)
    try:
        store = SqlAlchemyJobStore(database.SessionLocal)
        jobs = await store.list_jobs(status=status, limit=limit)
        return [EmailJobResponse.model_validate(job).model_dump() for job in jobs]
    finally:
        await database.close()


@app.command("stats")
def show_stats():
    """📊 Show job counts by status"""
    settings = get_settings()

    try:
        stats = asyncio.run(_load_stats(settings))
    except Exception as e:
        print_error(f"Failed to read queue stats: {e}")
        raise typer.Exit(1)

    console.print(create_stats_table(stats))


@app.command("list")
def list_jobs(
    status: Optional[EmailJobStatus] = typer.Option(
        None, "--status", "-s", help="Only show jobs in this status"
    ),
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Number of jobs to show"),
):
    """📋 List recently updated jobs (use --status FAILED for dead letters)"""
    settings = get_settings()

    try:
        jobs = asyncio.run(_load_jobs(settings, status, limit))
    except Exception as e:
        print_error(f"Failed to list email jobs: {e}")
        raise typer.Exit(1)

    if not jobs:
        console.print(Panel(
            "[green]No email jobs found.[/green]",
            title="Empty Queue",
            border_style="green",
        ))
        return

    console.print(create_jobs_table(jobs))
