from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from api.config.logging import get_logger
from api.config.settings import Settings, SettingsDep
from api.infra.database import Database, DatabaseDep
from api.v1.core.exceptions import create_success_response
from api.v1.infra.email_queue.service import EmailQueueService
from api.v1.infra.email_queue.store import SqlAlchemyJobStore

router = APIRouter()
logger = get_logger(__name__)


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class QueueHealth(BaseModel):
    """Email queue health status."""

    worker_enabled: bool
    queue_depth: int = 0
    pending: int = 0
    in_progress: int = 0
    failed: int = 0
    stale_locks: int = 0


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep, database: Database = DatabaseDep
):
    """Health check endpoint with database and email queue status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(database)
    overall_ok = db_health.connected

    queue_health = None
    if db_health.connected:
        try:
            queue_health = await _check_queue_health(database, settings)
        except Exception:
            # Queue stats failure doesn't fail overall health
            logger.exception("Email queue health check failed")

    health_data = {
        "ok": overall_ok,
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": timestamp,
        "database": db_health.model_dump(),
        "email_queue": queue_health.model_dump() if queue_health else None,
    }

    return create_success_response(data=health_data)


async def _check_database_health(database: Database) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with database.SessionLocal() as session:
            await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_queue_health(database: Database, settings: Settings) -> QueueHealth:
    stats = await EmailQueueService(
        settings, SqlAlchemyJobStore(database.SessionLocal)
    ).get_stats()

    return QueueHealth(
        worker_enabled=settings.email_queue_worker_enabled,
        queue_depth=stats.queue_depth,
        pending=stats.by_status["PENDING"],
        in_progress=stats.by_status["IN_PROGRESS"],
        failed=stats.by_status["FAILED"],
        stale_locks=stats.stale_locks,
    )
