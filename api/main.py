import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.config.logging import get_logger, setup_logging
from api.config.settings import settings
from api.infra.database import Database
from api.v1.contacts.routes import router as contact_router
from api.v1.core.exceptions import (
    PortfolioException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    portfolio_exception_handler,
)
from api.v1.core.registries import delivery_registry
from api.v1.healthz import router as health_router
from api.v1.infra.email_queue.worker import create_worker
from api.v1.infra.mail.transports import build_transport

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the email queue worker alongside the API when enabled."""
    if not settings.email_queue_worker_enabled:
        yield
        return

    database = Database(settings)
    transport = build_transport(settings)
    worker = create_worker(settings, database.SessionLocal, transport)

    # Freeze callbacks in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        delivery_registry.freeze()

    task = asyncio.create_task(worker.start())
    try:
        yield
    finally:
        await worker.stop()
        try:
            await asyncio.wait_for(task, timeout=settings.mail_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Email queue worker did not stop in time, cancelling")
            task.cancel()
        if transport is not None:
            await transport.aclose()
        await database.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Portfolio contact API with a durable outbound email queue",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints live under the /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(PortfolioException, portfolio_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(contact_router, prefix="/v1", tags=["contact"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
