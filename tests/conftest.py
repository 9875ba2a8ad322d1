import asyncio
from collections.abc import AsyncGenerator, Generator

import pytest
import structlog
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from api.config.settings import Settings, get_settings
from api.infra.database import Base, Database, get_database
from api.main import create_app
from api.v1.contacts.models import Contact
from api.v1.contacts.service import ContactService
from api.v1.core.registries import DeliveryCallbackRegistry
from api.v1.infra.email_queue.models import EmailJob, EmailJobStatus, EmailJobType
from api.v1.infra.email_queue.store import SqlAlchemyJobStore
from api.v1.infra.email_queue.worker import EmailQueueWorker

START_MS = 1_700_000_000_000


@pytest.fixture(autouse=True)
def uncached_logging(monkeypatch):
    """Resolve stdout per log call; CliRunner swaps it for every invocation."""
    monkeypatch.setattr("api.main.setup_logging", lambda: None)
    structlog.configure(
        cache_logger_on_first_use=False,
        logger_factory=structlog.PrintLoggerFactory(),
    )


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeCallback:
    """Delivery callback replaying scripted outcomes (bool or exception)."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [True]
        self.calls: list[str] = []

    async def send(self, contact: Contact) -> bool:
        self.calls.append(contact.id)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue_settings() -> Settings:
    """Settings with small, test friendly queue limits."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        email_queue_poll_ms=100,
        email_queue_batch_size=10,
        email_queue_max_attempts=3,
        email_queue_stale_lock_ms=60_000,
        email_queue_backoff_base_ms=1_000,
        email_queue_backoff_cap_ms=60_000,
        email_queue_concurrency=1,
        contact_notification_email="owner@example.com",
    )


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    In-memory SQLite engine shared by every session of one test.

    All sessions share a single connection, so one session's rollback can undo
    another's uncommitted write. Tests that run workers concurrently use
    ``file_database`` instead.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory, clock) -> SqlAlchemyJobStore:
    return SqlAlchemyJobStore(session_factory, clock=clock)


@pytest.fixture
def contacts(session_factory) -> ContactService:
    return ContactService(session_factory)


@pytest.fixture
async def contact(contacts: ContactService) -> Contact:
    return await contacts.create("Jane Doe", "jane@example.com", "Hello there")


@pytest.fixture
def registry() -> DeliveryCallbackRegistry:
    return DeliveryCallbackRegistry()


@pytest.fixture
def make_worker(queue_settings, store, contacts, registry, clock):
    """Build workers sharing the store, callbacks and clock of the test."""

    def _make(worker_id: str = "worker-1", settings: Settings | None = None):
        return EmailQueueWorker(
            settings or queue_settings,
            store,
            contacts.resolve,
            callbacks=registry,
            clock=clock,
            worker_id=worker_id,
        )

    return _make


@pytest.fixture
def add_job(store, clock):
    """Insert a PENDING job due now (or at ``next_attempt_at_ms``)."""

    async def _add(
        contact_id: str | None,
        job_type: EmailJobType = EmailJobType.CONTACT_NOTIFY_OWNER,
        next_attempt_at_ms: int | None = None,
        created_at_ms: int | None = None,
    ) -> EmailJob:
        job = EmailJob(
            type=job_type.value,
            status=EmailJobStatus.PENDING.value,
            contact_id=contact_id,
            attempts=0,
            next_attempt_at_ms=clock() if next_attempt_at_ms is None else next_attempt_at_ms,
            created_at_ms=created_at_ms if created_at_ms is not None else clock(),
        )
        return await store.insert(job)

    return _add


@pytest.fixture
def register_callback(registry):
    """Register a FakeCallback for a job type and return it."""

    def _register(
        *outcomes, job_type: EmailJobType = EmailJobType.CONTACT_NOTIFY_OWNER
    ) -> FakeCallback:
        callback = FakeCallback(*outcomes)
        registry.register(job_type.value, callback)
        return callback

    return _register


@pytest.fixture
async def file_database(queue_settings, tmp_path) -> AsyncGenerator[Database, None]:
    """File-backed SQLite database with one connection per session."""
    settings = queue_settings.model_copy(
        update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}"}
    )
    database = Database(settings)
    await database.create_all()

    yield database

    await database.close()


@pytest.fixture
def api_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        contact_notification_email="owner@example.com",
        contact_send_reply_to_sender=True,
    )


@pytest.fixture
def api_database(api_settings) -> Database:
    database = Database(api_settings)
    asyncio.run(database.create_all())
    return database


@pytest.fixture
def client(api_settings, api_database) -> Generator[TestClient, None, None]:
    """Test client wired to the SQLite test database."""
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_database] = lambda: api_database

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
