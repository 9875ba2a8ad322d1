"""
Polling email queue worker with stale-lock recovery and exponential backoff.
"""

import asyncio
import os
import socket
import time
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.config.logging import get_logger
from api.config.settings import Settings
from api.v1.contacts.models import Contact
from api.v1.contacts.service import ContactService
from api.v1.core.registries import DeliveryCallbackRegistry, delivery_registry
from api.v1.infra.email_queue.backoff import compute_backoff_ms
from api.v1.infra.email_queue.models import EmailJob, EmailJobStatus, now_ms
from api.v1.infra.email_queue.registry_init import register_delivery_callbacks
from api.v1.infra.email_queue.schemas import TickResult
from api.v1.infra.email_queue.store import JobStore, SqlAlchemyJobStore
from api.v1.infra.mail.transports import MailTransport

logger = get_logger(__name__)

ContactResolver = Callable[[str], Awaitable[Contact | None]]


def truncate_error(value: str | None, max_length: int) -> str | None:
    if value is None:
        return None
    return value[:max_length]


def describe_error(exc: Exception) -> str:
    return f"{exc.__class__.__name__}: {exc}"


class EmailQueueWorker:
    """
    Email queue worker driven by a fixed-delay poll loop.

    Each tick:
    - releases IN_PROGRESS jobs whose lock outlived the stale threshold
    - claims a batch of due PENDING jobs, oldest first
    - runs the delivery callback of each claimed job and records the outcome

    Several workers may poll the same store. A job is owned by whichever
    worker's conditional update moved it to IN_PROGRESS, and every later write
    is conditioned on the version that claim produced.
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        resolve_contact: ContactResolver,
        callbacks: DeliveryCallbackRegistry = delivery_registry,
        clock: Callable[[], int] = now_ms,
        worker_id: str | None = None,
    ):
        self.settings = settings
        self.store = store
        self.resolve_contact = resolve_contact
        self.callbacks = callbacks
        self.clock = clock
        self.worker_id = worker_id or f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Run ticks until stop() is called."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        logger.info(
            "Starting email queue worker",
            worker_id=self.worker_id,
            poll_ms=self.settings.email_queue_poll_ms,
            batch_size=self.settings.email_queue_batch_size,
            concurrency=self.settings.email_queue_concurrency,
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception:
                    # Store unavailable or similar: the whole cycle is retried next tick
                    logger.exception("Email queue tick failed", worker_id=self.worker_id)

                await self._wait_for_next_tick()
        finally:
            self.running = False
            self._stop_event.clear()
            logger.info("Email queue worker stopped", worker_id=self.worker_id)

    async def stop(self) -> None:
        """Stop after the current tick completes."""
        logger.info("Stopping email queue worker", worker_id=self.worker_id)
        self._stop_event.set()

    async def _wait_for_next_tick(self) -> None:
        try:
            await asyncio.wait_for(
                self._stop_event.wait(),
                timeout=self.settings.email_queue_poll_ms / 1000,
            )
        except asyncio.TimeoutError:
            pass

    async def tick(self) -> TickResult:
        """One poll cycle: reclaim, claim, process."""
        now = self.clock()
        result = TickResult()

        result.released = await self.release_stale(now)
        if result.released:
            logger.warning(
                "Released stale email job locks",
                worker_id=self.worker_id,
                released=result.released,
            )

        claimed = await self.claim_batch(now)
        result.claimed = len(claimed)
        if not claimed:
            return result

        semaphore = asyncio.Semaphore(self.settings.email_queue_concurrency)

        async def _run(job: EmailJob) -> EmailJobStatus | None:
            async with semaphore:
                return await self.process_one(job)

        outcomes = await asyncio.gather(
            *(_run(job) for job in claimed), return_exceptions=True
        )

        for job, outcome in zip(claimed, outcomes):
            if isinstance(outcome, Exception):
                # The lock stays in place and the reclaimer will release it
                logger.error(
                    "Email job outcome not recorded",
                    job_id=job.id,
                    error=describe_error(outcome),
                )
                result.lost += 1
            elif outcome is None:
                result.lost += 1
            elif outcome == EmailJobStatus.SENT:
                result.sent += 1
            elif outcome == EmailJobStatus.PENDING:
                result.retried += 1
            else:
                result.failed += 1

        return result

    async def release_stale(self, now: int) -> int:
        """Put IN_PROGRESS jobs with an expired lock back to PENDING."""
        stale_before = now - self.settings.email_queue_stale_lock_ms
        stale_jobs = await self.store.find_stale(EmailJobStatus.IN_PROGRESS, stale_before)

        released = 0
        for job in stale_jobs:
            # attempts and next_attempt_at_ms are left unchanged
            if await self.store.conditional_update(
                job.id,
                EmailJobStatus.IN_PROGRESS,
                expected_version=job.version,
                status=EmailJobStatus.PENDING,
                locked_at_ms=None,
                locked_by=None,
            ):
                released += 1
        return released

    async def claim_batch(self, now: int, batch_size: int | None = None) -> list[EmailJob]:
        """
        Claim up to ``batch_size`` due PENDING jobs, oldest first.

        Returns the claimed jobs as re-read after the claim.
        """
        limit = batch_size or self.settings.email_queue_batch_size
        candidates = await self.store.find_due(EmailJobStatus.PENDING, now, limit)

        claimed: list[EmailJob] = []
        for job in candidates:
            won = await self.store.conditional_update(
                job.id,
                EmailJobStatus.PENDING,
                expected_version=job.version,
                status=EmailJobStatus.IN_PROGRESS,
                locked_at_ms=now,
                locked_by=self.worker_id,
            )
            if not won:
                logger.debug("Email job taken by another worker", job_id=job.id)
                continue

            fresh = await self.store.get_by_id(job.id)
            if fresh is not None and fresh.version == job.version + 1:
                claimed.append(fresh)

        if claimed:
            logger.info(
                "Claimed email jobs",
                worker_id=self.worker_id,
                job_count=len(claimed),
                job_ids=[job.id for job in claimed],
            )
        return claimed

    async def process_one(self, job: EmailJob) -> EmailJobStatus | None:
        """
        Deliver one claimed job and record the outcome.

        Returns the status written, or None when the job was no longer ours
        to write (its lock was reclaimed meanwhile).
        """
        started = time.monotonic()

        contact_id = (job.contact_id or "").strip()
        if not contact_id:
            return await self._fail_permanently(job, "Missing contact id")

        try:
            contact = await self.resolve_contact(contact_id)
        except Exception as e:
            return await self._retry_or_fail(job, self._elapsed_ms(started), describe_error(e))

        if contact is None:
            return await self._fail_permanently(job, "Contact not found")

        if not self.callbacks.has(job.type):
            return await self._fail_permanently(job, f"Unsupported type: {job.type}")

        callback = self.callbacks.get(job.type)
        try:
            sent = await callback.send(contact)
        except Exception as e:
            return await self._retry_or_fail(job, self._elapsed_ms(started), describe_error(e))

        duration_ms = self._elapsed_ms(started)
        if sent:
            return await self._mark_sent(job, duration_ms)
        return await self._retry_or_fail(job, duration_ms, "Send returned false")

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _refetch_owned(self, job: EmailJob) -> EmailJob | None:
        """Re-read the job right before writing; None if our claim is gone."""
        fresh = await self.store.get_by_id(job.id)
        if (
            fresh is None
            or fresh.status != EmailJobStatus.IN_PROGRESS.value
            or fresh.version != job.version
        ):
            logger.warning(
                "Email job lock lost before outcome write",
                job_id=job.id,
                worker_id=self.worker_id,
                current_status=fresh.status if fresh else None,
            )
            return None
        return fresh

    async def _write(self, fresh: EmailJob, **values) -> bool:
        written = await self.store.conditional_update(
            fresh.id,
            EmailJobStatus.IN_PROGRESS,
            expected_version=fresh.version,
            locked_at_ms=None,
            locked_by=None,
            **values,
        )
        if not written:
            logger.warning(
                "Email job changed concurrently, outcome dropped",
                job_id=fresh.id,
                worker_id=self.worker_id,
            )
        return written

    async def _mark_sent(self, job: EmailJob, duration_ms: int) -> EmailJobStatus | None:
        fresh = await self._refetch_owned(job)
        if fresh is None:
            return None

        if not await self._write(fresh, status=EmailJobStatus.SENT, last_error=None):
            return None

        logger.info(
            "Email job sent",
            job_id=fresh.id,
            job_type=fresh.type,
            attempts=fresh.attempts,
            duration_ms=duration_ms,
        )
        return EmailJobStatus.SENT

    async def _retry_or_fail(
        self, job: EmailJob, duration_ms: int, error: str
    ) -> EmailJobStatus | None:
        fresh = await self._refetch_owned(job)
        if fresh is None:
            return None

        attempts = fresh.attempts + 1
        last_error = truncate_error(error, self.settings.email_queue_last_error_max_length)

        if attempts >= self.settings.email_queue_max_attempts:
            if not await self._write(
                fresh,
                status=EmailJobStatus.FAILED,
                attempts=attempts,
                last_error=last_error,
            ):
                return None
            logger.error(
                "Email job failed permanently",
                job_id=fresh.id,
                job_type=fresh.type,
                attempts=attempts,
                last_error=last_error,
            )
            return EmailJobStatus.FAILED

        backoff_ms = compute_backoff_ms(
            attempts,
            base_ms=self.settings.email_queue_backoff_base_ms,
            cap_ms=self.settings.email_queue_backoff_cap_ms,
        )
        if not await self._write(
            fresh,
            status=EmailJobStatus.PENDING,
            attempts=attempts,
            next_attempt_at_ms=self.clock() + backoff_ms,
            last_error=last_error,
        ):
            return None

        logger.warning(
            "Email job retry scheduled",
            job_id=fresh.id,
            job_type=fresh.type,
            attempts=attempts,
            backoff_ms=backoff_ms,
            duration_ms=duration_ms,
        )
        return EmailJobStatus.PENDING

    async def _fail_permanently(self, job: EmailJob, error: str) -> EmailJobStatus | None:
        """Dead-letter a job that can never succeed, without using backoff."""
        fresh = await self._refetch_owned(job)
        if fresh is None:
            return None

        last_error = truncate_error(error, self.settings.email_queue_last_error_max_length)
        if not await self._write(
            fresh,
            status=EmailJobStatus.FAILED,
            attempts=max(fresh.attempts, self.settings.email_queue_max_attempts),
            last_error=last_error,
        ):
            return None

        logger.error(
            "Email job failed permanently",
            job_id=fresh.id,
            job_type=fresh.type,
            reason=last_error,
        )
        return EmailJobStatus.FAILED


def create_worker(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    transport: MailTransport | None,
    worker_id: str | None = None,
) -> EmailQueueWorker:
    """Wire a worker to the database and the configured delivery callbacks."""
    register_delivery_callbacks(settings, transport)
    contacts = ContactService(session_factory)
    return EmailQueueWorker(
        settings,
        SqlAlchemyJobStore(session_factory),
        contacts.resolve,
        worker_id=worker_id,
    )
