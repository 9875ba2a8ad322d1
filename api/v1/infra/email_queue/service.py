"""
Email queue service: enqueueing and queue statistics.
"""

import logging
from collections.abc import Callable, Iterable

from api.config.settings import Settings
from api.v1.infra.email_queue.models import (
    EmailJob,
    EmailJobStatus,
    EmailJobType,
    now_ms,
)
from api.v1.infra.email_queue.schemas import EmailQueueStats
from api.v1.infra.email_queue.store import SqlAlchemyJobStore

logger = logging.getLogger(__name__)

# Enqueue order of the variants for one contact message
VARIANT_ORDER = (EmailJobType.CONTACT_NOTIFY_OWNER, EmailJobType.CONTACT_REPLY_SENDER)


def enabled_contact_variants(settings: Settings) -> set[EmailJobType]:
    """Email variants switched on by configuration."""
    variants: set[EmailJobType] = set()
    if settings.contact_notification_email:
        variants.add(EmailJobType.CONTACT_NOTIFY_OWNER)
    if settings.contact_send_reply_to_sender:
        variants.add(EmailJobType.CONTACT_REPLY_SENDER)
    return variants


class EmailQueueService:
    """Service for putting email jobs on the queue and reporting on it."""

    def __init__(
        self,
        settings: Settings,
        store: SqlAlchemyJobStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = settings
        self.store = store
        self.clock = clock

    async def enqueue_contact_emails(
        self, reference_id: str, variants_enabled: Iterable[EmailJobType]
    ) -> list[str]:
        """
        Create one PENDING job per enabled variant for a contact message.

        Args:
            reference_id: Contact id the emails are about
            variants_enabled: Email job types to create

        Returns:
            Ids of the created jobs, owner notification first. Either every
            enabled variant is stored or, if the insert fails, none is.
        """
        enabled = set(variants_enabled)
        now = self.clock()
        jobs: list[EmailJob] = []

        for job_type in VARIANT_ORDER:
            if job_type not in enabled:
                logger.debug(
                    "Email variant disabled, not enqueued",
                    extra={"type": job_type.value, "contact_id": reference_id},
                )
                continue

            jobs.append(
                EmailJob(
                    type=job_type.value,
                    status=EmailJobStatus.PENDING.value,
                    contact_id=reference_id,
                    attempts=0,
                    next_attempt_at_ms=now,
                    created_at_ms=now,
                )
            )

        # One transaction for all variants of a message
        if jobs:
            await self.store.insert_all(jobs)
        job_ids = [job.id for job in jobs]

        logger.info(
            "Email jobs enqueued",
            extra={"contact_id": reference_id, "job_ids": job_ids},
        )
        return job_ids

    async def enqueue_for_contact(self, contact_id: str) -> list[str]:
        """Enqueue the configured email variants for a new contact message."""
        return await self.enqueue_contact_emails(
            contact_id, enabled_contact_variants(self.settings)
        )

    async def get_stats(self) -> EmailQueueStats:
        """Job counts by status plus the number of stale locks."""
        by_status = await self.store.count_by_status()
        stale_locks = await self.store.count_stale(
            self.clock() - self.settings.email_queue_stale_lock_ms
        )
        return EmailQueueStats(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            queue_depth=by_status[EmailJobStatus.PENDING.value]
            + by_status[EmailJobStatus.IN_PROGRESS.value],
            stale_locks=stale_locks,
        )
