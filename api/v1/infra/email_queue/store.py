"""
Durable job store for the email queue.

Every state change goes through ``conditional_update``: a single
``UPDATE ... WHERE id = ? AND status = ? [AND version = ?]`` whose matched row
count tells the caller whether it won. That statement is the only mutual
exclusion between workers, so it works the same whether workers are tasks,
threads or separate processes.
"""

from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.v1.infra.email_queue.models import EmailJob, EmailJobStatus, now_ms


class JobStore(Protocol):
    """Storage primitives the queue depends on."""

    async def insert(self, job: EmailJob) -> EmailJob:
        ...

    async def insert_all(self, jobs: list[EmailJob]) -> list[EmailJob]:
        """Insert several jobs in one transaction: all or none."""
        ...

    async def find_due(
        self, status: EmailJobStatus, max_next_attempt_ms: int, limit: int
    ) -> list[EmailJob]:
        """Jobs in ``status`` due at ``max_next_attempt_ms``, oldest first."""
        ...

    async def find_stale(
        self, status: EmailJobStatus, locked_before_ms: int
    ) -> list[EmailJob]:
        ...

    async def conditional_update(
        self,
        job_id: str,
        expected_status: EmailJobStatus,
        expected_version: int | None = None,
        **values: Any,
    ) -> bool:
        """Apply ``values`` only if the row still matches; True if it did."""
        ...

    async def get_by_id(self, job_id: str) -> EmailJob | None:
        ...


class SqlAlchemyJobStore:
    """JobStore backed by the ``email_jobs`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], int] = now_ms,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def insert(self, job: EmailJob) -> EmailJob:
        [job] = await self.insert_all([job])
        return job

    async def insert_all(self, jobs: list[EmailJob]) -> list[EmailJob]:
        now = self.clock()
        for job in jobs:
            if job.created_at_ms is None:
                job.created_at_ms = now
            job.updated_at_ms = job.created_at_ms
            if job.version is None:
                job.version = 0

        async with self.session_factory() as session:
            session.add_all(jobs)
            await session.commit()
        return jobs

    async def find_due(
        self, status: EmailJobStatus, max_next_attempt_ms: int, limit: int
    ) -> list[EmailJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(EmailJob)
                .where(
                    EmailJob.status == status.value,
                    EmailJob.next_attempt_at_ms <= max_next_attempt_ms,
                )
                .order_by(EmailJob.created_at_ms.asc(), EmailJob.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def find_stale(
        self, status: EmailJobStatus, locked_before_ms: int
    ) -> list[EmailJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(EmailJob).where(
                    EmailJob.status == status.value,
                    EmailJob.locked_at_ms.is_not(None),
                    EmailJob.locked_at_ms < locked_before_ms,
                )
            )
            return list(result.scalars().all())

    async def conditional_update(
        self,
        job_id: str,
        expected_status: EmailJobStatus,
        expected_version: int | None = None,
        **values: Any,
    ) -> bool:
        update_values = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in values.items()
        }
        update_values["version"] = EmailJob.version + 1
        update_values["updated_at_ms"] = self.clock()

        query = update(EmailJob).where(
            EmailJob.id == job_id,
            EmailJob.status == expected_status.value,
        )
        if expected_version is not None:
            query = query.where(EmailJob.version == expected_version)

        async with self.session_factory() as session:
            result = await session.execute(
                query.values(**update_values).execution_options(
                    synchronize_session=False
                )
            )
            await session.commit()

        return result.rowcount == 1

    async def get_by_id(self, job_id: str) -> EmailJob | None:
        async with self.session_factory() as session:
            return await session.get(EmailJob, job_id)

    async def count_by_status(self) -> dict[str, int]:
        """Number of jobs per status, with zeroes for empty statuses."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(EmailJob.status, func.count(EmailJob.id)).group_by(
                    EmailJob.status
                )
            )
            counts = dict(result.all())
        return {status.value: counts.get(status.value, 0) for status in EmailJobStatus}

    async def count_stale(self, locked_before_ms: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(EmailJob.id)).where(
                    EmailJob.status == EmailJobStatus.IN_PROGRESS.value,
                    EmailJob.locked_at_ms < locked_before_ms,
                )
            )
            return result.scalar() or 0

    async def list_jobs(
        self, status: EmailJobStatus | None = None, limit: int = 50
    ) -> list[EmailJob]:
        """Most recently updated jobs, optionally filtered by status."""
        query = select(EmailJob)
        if status is not None:
            query = query.where(EmailJob.status == status.value)
        query = query.order_by(EmailJob.updated_at_ms.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
