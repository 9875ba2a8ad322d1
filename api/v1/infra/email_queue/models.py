"""
Email job model for the persistent outbound-email queue.
"""

import time
import uuid
from enum import Enum

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from api.infra.database import Base


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class EmailJobStatus(str, Enum):
    """Email job status enumeration."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SENT = "SENT"
    FAILED = "FAILED"


class EmailJobType(str, Enum):
    """Which delivery callback handles the job."""

    CONTACT_NOTIFY_OWNER = "CONTACT_NOTIFY_OWNER"
    CONTACT_REPLY_SENDER = "CONTACT_REPLY_SENDER"


class EmailJob(Base):
    """
    One durable email-send job.

    The queue never stores message content: ``contact_id`` points at the
    domain object and the delivery callback resolves it at send time.

    Worker coordination:
    - ``locked_at_ms`` is set exactly while the job is IN_PROGRESS
    - ``version`` is bumped by every conditional update, so a writer holding
      a stale copy of the row can never overwrite a newer state
    """

    __tablename__ = "email_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    type: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Email job type"
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=EmailJobStatus.PENDING.value,
        comment="PENDING|IN_PROGRESS|SENT|FAILED",
    )
    contact_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, comment="Referenced contact message"
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Failed attempts so far"
    )
    next_attempt_at_ms: Mapped[int] = mapped_column(
        BigInteger, nullable=False, comment="Earliest claim time (epoch ms)"
    )
    locked_at_ms: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, comment="When a worker claimed the job (epoch ms)"
    )
    locked_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Worker ID holding the lock"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last failure description"
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Optimistic concurrency counter"
    )

    # Timestamps
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'SENT', 'FAILED')",
            name="email_jobs_status_check",
        ),
        CheckConstraint("attempts >= 0", name="email_jobs_attempts_check"),
        Index("ix_email_jobs_status_next_attempt", "status", "next_attempt_at_ms"),
        Index("ix_email_jobs_status_locked_at", "status", "locked_at_ms"),
        Index("ix_email_jobs_created_at", "created_at_ms"),
    )

    def is_terminal(self) -> bool:
        """Check if job has reached SENT or FAILED."""
        return self.status in (EmailJobStatus.SENT.value, EmailJobStatus.FAILED.value)

    def is_due(self, at_ms: int) -> bool:
        """Check if job can be claimed at the given time."""
        return (
            self.status == EmailJobStatus.PENDING.value
            and self.next_attempt_at_ms <= at_ms
        )

    def is_stale(self, at_ms: int, stale_lock_ms: int) -> bool:
        """Check if an in-progress lock has outlived the stale threshold."""
        if self.status != EmailJobStatus.IN_PROGRESS.value or self.locked_at_ms is None:
            return False
        return self.locked_at_ms < at_ms - stale_lock_ms

    def __repr__(self) -> str:
        return (
            f"<EmailJob id={self.id} type={self.type} status={self.status} "
            f"attempts={self.attempts} version={self.version}>"
        )
