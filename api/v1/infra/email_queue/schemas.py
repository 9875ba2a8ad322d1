"""
Email queue Pydantic schemas.
"""

from pydantic import BaseModel, ConfigDict


class EmailJobResponse(BaseModel):
    """Schema for displaying an email job."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    status: str
    contact_id: str | None
    attempts: int
    next_attempt_at_ms: int
    locked_at_ms: int | None = None
    locked_by: str | None = None
    last_error: str | None = None
    created_at_ms: int
    updated_at_ms: int


class EmailQueueStats(BaseModel):
    """Schema for queue statistics."""

    total_jobs: int
    by_status: dict[str, int]
    queue_depth: int  # pending + in progress
    stale_locks: int


class TickResult(BaseModel):
    """Outcome of one worker poll cycle."""

    released: int = 0
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    lost: int = 0
