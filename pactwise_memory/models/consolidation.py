"""
Consolidation job model.

A job records one run of the promotion pipeline: its input short-term
ids, the long-term ids it created or reinforced, and run statistics.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from pactwise_memory.models.base import _utcnow, new_id


class JobStateError(Exception):
    """Raised on an illegal consolidation job status transition."""

    pass


class JobStatus(str, Enum):
    """Lifecycle of a consolidation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


class ConsolidationStats(BaseModel):
    """Per-run statistics."""

    memories_processed: int = 0
    memories_consolidated: int = 0
    memories_created: int = 0
    memories_reinforced: int = 0
    memories_skipped: int = 0
    patterns_found: int = 0
    associations_touched: int = 0


class ConsolidationJob(BaseModel):
    """One run of the short-term to long-term promotion pipeline."""

    id: str = Field(default_factory=new_id)
    user_id: str
    enterprise_id: str
    session_id: str | None = None

    status: JobStatus = JobStatus.PENDING
    short_term_memory_ids: list[str] = Field(default_factory=list)
    created_long_term_memory_ids: list[str] = Field(default_factory=list)
    reinforced_long_term_memory_ids: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    rerun_of: str | None = Field(
        default=None,
        description="ID of the failed job this run repeats",
    )

    stats: ConsolidationStats = Field(default_factory=ConsolidationStats)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def start(self, now: datetime | None = None) -> None:
        """pending -> processing."""
        if self.status != JobStatus.PENDING:
            raise JobStateError(f"Job {self.id} cannot start from {self.status.value}")
        self.status = JobStatus.PROCESSING
        self.started_at = now or _utcnow()

    def complete(self, now: datetime | None = None) -> None:
        """processing -> completed."""
        if self.status != JobStatus.PROCESSING:
            raise JobStateError(f"Job {self.id} cannot complete from {self.status.value}")
        self.status = JobStatus.COMPLETED
        self.completed_at = now or _utcnow()

    def fail(self, error: str, now: datetime | None = None) -> None:
        """pending/processing -> failed, keeping the error."""
        if not self.status.is_active:
            raise JobStateError(f"Job {self.id} cannot fail from {self.status.value}")
        self.status = JobStatus.FAILED
        self.error = error
        self.completed_at = now or _utcnow()
