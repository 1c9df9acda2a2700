"""
Short-term memory model.

One conversational fact awaiting triage by the consolidation pipeline.
Records are TTL-bound and become read-only once promoted.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, computed_field

from pactwise_memory.models.base import (
    ImportanceLevel,
    MemoryContext,
    MemorySource,
    MemoryType,
    _utcnow,
    new_id,
)


class ConsolidatedMemoryError(Exception):
    """Raised when a consolidated (read-only) short-term record is mutated."""

    pass


class ShortTermMemory(BaseModel):
    """
    A provisional memory captured from a conversational turn.

    Once ``consolidated_at`` is set the record is retained only for
    audit and lineage and must never be promoted again.
    """

    id: str = Field(default_factory=new_id, description="ULID record identifier")
    user_id: str
    enterprise_id: str
    session_id: str

    memory_type: MemoryType
    content: str
    structured_data: dict[str, Any] | None = None
    embedding: list[float] | None = None
    context: MemoryContext = Field(default_factory=MemoryContext)

    importance: ImportanceLevel = ImportanceLevel.MEDIUM
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    # Usage telemetry
    access_count: int = Field(default=0, ge=0)
    last_accessed_at: datetime = Field(default_factory=_utcnow)

    # Lifecycle
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime | None = None
    consolidated_at: datetime | None = None

    # Flags
    is_processed: bool = False
    should_consolidate: bool = False

    source: MemorySource = MemorySource.CONVERSATION
    source_metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def is_consolidated(self) -> bool:
        """Whether this record has been promoted to long-term memory."""
        return self.consolidated_at is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the short-term TTL has elapsed."""
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at

    def record_access(
        self,
        now: datetime | None = None,
        reuse_threshold: int | None = None,
    ) -> None:
        """
        Record that this memory was read.

        Once the access count exceeds ``reuse_threshold`` the record is
        flagged for consolidation.
        """
        self.access_count += 1
        self.last_accessed_at = now or _utcnow()
        if reuse_threshold is not None and self.access_count > reuse_threshold:
            self.should_consolidate = True

    def mark_for_consolidation(self) -> None:
        """Flag the record for the next consolidation run."""
        if self.consolidated_at is not None:
            raise ConsolidatedMemoryError(
                f"Short-term memory {self.id} was already consolidated"
            )
        self.should_consolidate = True

    def mark_consolidated(self, now: datetime | None = None) -> None:
        """Stamp the record as promoted. Allowed exactly once."""
        if self.consolidated_at is not None:
            raise ConsolidatedMemoryError(
                f"Short-term memory {self.id} was already consolidated"
            )
        self.consolidated_at = now or _utcnow()
        self.is_processed = True

    def __str__(self) -> str:
        return f"{self.memory_type.value}[{self.id[-8:]}]: {self.content[:50]}"
