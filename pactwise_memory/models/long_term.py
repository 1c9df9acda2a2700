"""
Long-term memory model.

Durable knowledge distilled from one or more short-term records. The
stored ``strength`` is a snapshot as of the last write; the effective
value is always computed by the decay engine at read time.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pactwise_memory.models.base import (
    ImportanceLevel,
    LongTermContext,
    MemorySource,
    MemoryType,
    _utcnow,
    new_id,
)


class LineageEntry(BaseModel):
    """One consolidation event that fed this memory."""

    job_id: str | None = None
    short_term_ids: list[str] = Field(default_factory=list)
    reinforced_at: datetime = Field(default_factory=_utcnow)


class LongTermMemory(BaseModel):
    """A durable, decaying, reinforceable knowledge record."""

    id: str = Field(default_factory=new_id, description="ULID record identifier")
    user_id: str
    enterprise_id: str

    memory_type: MemoryType
    content: str
    structured_data: dict[str, Any] | None = None
    summary: str | None = None
    embedding: list[float] | None = None
    keywords: list[str] = Field(default_factory=list)
    context: LongTermContext = Field(default_factory=LongTermContext)

    importance: ImportanceLevel = ImportanceLevel.MEDIUM

    # Decay state
    strength: float = Field(default=0.3, ge=0.0, le=1.0)
    decay_rate: float = Field(default=0.002, ge=0.0)
    reinforcement_count: int = Field(default=0, ge=0)
    attention_boost: float = Field(
        default=0.0,
        description="Accumulated light reinforcement from retrieval",
        ge=0.0,
        le=1.0,
    )

    # Usage telemetry
    access_count: int = Field(default=0, ge=0)
    last_accessed_at: datetime = Field(default_factory=_utcnow)
    last_reinforced_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Provenance: set at creation, never mutated
    consolidated_from: list[str] = Field(default_factory=list)
    source: MemorySource = MemorySource.CONVERSATION
    source_chain: list[LineageEntry] = Field(default_factory=list)

    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    is_verified: bool = False
    contradicted_by: list[str] = Field(default_factory=list)

    @property
    def decay_anchor(self) -> datetime:
        """Timestamp the decay clock runs from."""
        return self.last_reinforced_at or self.created_at

    def record_access(self, now: datetime | None = None) -> None:
        """Record that this memory was returned to a caller."""
        self.access_count += 1
        self.last_accessed_at = now or _utcnow()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"id={self.id!r}, "
            f"type={self.memory_type.value}, "
            f"reinforcements={self.reinforcement_count}, "
            f"strength={self.strength:.2f})"
        )
