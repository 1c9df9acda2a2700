"""
Base memory models and types.

Defines the enumerations and context models shared by every memory tier.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from ulid import ULID


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a time-ordered record id."""
    return str(ULID())


class MemoryType(str, Enum):
    """Kinds of knowledge a memory record can hold."""

    USER_PREFERENCE = "user_preference"
    INTERACTION_PATTERN = "interaction_pattern"
    DOMAIN_KNOWLEDGE = "domain_knowledge"
    CONVERSATION_CONTEXT = "conversation_context"
    TASK_HISTORY = "task_history"
    FEEDBACK = "feedback"
    ENTITY_RELATION = "entity_relation"
    PROCESS_KNOWLEDGE = "process_knowledge"


class ImportanceLevel(str, Enum):
    """Author-assigned priority. Never decays."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    TEMPORARY = "temporary"

    @property
    def rank(self) -> int:
        """Ordinal position, higher is more important."""
        return _IMPORTANCE_RANK[self]

    @classmethod
    def higher_of(cls, a: "ImportanceLevel", b: "ImportanceLevel") -> "ImportanceLevel":
        """Return the more important of two levels."""
        return a if a.rank >= b.rank else b


_IMPORTANCE_RANK = {
    ImportanceLevel.TEMPORARY: 0,
    ImportanceLevel.LOW: 1,
    ImportanceLevel.MEDIUM: 2,
    ImportanceLevel.HIGH: 3,
    ImportanceLevel.CRITICAL: 4,
}


class MemorySource(str, Enum):
    """Where a memory came from."""

    EXPLICIT_FEEDBACK = "explicit_feedback"
    IMPLICIT_LEARNING = "implicit_learning"
    TASK_OUTCOME = "task_outcome"
    ERROR_CORRECTION = "error_correction"
    CONVERSATION = "conversation"
    SYSTEM_OBSERVATION = "system_observation"
    WORKING_MEMORY = "working_memory"  # Captured from an evicted working item


class RelatedEntity(BaseModel):
    """A reference to a business entity mentioned by a memory."""

    type: str = Field(description="Entity kind (contract, vendor, task, ...)")
    id: str
    name: str | None = None


class MemoryContext(BaseModel):
    """Links from a short-term memory to related entities."""

    conversation_id: str | None = None
    task_id: str | None = None
    contract_id: str | None = None
    vendor_id: str | None = None
    agent_id: str | None = None
    related_entities: list[RelatedEntity] = Field(default_factory=list)

    def entity_ids(self) -> set[str]:
        """All business entity ids this context points at."""
        ids = {
            value
            for value in (self.task_id, self.contract_id, self.vendor_id)
            if value
        }
        ids.update(entity.id for entity in self.related_entities)
        return ids


class LongTermContext(BaseModel):
    """Links from a long-term memory to related entities and memories."""

    domain: str | None = None
    contract_ids: list[str] = Field(default_factory=list)
    vendor_ids: list[str] = Field(default_factory=list)
    task_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    related_memories: list[str] = Field(default_factory=list)

    def entity_ids(self) -> set[str]:
        """All business entity ids this context points at."""
        return set(self.contract_ids) | set(self.vendor_ids) | set(self.task_ids)

    def absorb(self, context: MemoryContext) -> None:
        """Merge the entity links of a short-term context into this one."""
        if context.contract_id and context.contract_id not in self.contract_ids:
            self.contract_ids.append(context.contract_id)
        if context.vendor_id and context.vendor_id not in self.vendor_ids:
            self.vendor_ids.append(context.vendor_id)
        if context.task_id and context.task_id not in self.task_ids:
            self.task_ids.append(context.task_id)
        for entity in context.related_entities:
            bucket = {
                "contract": self.contract_ids,
                "vendor": self.vendor_ids,
                "task": self.task_ids,
            }.get(entity.type)
            if bucket is not None and entity.id not in bucket:
                bucket.append(entity.id)


class EntityContext(BaseModel):
    """Entity filter supplied by the caller of retrieval."""

    contract_ids: list[str] = Field(default_factory=list)
    vendor_ids: list[str] = Field(default_factory=list)
    task_ids: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    def entity_ids(self) -> set[str]:
        return set(self.contract_ids) | set(self.vendor_ids) | set(self.task_ids)
