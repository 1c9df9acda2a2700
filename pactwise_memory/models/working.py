"""
Working memory models.

Working memory is a bounded, per-session scratch context. Items carry
an activation that decays between accesses; the owning state enforces
the capacity bound.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from pactwise_memory.models.base import MemoryType, _utcnow, new_id


class WorkingItemType(str, Enum):
    """Kinds of working memory item."""

    CONCEPT = "concept"
    ENTITY = "entity"
    TASK = "task"
    PREFERENCE = "preference"
    CONTEXT = "context"

    def to_memory_type(self) -> MemoryType:
        """Memory type used when an item is captured for consolidation."""
        return _WORKING_TO_MEMORY_TYPE[self]


_WORKING_TO_MEMORY_TYPE = {
    WorkingItemType.CONCEPT: MemoryType.DOMAIN_KNOWLEDGE,
    WorkingItemType.ENTITY: MemoryType.ENTITY_RELATION,
    WorkingItemType.TASK: MemoryType.TASK_HISTORY,
    WorkingItemType.PREFERENCE: MemoryType.USER_PREFERENCE,
    WorkingItemType.CONTEXT: MemoryType.CONVERSATION_CONTEXT,
}


class WorkingItemSource(str, Enum):
    """Where a working memory item came from."""

    CHAT = "chat"
    MEMORY = "memory"
    INFERENCE = "inference"


class WorkingMemoryItem(BaseModel):
    """A transient item held in a session's working memory."""

    id: str = Field(default_factory=new_id)
    content: str
    type: WorkingItemType
    activation: float = Field(default=1.0, ge=0.0, le=1.0)
    last_accessed: datetime = Field(default_factory=_utcnow)
    access_count: int = Field(default=0, ge=0)
    associations: list[str] = Field(
        default_factory=list,
        description="IDs of other items in the same working memory",
    )
    source: WorkingItemSource = WorkingItemSource.CHAT
    metadata: dict[str, Any] = Field(default_factory=dict)


class WorkingMemoryState(BaseModel):
    """Working memory of one (user, session)."""

    id: str = Field(default_factory=new_id)
    user_id: str
    session_id: str
    capacity: int = Field(default=7, ge=1)
    items: list[WorkingMemoryItem] = Field(default_factory=list)
    focus_item: str | None = None
    last_update: datetime = Field(default_factory=_utcnow)

    def get_item(self, item_id: str) -> WorkingMemoryItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def size(self) -> int:
        return len(self.items)

    @property
    def is_over_capacity(self) -> bool:
        return len(self.items) > self.capacity
