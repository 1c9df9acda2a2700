"""
Association graph edge model.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from pactwise_memory.models.base import _utcnow, new_id


class AssociationType(str, Enum):
    """Kinds of relationship between two long-term memories."""

    CAUSAL = "causal"
    CONTRADICTS = "contradicts"
    SUPPORTS = "supports"
    RELATED = "related"
    PRECEDES = "precedes"
    PART_OF = "part_of"
    SIMILAR = "similar"

    @property
    def is_symmetric(self) -> bool:
        """Whether traversal may follow this edge in both directions."""
        return self in _SYMMETRIC_TYPES


_SYMMETRIC_TYPES = frozenset(
    {AssociationType.RELATED, AssociationType.SIMILAR, AssociationType.CONTRADICTS}
)


class MemoryAssociation(BaseModel):
    """A directed, typed, weighted edge between two long-term memories."""

    id: str = Field(default_factory=new_id)
    from_memory_id: str
    to_memory_id: str
    association_type: AssociationType

    strength: float = Field(default=0.3, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    created_at: datetime = Field(default_factory=_utcnow)
    last_reinforced_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _reject_self_loop(self) -> "MemoryAssociation":
        if self.from_memory_id == self.to_memory_id:
            raise ValueError("An association cannot link a memory to itself")
        return self

    @property
    def key(self) -> tuple[str, str, AssociationType]:
        return (self.from_memory_id, self.to_memory_id, self.association_type)

    def other_end(self, memory_id: str) -> str:
        """The endpoint opposite ``memory_id``."""
        if memory_id == self.from_memory_id:
            return self.to_memory_id
        return self.from_memory_id
