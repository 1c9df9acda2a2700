"""
Memory models for each tier of the agent memory system.
"""

from pactwise_memory.models.base import (
    EntityContext,
    ImportanceLevel,
    LongTermContext,
    MemoryContext,
    MemorySource,
    MemoryType,
    RelatedEntity,
)
from pactwise_memory.models.short_term import ConsolidatedMemoryError, ShortTermMemory
from pactwise_memory.models.long_term import LineageEntry, LongTermMemory
from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.working import (
    WorkingItemSource,
    WorkingItemType,
    WorkingMemoryItem,
    WorkingMemoryState,
)
from pactwise_memory.models.consolidation import (
    ConsolidationJob,
    ConsolidationStats,
    JobStateError,
    JobStatus,
)

__all__ = [
    # Shared
    "EntityContext",
    "ImportanceLevel",
    "LongTermContext",
    "MemoryContext",
    "MemorySource",
    "MemoryType",
    "RelatedEntity",
    # Tiers
    "ConsolidatedMemoryError",
    "ShortTermMemory",
    "LineageEntry",
    "LongTermMemory",
    "WorkingItemSource",
    "WorkingItemType",
    "WorkingMemoryItem",
    "WorkingMemoryState",
    # Graph
    "AssociationType",
    "MemoryAssociation",
    # Jobs
    "ConsolidationJob",
    "ConsolidationStats",
    "JobStateError",
    "JobStatus",
]
