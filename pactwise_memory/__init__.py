"""
Pactwise Memory - Tiered agent memory for the contract assistant

A memory subsystem implementing:
- Short-term memories captured from classified conversational turns
- Bounded working memory with activation-based eviction
- Consolidation of short-term memories into deduplicated long-term memory
- Lazy strength decay with reinforcement
- Typed, weighted association graph with contradiction tracking
- Multi-tier retrieval ranking

Quick Start:
    from pactwise_memory import MemorySystem

    async with MemorySystem(classifier=my_classifier) as system:
        await system.record_turn("user_1", "ent_1", "session_1", turn_text)
        await system.trigger_consolidation("user_1", "ent_1", "session_1")
        context = await system.retrieve("user_1", "session_1", "vendor notice period")
"""

from pactwise_memory.config import MemoryConfig
from pactwise_memory.models import (
    AssociationType,
    ConsolidationJob,
    EntityContext,
    ImportanceLevel,
    JobStatus,
    LongTermMemory,
    MemoryAssociation,
    MemoryContext,
    MemorySource,
    MemoryType,
    ShortTermMemory,
    WorkingItemType,
    WorkingMemoryItem,
    WorkingMemoryState,
)
from pactwise_memory.api.classifier import Classifier, ClassificationResult, ExtractedInfo
from pactwise_memory.api.memory_system import MemorySystem
from pactwise_memory.retrieval.ranker import MemoryTier, RetrievalResult
from pactwise_memory.storage.base import MemoryNotFoundError, StorageError

__version__ = "0.1.0"

__all__ = [
    # Main entry point
    "MemorySystem",
    "MemoryConfig",

    # Classifier contract
    "Classifier",
    "ClassificationResult",
    "ExtractedInfo",

    # Records
    "ConsolidationJob",
    "LongTermMemory",
    "MemoryAssociation",
    "ShortTermMemory",
    "WorkingMemoryItem",
    "WorkingMemoryState",

    # Enums and context
    "AssociationType",
    "EntityContext",
    "ImportanceLevel",
    "JobStatus",
    "MemoryContext",
    "MemorySource",
    "MemoryTier",
    "MemoryType",
    "WorkingItemType",

    # Results and errors
    "RetrievalResult",
    "MemoryNotFoundError",
    "StorageError",
]
