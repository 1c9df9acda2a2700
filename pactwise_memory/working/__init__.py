"""
Working memory module.

Bounded, activation-decaying, per-session scratch context.
"""

from pactwise_memory.working.manager import (
    EvictedItem,
    EvictionCallback,
    FlushResult,
    InsertResult,
    WorkingMemoryManager,
)

__all__ = [
    "EvictedItem",
    "EvictionCallback",
    "FlushResult",
    "InsertResult",
    "WorkingMemoryManager",
]
