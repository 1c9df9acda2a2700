"""
Retrieval module.

Provides multi-tier candidate gathering, one-hop associative expansion
and four-signal ranking.
"""

from pactwise_memory.retrieval.ranker import (
    MemoryTier,
    RankedMemory,
    RetrievalRanker,
    RetrievalResult,
)

__all__ = [
    "MemoryTier",
    "RankedMemory",
    "RetrievalRanker",
    "RetrievalResult",
]
