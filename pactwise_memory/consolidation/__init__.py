"""
Consolidation module for the memory promotion pipeline.

Provides:
- Short-term to long-term promotion with deduplication
- Cluster merging (content, importance, confidence, patterns)
- Maintenance of expired, duplicate, weak and orphaned records
"""

from pactwise_memory.consolidation.engine import ConsolidationEngine
from pactwise_memory.consolidation.maintenance import (
    MaintenanceResult,
    MemoryMaintenance,
    MemoryUsage,
)
from pactwise_memory.consolidation.merger import MemoryMerger, MergeResult

__all__ = [
    "ConsolidationEngine",
    "MaintenanceResult",
    "MemoryMaintenance",
    "MemoryUsage",
    "MemoryMerger",
    "MergeResult",
]
