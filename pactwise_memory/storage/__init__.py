"""
Storage module for memory persistence.

Provides:
- Abstract keyed store contract with secondary-index lookups
- In-process dictionary backend
- SQLite backend (aiosqlite)
"""

from pactwise_memory.config import StorageConfig
from pactwise_memory.storage.base import (
    BaseMemoryStore,
    MemoryNotFoundError,
    StorageError,
    is_eligible_for_consolidation,
)
from pactwise_memory.storage.in_memory import InMemoryStore
from pactwise_memory.storage.sqlite import SQLiteStore


def create_store(config: StorageConfig | None = None) -> BaseMemoryStore:
    """Build the store selected by ``config.backend``."""
    config = config or StorageConfig()
    if config.backend == "sqlite":
        return SQLiteStore(config)
    return InMemoryStore()


__all__ = [
    "BaseMemoryStore",
    "InMemoryStore",
    "MemoryNotFoundError",
    "SQLiteStore",
    "StorageError",
    "create_store",
    "is_eligible_for_consolidation",
]
