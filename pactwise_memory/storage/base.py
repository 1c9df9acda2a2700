"""
Abstract base class for memory record stores.

Defines the keyed-store contract consumed by the working memory
manager, the consolidation engine, the association graph and the
retrieval ranker. Every ``save_*`` method is an upsert; each single
record mutation is atomic and no multi-record transactions are assumed.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.base import ImportanceLevel, MemoryType
from pactwise_memory.models.consolidation import ConsolidationJob
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.models.working import WorkingMemoryState


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class MemoryNotFoundError(StorageError):
    """Raised when a memory is not found."""

    pass


def is_eligible_for_consolidation(memory: ShortTermMemory, reuse_threshold: int) -> bool:
    """
    Candidate rule for promotion.

    Flagged for consolidation, not yet consolidated, and either not low
    importance or reused more than ``reuse_threshold`` times.
    """
    return (
        memory.should_consolidate
        and memory.consolidated_at is None
        and (
            memory.importance != ImportanceLevel.LOW
            or memory.access_count > reuse_threshold
        )
    )


class BaseMemoryStore(ABC):
    """
    Abstract base class for memory storage backends.

    Holds short-term and long-term memories, association edges, working
    memory state and consolidation jobs.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection to storage backend."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to storage backend."""
        pass

    @abstractmethod
    async def is_connected(self) -> bool:
        """Check if storage is connected."""
        pass

    async def __aenter__(self) -> "BaseMemoryStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # Short-term memory
    @abstractmethod
    async def save_short_term(self, memory: ShortTermMemory) -> str:
        """Insert or replace a short-term memory. Returns its id."""
        pass

    @abstractmethod
    async def get_short_term(self, memory_id: str) -> ShortTermMemory | None:
        pass

    @abstractmethod
    async def delete_short_term(self, memory_id: str) -> bool:
        pass

    @abstractmethod
    async def get_by_user_and_session(
        self,
        user_id: str,
        session_id: str,
    ) -> list[ShortTermMemory]:
        """Short-term memories of one session, oldest first."""
        pass

    @abstractmethod
    async def get_short_term_by_user(self, user_id: str) -> list[ShortTermMemory]:
        """Short-term memories of a user across sessions, oldest first."""
        pass

    @abstractmethod
    async def get_by_type_and_importance(
        self,
        memory_type: MemoryType,
        importance: ImportanceLevel | None = None,
        user_id: str | None = None,
    ) -> list[ShortTermMemory]:
        pass

    @abstractmethod
    async def get_expired(self, now: datetime) -> list[ShortTermMemory]:
        """Short-term memories whose ``expires_at`` has elapsed."""
        pass

    @abstractmethod
    async def get_eligible_for_consolidation(
        self,
        reuse_threshold: int,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> list[ShortTermMemory]:
        """
        Short-term memories ready for promotion, oldest first.

        Args:
            reuse_threshold: Access count a low-importance record must exceed
            user_id: Restrict to one user
            session_id: Restrict to one session
        """
        pass

    # Long-term memory
    @abstractmethod
    async def save_long_term(self, memory: LongTermMemory) -> str:
        pass

    @abstractmethod
    async def get_long_term(self, memory_id: str) -> LongTermMemory | None:
        pass

    @abstractmethod
    async def delete_long_term(self, memory_id: str) -> bool:
        pass

    @abstractmethod
    async def get_long_term_by_user(
        self,
        user_id: str,
        memory_type: MemoryType | None = None,
    ) -> list[LongTermMemory]:
        """Long-term memories of a user, oldest first."""
        pass

    # Associations
    @abstractmethod
    async def save_association(self, association: MemoryAssociation) -> str:
        pass

    @abstractmethod
    async def get_association(
        self,
        from_memory_id: str,
        to_memory_id: str,
        association_type: AssociationType,
    ) -> MemoryAssociation | None:
        """Look up the unique edge for ``(from, to, type)``."""
        pass

    @abstractmethod
    async def get_associations_from(self, memory_id: str) -> list[MemoryAssociation]:
        pass

    @abstractmethod
    async def get_associations_to(self, memory_id: str) -> list[MemoryAssociation]:
        pass

    @abstractmethod
    async def get_all_associations(self) -> list[MemoryAssociation]:
        pass

    @abstractmethod
    async def delete_association(self, association_id: str) -> bool:
        pass

    # Working memory
    @abstractmethod
    async def get_working_state(
        self,
        user_id: str,
        session_id: str,
    ) -> WorkingMemoryState | None:
        pass

    @abstractmethod
    async def save_working_state(self, state: WorkingMemoryState) -> None:
        pass

    # Consolidation jobs
    @abstractmethod
    async def save_job(self, job: ConsolidationJob) -> str:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> ConsolidationJob | None:
        pass

    @abstractmethod
    async def get_active_jobs(
        self,
        user_id: str,
        session_id: str | None,
    ) -> list[ConsolidationJob]:
        """Pending or processing jobs for one (user, session) key."""
        pass

    @abstractmethod
    async def get_user_active_jobs(self, user_id: str) -> list[ConsolidationJob]:
        """Pending or processing jobs of a user across every session key."""
        pass
