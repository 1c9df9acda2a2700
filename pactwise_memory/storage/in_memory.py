"""
In-process storage backend.

Keeps every collection in dictionaries. Records are copied on the way
in and on the way out so callers never share mutable state with the
store, matching the semantics of a real database.
"""

from datetime import datetime

from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.base import ImportanceLevel, MemoryType
from pactwise_memory.models.consolidation import ConsolidationJob
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.models.working import WorkingMemoryState
from pactwise_memory.storage.base import (
    BaseMemoryStore,
    StorageError,
    is_eligible_for_consolidation,
)


class InMemoryStore(BaseMemoryStore):
    """Dictionary-backed memory store for tests and single-process use."""

    def __init__(self):
        self._short_term: dict[str, ShortTermMemory] = {}
        self._long_term: dict[str, LongTermMemory] = {}
        self._associations: dict[str, MemoryAssociation] = {}
        self._working: dict[tuple[str, str], WorkingMemoryState] = {}
        self._jobs: dict[str, ConsolidationJob] = {}
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def is_connected(self) -> bool:
        return self._connected

    def _ensure_connected(self) -> None:
        """Raise error if not connected."""
        if not self._connected:
            raise StorageError("Store is not connected")

    # Short-term memory
    async def save_short_term(self, memory: ShortTermMemory) -> str:
        self._ensure_connected()
        self._short_term[memory.id] = memory.model_copy(deep=True)
        return memory.id

    async def get_short_term(self, memory_id: str) -> ShortTermMemory | None:
        self._ensure_connected()
        memory = self._short_term.get(memory_id)
        return memory.model_copy(deep=True) if memory else None

    async def delete_short_term(self, memory_id: str) -> bool:
        self._ensure_connected()
        return self._short_term.pop(memory_id, None) is not None

    async def get_by_user_and_session(
        self,
        user_id: str,
        session_id: str,
    ) -> list[ShortTermMemory]:
        self._ensure_connected()
        return self._select_short_term(
            lambda m: m.user_id == user_id and m.session_id == session_id
        )

    async def get_short_term_by_user(self, user_id: str) -> list[ShortTermMemory]:
        self._ensure_connected()
        return self._select_short_term(lambda m: m.user_id == user_id)

    async def get_by_type_and_importance(
        self,
        memory_type: MemoryType,
        importance: ImportanceLevel | None = None,
        user_id: str | None = None,
    ) -> list[ShortTermMemory]:
        self._ensure_connected()
        return self._select_short_term(
            lambda m: m.memory_type == memory_type
            and (importance is None or m.importance == importance)
            and (user_id is None or m.user_id == user_id)
        )

    async def get_expired(self, now: datetime) -> list[ShortTermMemory]:
        self._ensure_connected()
        return self._select_short_term(lambda m: m.is_expired(now))

    async def get_eligible_for_consolidation(
        self,
        reuse_threshold: int,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> list[ShortTermMemory]:
        self._ensure_connected()
        return self._select_short_term(
            lambda m: is_eligible_for_consolidation(m, reuse_threshold)
            and (user_id is None or m.user_id == user_id)
            and (session_id is None or m.session_id == session_id)
        )

    def _select_short_term(self, predicate) -> list[ShortTermMemory]:
        matches = [m for m in self._short_term.values() if predicate(m)]
        matches.sort(key=lambda m: (m.created_at, m.id))
        return [m.model_copy(deep=True) for m in matches]

    # Long-term memory
    async def save_long_term(self, memory: LongTermMemory) -> str:
        self._ensure_connected()
        self._long_term[memory.id] = memory.model_copy(deep=True)
        return memory.id

    async def get_long_term(self, memory_id: str) -> LongTermMemory | None:
        self._ensure_connected()
        memory = self._long_term.get(memory_id)
        return memory.model_copy(deep=True) if memory else None

    async def delete_long_term(self, memory_id: str) -> bool:
        self._ensure_connected()
        return self._long_term.pop(memory_id, None) is not None

    async def get_long_term_by_user(
        self,
        user_id: str,
        memory_type: MemoryType | None = None,
    ) -> list[LongTermMemory]:
        self._ensure_connected()
        matches = [
            m
            for m in self._long_term.values()
            if m.user_id == user_id and (memory_type is None or m.memory_type == memory_type)
        ]
        matches.sort(key=lambda m: (m.created_at, m.id))
        return [m.model_copy(deep=True) for m in matches]

    # Associations
    async def save_association(self, association: MemoryAssociation) -> str:
        self._ensure_connected()
        for existing in self._associations.values():
            if existing.key == association.key and existing.id != association.id:
                raise StorageError(
                    f"Association {association.key} already exists as {existing.id}"
                )
        self._associations[association.id] = association.model_copy(deep=True)
        return association.id

    async def get_association(
        self,
        from_memory_id: str,
        to_memory_id: str,
        association_type: AssociationType,
    ) -> MemoryAssociation | None:
        self._ensure_connected()
        key = (from_memory_id, to_memory_id, association_type)
        for edge in self._associations.values():
            if edge.key == key:
                return edge.model_copy(deep=True)
        return None

    async def get_associations_from(self, memory_id: str) -> list[MemoryAssociation]:
        self._ensure_connected()
        return [
            e.model_copy(deep=True)
            for e in self._associations.values()
            if e.from_memory_id == memory_id
        ]

    async def get_associations_to(self, memory_id: str) -> list[MemoryAssociation]:
        self._ensure_connected()
        return [
            e.model_copy(deep=True)
            for e in self._associations.values()
            if e.to_memory_id == memory_id
        ]

    async def get_all_associations(self) -> list[MemoryAssociation]:
        self._ensure_connected()
        return [e.model_copy(deep=True) for e in self._associations.values()]

    async def delete_association(self, association_id: str) -> bool:
        self._ensure_connected()
        return self._associations.pop(association_id, None) is not None

    # Working memory
    async def get_working_state(
        self,
        user_id: str,
        session_id: str,
    ) -> WorkingMemoryState | None:
        self._ensure_connected()
        state = self._working.get((user_id, session_id))
        return state.model_copy(deep=True) if state else None

    async def save_working_state(self, state: WorkingMemoryState) -> None:
        self._ensure_connected()
        self._working[(state.user_id, state.session_id)] = state.model_copy(deep=True)

    # Consolidation jobs
    async def save_job(self, job: ConsolidationJob) -> str:
        self._ensure_connected()
        self._jobs[job.id] = job.model_copy(deep=True)
        return job.id

    async def get_job(self, job_id: str) -> ConsolidationJob | None:
        self._ensure_connected()
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def get_active_jobs(
        self,
        user_id: str,
        session_id: str | None,
    ) -> list[ConsolidationJob]:
        self._ensure_connected()
        jobs = [
            j
            for j in self._jobs.values()
            if j.user_id == user_id and j.session_id == session_id and j.status.is_active
        ]
        jobs.sort(key=lambda j: (j.created_at, j.id))
        return [j.model_copy(deep=True) for j in jobs]

    async def get_user_active_jobs(self, user_id: str) -> list[ConsolidationJob]:
        self._ensure_connected()
        jobs = [j for j in self._jobs.values() if j.user_id == user_id and j.status.is_active]
        jobs.sort(key=lambda j: (j.created_at, j.id))
        return [j.model_copy(deep=True) for j in jobs]
