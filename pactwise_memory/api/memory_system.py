"""
Memory System Orchestrator.

The main entry point for the agent memory system. Ties the record
store, working memory, consolidation, association graph and retrieval
together behind the operations the chat assistant calls.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pactwise_memory.api.classifier import Classifier
from pactwise_memory.associations.graph import AssociationGraph
from pactwise_memory.config import MemoryConfig
from pactwise_memory.consolidation.engine import ConsolidationEngine
from pactwise_memory.consolidation.maintenance import (
    MaintenanceResult,
    MemoryMaintenance,
    MemoryUsage,
)
from pactwise_memory.decay.functions import base_strength
from pactwise_memory.decay.importance import default_should_consolidate, short_term_expiry
from pactwise_memory.encoding.text import normalize
from pactwise_memory.models.association import MemoryAssociation
from pactwise_memory.models.base import (
    EntityContext,
    ImportanceLevel,
    MemoryContext,
    MemorySource,
    MemoryType,
    _utcnow,
)
from pactwise_memory.models.consolidation import ConsolidationJob
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.models.working import WorkingItemSource, WorkingMemoryItem
from pactwise_memory.retrieval.ranker import RetrievalRanker, RetrievalResult
from pactwise_memory.storage import create_store
from pactwise_memory.storage.base import BaseMemoryStore, MemoryNotFoundError, StorageError
from pactwise_memory.working.manager import (
    EvictedItem,
    FlushResult,
    InsertResult,
    WorkingMemoryManager,
)

logger = logging.getLogger(__name__)


class SessionEndResult(BaseModel):
    """Outcome of ending a chat session."""

    flush: FlushResult
    captured: list[ShortTermMemory] = Field(default_factory=list)
    job: ConsolidationJob | None = None


class MemorySystem:
    """
    The main Memory System orchestrator.

    Provides a unified interface for all memory operations:
    - Recording classified conversational turns (fire-and-forget)
    - Working memory insert / access / focus, flushed at session end
    - Multi-tier retrieval
    - Triggered consolidation and maintenance
    - Reinforcement, verification and contradiction marking

    Usage:
        async with MemorySystem(classifier=my_classifier) as system:
            await system.record_turn("user_1", "ent_1", "s1", "Vendor X needs 30 days notice")
            job = await system.trigger_consolidation("user_1", "ent_1", "s1")
            context = await system.retrieve("user_1", "s1", "notice period for vendor X")
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        store: BaseMemoryStore | None = None,
        classifier: Classifier | None = None,
    ):
        self.config = config or MemoryConfig()
        self.store = store or create_store(self.config.storage)
        self.classifier = classifier

        self.graph = AssociationGraph(self.store, self.config.associations)
        self.working = WorkingMemoryManager(
            self.store,
            self.config.working,
            self.config.decay,
            on_evict=self._capture_evicted,
        )
        self.consolidation = ConsolidationEngine(
            self.store,
            self.graph,
            self.config.consolidation,
            self.config.decay,
        )
        self.ranker = RetrievalRanker(
            self.store,
            self.working,
            self.graph,
            self.config.retrieval,
            self.config.decay,
            reuse_threshold=self.config.consolidation.reuse_threshold,
        )
        self.maintenance = MemoryMaintenance(
            self.store,
            self.config.decay,
            self.config.associations,
            engine=self.consolidation,
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Connect the store."""
        if self._initialized:
            return
        if self.config.debug:
            logging.getLogger("pactwise_memory").setLevel(logging.DEBUG)
        if not await self.store.is_connected():
            await self.store.connect()
        self._initialized = True
        logger.info("Memory system initialized")

    async def close(self) -> None:
        """Disconnect the store."""
        if await self.store.is_connected():
            await self.store.disconnect()
        self._initialized = False

    async def __aenter__(self) -> "MemorySystem":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StorageError("Memory system is not initialized")

    # Short-term capture

    async def remember(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str,
        content: str,
        memory_type: MemoryType,
        importance: ImportanceLevel = ImportanceLevel.MEDIUM,
        should_consolidate: bool | None = None,
        confidence: float = 0.7,
        context: MemoryContext | None = None,
        structured_data: dict[str, Any] | None = None,
        embedding: list[float] | None = None,
        source: MemorySource = MemorySource.CONVERSATION,
        source_metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ShortTermMemory:
        """
        Store a short-term memory.

        Identical content of the same type already pending in the session
        is counted as another access instead of being stored twice.
        """
        self._ensure_initialized()
        now = now or _utcnow()
        if should_consolidate is None:
            should_consolidate = default_should_consolidate(importance)

        key = normalize(content)
        for existing in await self.store.get_by_user_and_session(user_id, session_id):
            if (
                existing.memory_type == memory_type
                and not existing.is_consolidated
                and normalize(existing.content) == key
            ):
                existing.record_access(now, self.config.consolidation.reuse_threshold)
                existing.importance = ImportanceLevel.higher_of(existing.importance, importance)
                existing.should_consolidate = existing.should_consolidate or should_consolidate
                existing.confidence = max(existing.confidence, confidence)
                await self.store.save_short_term(existing)
                return existing

        memory = ShortTermMemory(
            user_id=user_id,
            enterprise_id=enterprise_id,
            session_id=session_id,
            memory_type=memory_type,
            content=content,
            structured_data=structured_data,
            embedding=embedding,
            context=context or MemoryContext(),
            importance=importance,
            confidence=confidence,
            last_accessed_at=now,
            created_at=now,
            expires_at=short_term_expiry(importance, now),
            should_consolidate=should_consolidate,
            source=source,
            source_metadata=source_metadata or {},
        )
        await self.store.save_short_term(memory)
        return memory

    async def record_turn(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str,
        turn_text: str,
        prior_turn_text: str | None = None,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ShortTermMemory | None:
        """
        Classify a conversational turn and store what it teaches.

        Fire-and-forget: classifier or storage failures are logged and
        the turn proceeds without a stored memory.

        Returns:
            The stored short-term memory, or None
        """
        if self.classifier is None:
            logger.debug("No classifier configured, turn not recorded")
            return None

        try:
            now = now or _utcnow()
            classification = await self.classifier.classify(
                turn_text, prior_turn_text, context or {}
            )
            if classification is None:
                return None

            info = classification.extracted_info
            memory = await self.remember(
                user_id,
                enterprise_id,
                session_id,
                content=info.content,
                memory_type=classification.memory_type,
                importance=classification.importance,
                should_consolidate=classification.should_consolidate,
                confidence=info.confidence,
                context=info.context,
                structured_data=info.structured_data,
                embedding=info.embedding,
                source=info.source,
                now=now,
            )

            if info.working_item_type is not None:
                await self.insert(
                    user_id,
                    session_id,
                    WorkingMemoryItem(
                        content=info.content,
                        type=info.working_item_type,
                        last_accessed=now,
                        source=WorkingItemSource.CHAT,
                    ),
                    enterprise_id=enterprise_id,
                    now=now,
                )

            if self.config.auto_consolidate and classification.should_consolidate:
                await self.trigger_consolidation(user_id, enterprise_id, session_id, now=now)

            return memory
        except Exception:
            logger.exception(f"Failed to record memory for turn in session {session_id}")
            return None

    # Working memory

    async def insert(
        self,
        user_id: str,
        session_id: str,
        item: WorkingMemoryItem,
        enterprise_id: str | None = None,
        now: datetime | None = None,
    ) -> InsertResult:
        """Add an item to the session's working memory."""
        self._ensure_initialized()
        if enterprise_id is not None:
            item.metadata.setdefault("enterprise_id", enterprise_id)
        return await self.working.insert(user_id, session_id, item, now)

    async def access(
        self,
        user_id: str,
        session_id: str,
        item_id: str,
        now: datetime | None = None,
    ) -> WorkingMemoryItem | None:
        """Refresh a working memory item. None if it is unknown."""
        self._ensure_initialized()
        return await self.working.access(user_id, session_id, item_id, now)

    async def set_focus(self, user_id: str, session_id: str, item_id: str) -> bool:
        self._ensure_initialized()
        return await self.working.set_focus(user_id, session_id, item_id)

    async def end_session(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str,
        consolidate: bool = True,
        now: datetime | None = None,
    ) -> SessionEndResult:
        """
        Flush a finished session's working memory.

        Highly active or frequently accessed items become short-term
        memories flagged for promotion, faded items are dropped, and the
        session's pending memories are consolidated when ``consolidate``.
        """
        self._ensure_initialized()
        now = now or _utcnow()

        flushed = await self.working.flush(user_id, session_id, now)
        captured = [
            await self._store_working_item(user_id, session_id, entry, enterprise_id)
            for entry in flushed.promoted
        ]

        job = None
        if consolidate:
            job = await self.trigger_consolidation(user_id, enterprise_id, session_id, now=now)
        return SessionEndResult(flush=flushed, captured=captured, job=job)

    async def _capture_evicted(
        self,
        user_id: str,
        session_id: str,
        entry: EvictedItem,
    ) -> None:
        """Keep a still-active evicted item as a short-term memory flagged for promotion."""
        await self._store_working_item(user_id, session_id, entry)

    async def _store_working_item(
        self,
        user_id: str,
        session_id: str,
        entry: EvictedItem,
        enterprise_id: str | None = None,
    ) -> ShortTermMemory:
        item = entry.item
        return await self.remember(
            user_id,
            enterprise_id or item.metadata.get("enterprise_id", ""),
            session_id,
            content=item.content,
            memory_type=item.type.to_memory_type(),
            importance=ImportanceLevel.MEDIUM,
            should_consolidate=True,
            confidence=round(entry.activation, 3),
            source=MemorySource.WORKING_MEMORY,
            source_metadata={"working_item_id": item.id, "activation": entry.activation},
            now=entry.evicted_at,
        )

    # Retrieval

    async def retrieve(
        self,
        user_id: str,
        session_id: str,
        query_text: str,
        entity_context: EntityContext | None = None,
        limit: int | None = None,
        query_embedding: list[float] | None = None,
        now: datetime | None = None,
    ) -> RetrievalResult:
        """Ranked, tier-tagged context for the next turn."""
        self._ensure_initialized()
        return await self.ranker.retrieve(
            user_id,
            session_id,
            query_text,
            entity_context=entity_context,
            limit=limit,
            query_embedding=query_embedding,
            now=now,
        )

    async def record_engagement(
        self,
        memory_ids: list[str],
        now: datetime | None = None,
    ) -> int:
        """Strengthen edges between long-term memories the user engaged with together."""
        self._ensure_initialized()
        return await self.graph.reinforce_co_occurrence(memory_ids, now)

    # Consolidation

    async def trigger_consolidation(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> ConsolidationJob | None:
        self._ensure_initialized()
        return await self.consolidation.trigger(user_id, enterprise_id, session_id, now)

    async def rerun_consolidation(
        self,
        job_id: str,
        now: datetime | None = None,
    ) -> ConsolidationJob | None:
        self._ensure_initialized()
        return await self.consolidation.rerun(job_id, now)

    async def run_maintenance(
        self,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> MaintenanceResult:
        self._ensure_initialized()
        return await self.maintenance.run(user_id, now)

    async def analyze_usage(self, user_id: str, now: datetime | None = None) -> MemoryUsage:
        self._ensure_initialized()
        return await self.maintenance.analyze_usage(
            user_id, self.config.consolidation.reuse_threshold, now
        )

    async def mark_for_consolidation(self, memory_id: str) -> ShortTermMemory:
        """
        Flag a short-term memory for the next consolidation run.

        Raises:
            MemoryNotFoundError: If the memory does not exist
            ConsolidatedMemoryError: If it was already consolidated
        """
        self._ensure_initialized()
        memory = await self.store.get_short_term(memory_id)
        if memory is None:
            raise MemoryNotFoundError(f"Short-term memory {memory_id} not found")
        memory.mark_for_consolidation()
        await self.store.save_short_term(memory)
        return memory

    # Long-term memory

    async def _get_long_term_or_raise(self, memory_id: str) -> LongTermMemory:
        memory = await self.store.get_long_term(memory_id)
        if memory is None:
            raise MemoryNotFoundError(f"Long-term memory {memory_id} not found")
        return memory

    async def reinforce(self, memory_id: str, now: datetime | None = None) -> LongTermMemory:
        """
        Explicitly reinforce a long-term memory.

        Increments the reinforcement count and resets the decay clock.

        Raises:
            MemoryNotFoundError: If the memory does not exist
        """
        self._ensure_initialized()
        now = now or _utcnow()
        memory = await self._get_long_term_or_raise(memory_id)

        memory.reinforcement_count += 1
        memory.last_reinforced_at = now
        memory.updated_at = now
        memory.strength = base_strength(
            memory.reinforcement_count, memory.attention_boost, self.config.decay
        )
        await self.store.save_long_term(memory)
        return memory

    async def verify(self, memory_id: str, now: datetime | None = None) -> LongTermMemory:
        """Mark a memory as user-confirmed. Confirmation also reinforces it."""
        memory = await self.reinforce(memory_id, now)
        memory.is_verified = True
        memory.confidence = 1.0
        await self.store.save_long_term(memory)
        return memory

    async def mark_contradiction(
        self,
        memory_id: str,
        other_id: str,
        confidence: float | None = None,
        now: datetime | None = None,
    ) -> MemoryAssociation:
        """Record that two long-term memories conflict."""
        self._ensure_initialized()
        return await self.graph.mark_contradiction(memory_id, other_id, confidence, now)
