"""
Multi-tier retrieval ranking.

Gathers candidates from working, short-term and long-term memory,
expands long-term candidates one hop through the association graph,
scores everything on four signals and returns a bounded, tier-tagged
result set. Returning a memory reinforces it ("attention reinforces
memory"); those side effects are best-effort.

Score: w1*relevance + w2*strength_or_activation + w3*importance + w4*recency
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Sequence, Union

from pydantic import BaseModel, Field

from pactwise_memory.associations.graph import AssociationGraph
from pactwise_memory.config import DecayConfig, RetrievalConfig
from pactwise_memory.decay.functions import hours_between, long_term_strength
from pactwise_memory.decay.importance import importance_weight
from pactwise_memory.encoding.text import cosine_similarity, query_relevance
from pactwise_memory.models.association import MemoryAssociation
from pactwise_memory.models.base import (
    EntityContext,
    ImportanceLevel,
    MemoryType,
    _utcnow,
)
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.models.working import WorkingMemoryItem
from pactwise_memory.storage.base import BaseMemoryStore
from pactwise_memory.working.manager import WorkingMemoryManager

logger = logging.getLogger(__name__)


class MemoryTier(str, Enum):
    """Tier a retrieval result came from."""

    WORKING = "working"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"
    ASSOCIATIVE = "associative"


class RankedMemory(BaseModel):
    """A scored retrieval result."""

    memory_id: str
    tier: MemoryTier
    content: str
    memory_type: MemoryType | None = None
    importance: ImportanceLevel | None = None
    score: float

    # Score breakdown
    relevance: float = 0.0
    strength: float = 0.0
    importance_signal: float = 0.0
    recency: float = 0.0
    contradicted: bool = False
    via_association_id: str | None = None

    record: Union[LongTermMemory, ShortTermMemory, WorkingMemoryItem]


class RetrievalResult(BaseModel):
    """Ranked context for one query."""

    query: str
    results: list[RankedMemory] = Field(default_factory=list)
    candidate_count: int = 0
    retrieved_at: datetime = Field(default_factory=_utcnow)

    def by_tier(self, tier: MemoryTier) -> list[RankedMemory]:
        return [r for r in self.results if r.tier == tier]

    def ids(self) -> list[str]:
        return [r.memory_id for r in self.results]


class RetrievalRanker:
    """
    Scores and orders candidate memories across all tiers.

    Higher relevance, strength, importance and recency each raise the
    score. Memories with a recorded contradiction keep their place in
    the candidate set but are penalized.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        working: WorkingMemoryManager,
        graph: AssociationGraph,
        config: RetrievalConfig | None = None,
        decay_config: DecayConfig | None = None,
        reuse_threshold: int = 3,
    ):
        self.store = store
        self.working = working
        self.graph = graph
        self.config = config or RetrievalConfig()
        self.decay_config = decay_config or DecayConfig()
        self.reuse_threshold = reuse_threshold

    async def retrieve(
        self,
        user_id: str,
        session_id: str,
        query_text: str,
        entity_context: EntityContext | None = None,
        limit: int | None = None,
        query_embedding: Sequence[float] | None = None,
        now: datetime | None = None,
    ) -> RetrievalResult:
        """
        Build ranked context for the next turn.

        Args:
            user_id: Owning user
            session_id: Active session
            query_text: Text to match against
            entity_context: Contract/vendor/task ids that make a memory relevant
            limit: Maximum results (defaults to the configured limit)
            query_embedding: Optional embedding of the query
            now: Evaluation time for decay and recency

        Returns:
            RetrievalResult sorted by descending score

        Raises:
            ValueError: If ``limit`` is below 1
        """
        if limit is None:
            limit = self.config.default_limit
        elif limit < 1:
            raise ValueError(f"Retrieval limit must be at least 1, got {limit}")
        now = now or _utcnow()
        limit = min(limit, self.config.max_limit)
        entity_ids = entity_context.entity_ids() if entity_context else set()

        candidates: list[RankedMemory] = []
        candidates += await self._working_candidates(user_id, session_id, query_text, now)
        candidates += await self._short_term_candidates(
            user_id, session_id, query_text, entity_ids, now
        )
        long_term = await self._long_term_candidates(
            user_id, query_text, entity_ids, query_embedding, now
        )
        candidates += long_term
        associative, edges = await self._expand(long_term, now)
        candidates += associative

        candidates.sort(key=lambda r: r.score, reverse=True)
        results = candidates[:limit]

        await self._apply_side_effects(user_id, session_id, results, edges, now)

        return RetrievalResult(
            query=query_text,
            results=results,
            candidate_count=len(candidates),
            retrieved_at=now,
        )

    # Scoring

    def _recency(self, last_seen: datetime, now: datetime) -> float:
        return 0.5 ** (hours_between(last_seen, now) / self.config.recency_half_life_hours)

    def _score(
        self,
        relevance: float,
        strength: float,
        importance: float,
        recency: float,
    ) -> float:
        return (
            self.config.relevance_weight * relevance
            + self.config.strength_weight * strength
            + self.config.importance_weight * importance
            + self.config.recency_weight * recency
        )

    def _long_term_relevance(
        self,
        memory: LongTermMemory,
        query_text: str,
        query_embedding: Sequence[float] | None,
    ) -> float:
        text = f"{memory.content} {memory.summary or ''}"
        relevance = query_relevance(query_text, text, memory.keywords)
        if query_embedding is not None and memory.embedding is not None:
            relevance = max(relevance, cosine_similarity(query_embedding, memory.embedding))
        return max(0.0, min(1.0, relevance))

    def _rank_long_term(
        self,
        memory: LongTermMemory,
        relevance: float,
        contradicted: bool,
        now: datetime,
        tier: MemoryTier = MemoryTier.LONG_TERM,
        via: MemoryAssociation | None = None,
    ) -> RankedMemory:
        strength = long_term_strength(memory, now, self.decay_config)
        importance = importance_weight(memory.importance, self.config)
        recency = self._recency(memory.last_accessed_at, now)

        score = self._score(relevance, strength, importance, recency)
        if tier == MemoryTier.ASSOCIATIVE:
            score *= self.config.associative_discount
        if contradicted:
            score *= self.config.contradiction_penalty

        return RankedMemory(
            memory_id=memory.id,
            tier=tier,
            content=memory.content,
            memory_type=memory.memory_type,
            importance=memory.importance,
            score=score,
            relevance=relevance,
            strength=strength,
            importance_signal=importance,
            recency=recency,
            contradicted=contradicted,
            via_association_id=via.id if via else None,
            record=memory,
        )

    # Candidate gathering

    async def _working_candidates(
        self,
        user_id: str,
        session_id: str,
        query_text: str,
        now: datetime,
    ) -> list[RankedMemory]:
        ranked = []
        active = await self.working.active_items(
            user_id, session_id, min_activation=self.working.config.eviction_threshold, now=now
        )
        for item, activation in active:
            relevance = query_relevance(query_text, item.content)
            importance = float(item.metadata.get("importance_weight", 0.5))
            recency = self._recency(item.last_accessed, now)
            ranked.append(
                RankedMemory(
                    memory_id=item.id,
                    tier=MemoryTier.WORKING,
                    content=item.content,
                    score=self._score(relevance, activation, importance, recency),
                    relevance=relevance,
                    strength=activation,
                    importance_signal=importance,
                    recency=recency,
                    record=item,
                )
            )
        return ranked

    async def _short_term_candidates(
        self,
        user_id: str,
        session_id: str,
        query_text: str,
        entity_ids: set[str],
        now: datetime,
    ) -> list[RankedMemory]:
        ranked = []
        for record in await self.store.get_by_user_and_session(user_id, session_id):
            if record.is_consolidated or record.is_expired(now):
                continue
            relevance = query_relevance(query_text, record.content)
            if entity_ids & record.context.entity_ids():
                relevance = max(relevance, self.config.entity_match_relevance)
            importance = importance_weight(record.importance, self.config)
            recency = self._recency(record.last_accessed_at, now)
            ranked.append(
                RankedMemory(
                    memory_id=record.id,
                    tier=MemoryTier.SHORT_TERM,
                    content=record.content,
                    memory_type=record.memory_type,
                    importance=record.importance,
                    score=self._score(relevance, record.confidence, importance, recency),
                    relevance=relevance,
                    strength=record.confidence,
                    importance_signal=importance,
                    recency=recency,
                    record=record,
                )
            )
        return ranked

    async def _long_term_candidates(
        self,
        user_id: str,
        query_text: str,
        entity_ids: set[str],
        query_embedding: Sequence[float] | None,
        now: datetime,
    ) -> list[RankedMemory]:
        ranked = []
        for memory in await self.store.get_long_term_by_user(user_id):
            relevance = self._long_term_relevance(memory, query_text, query_embedding)
            linked = bool(entity_ids & memory.context.entity_ids())
            if relevance < self.config.min_relevance and not linked:
                continue
            if linked:
                relevance = max(relevance, self.config.entity_match_relevance)

            contradicted = bool(await self.graph.contradictions(memory.id))
            ranked.append(self._rank_long_term(memory, relevance, contradicted, now))
        return ranked

    async def _expand(
        self,
        long_term: list[RankedMemory],
        now: datetime,
    ) -> tuple[list[RankedMemory], dict[str, MemoryAssociation]]:
        """One-hop expansion from long-term candidates."""
        seen = {r.memory_id for r in long_term}
        expanded: dict[str, RankedMemory] = {}
        edges: dict[str, MemoryAssociation] = {}

        for parent in long_term:
            neighbors = await self.graph.neighbors(
                parent.memory_id, min_strength=self.config.neighbor_min_strength, now=now
            )
            for neighbor in neighbors:
                if neighbor.memory.id in seen:
                    continue
                relevance = parent.relevance * neighbor.strength
                current = expanded.get(neighbor.memory.id)
                if current is not None and current.relevance >= relevance:
                    continue

                contradicted = bool(await self.graph.contradictions(neighbor.memory.id))
                expanded[neighbor.memory.id] = self._rank_long_term(
                    neighbor.memory,
                    relevance,
                    contradicted,
                    now,
                    tier=MemoryTier.ASSOCIATIVE,
                    via=neighbor.association,
                )
                edges[neighbor.memory.id] = neighbor.association

        return list(expanded.values()), edges

    # Side effects

    async def _apply_side_effects(
        self,
        user_id: str,
        session_id: str,
        results: list[RankedMemory],
        edges: dict[str, MemoryAssociation],
        now: datetime,
    ) -> None:
        """Reinforce what was returned. Failures are logged, never raised."""
        for result in results:
            try:
                if result.tier in (MemoryTier.LONG_TERM, MemoryTier.ASSOCIATIVE):
                    await self._attend_long_term(result.record, now)
                    edge = edges.get(result.memory_id)
                    if result.tier == MemoryTier.ASSOCIATIVE and edge is not None:
                        await self.graph.bump(edge, now=now)
                elif result.tier == MemoryTier.WORKING:
                    await self.working.access(user_id, session_id, result.memory_id, now)
                elif result.tier == MemoryTier.SHORT_TERM:
                    await self._attend_short_term(result.record, now)
            except Exception as e:
                logger.warning(f"Retrieval reinforcement failed for {result.memory_id}: {e}")

    async def _attend_long_term(self, returned: LongTermMemory, now: datetime) -> None:
        """Light reinforcement: attention boost without resetting the decay clock."""
        memory = await self.store.get_long_term(returned.id)
        if memory is None:
            return
        memory.attention_boost = min(
            self.decay_config.max_attention_boost,
            memory.attention_boost + self.decay_config.attention_boost,
        )
        memory.record_access(now)
        memory.strength = long_term_strength(memory, now, self.decay_config)
        await self.store.save_long_term(memory)

    async def _attend_short_term(self, returned: ShortTermMemory, now: datetime) -> None:
        record = await self.store.get_short_term(returned.id)
        if record is None or record.is_consolidated:
            return
        record.record_access(now, self.reuse_threshold)
        await self.store.save_short_term(record)
