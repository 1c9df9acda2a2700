"""
Association graph over long-term memories.

Edges are directed, typed and weighted. Their strength decays lazily
with the same exponential curve as long-term memories and is evaluated
at traversal time. ``related``, ``similar`` and ``contradicts`` edges are
symmetric: traversal follows them in both directions and reinforcement
finds them from either end.
"""

import logging
from datetime import datetime
from itertools import combinations
from typing import Literal

from pydantic import BaseModel

from pactwise_memory.config import AssociationConfig
from pactwise_memory.decay.functions import association_strength
from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.base import _utcnow
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.storage.base import BaseMemoryStore, MemoryNotFoundError

logger = logging.getLogger(__name__)


class InvalidAssociationError(ValueError):
    """Raised when an edge would link a memory to itself."""

    pass


class Neighbor(BaseModel):
    """A memory reached over one edge."""

    memory: LongTermMemory
    association: MemoryAssociation
    strength: float
    direction: Literal["outgoing", "incoming"]


class AssociationGraph:
    """
    Typed, weighted, decaying edges between long-term memories.

    Contradiction edges are never dropped; they are surfaced to the
    ranker as a confidence penalty on both endpoints.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        config: AssociationConfig | None = None,
    ):
        self.store = store
        self.config = config or AssociationConfig()

    def effective_strength(self, edge: MemoryAssociation, now: datetime | None = None) -> float:
        return association_strength(edge, now or _utcnow(), self.config)

    async def _find_edge(
        self,
        from_id: str,
        to_id: str,
        association_type: AssociationType,
    ) -> MemoryAssociation | None:
        edge = await self.store.get_association(from_id, to_id, association_type)
        if edge is None and association_type.is_symmetric:
            edge = await self.store.get_association(to_id, from_id, association_type)
        return edge

    async def add_or_reinforce(
        self,
        from_id: str,
        to_id: str,
        association_type: AssociationType = AssociationType.RELATED,
        confidence: float | None = None,
        now: datetime | None = None,
    ) -> MemoryAssociation:
        """
        Create an edge or strengthen the existing one.

        An existing ``(from, to, type)`` edge gains ``reinforcement_step``
        on top of its decayed strength (capped at 1.0) and its clock
        resets; otherwise a new edge starts at ``initial_strength``.

        Raises:
            InvalidAssociationError: If ``from_id == to_id``
            MemoryNotFoundError: If either endpoint does not exist
        """
        if from_id == to_id:
            raise InvalidAssociationError(f"Refusing self-association on memory {from_id}")

        now = now or _utcnow()
        for memory_id in (from_id, to_id):
            if await self.store.get_long_term(memory_id) is None:
                raise MemoryNotFoundError(f"Long-term memory {memory_id} not found")

        edge = await self._find_edge(from_id, to_id, association_type)
        if edge is not None:
            edge.strength = min(
                1.0, self.effective_strength(edge, now) + self.config.reinforcement_step
            )
            edge.last_reinforced_at = now
            if confidence is not None:
                edge.confidence = max(edge.confidence, confidence)
        else:
            edge = MemoryAssociation(
                from_memory_id=from_id,
                to_memory_id=to_id,
                association_type=association_type,
                strength=self.config.initial_strength,
                confidence=confidence if confidence is not None else 0.5,
                created_at=now,
                last_reinforced_at=now,
            )

        await self.store.save_association(edge)
        return edge

    async def bump(
        self,
        edge: MemoryAssociation,
        amount: float | None = None,
        now: datetime | None = None,
    ) -> MemoryAssociation:
        """Light attention reinforcement for an edge used by retrieval."""
        now = now or _utcnow()
        if amount is None:
            amount = self.config.attention_boost
        edge.strength = min(1.0, self.effective_strength(edge, now) + amount)
        edge.last_reinforced_at = now
        await self.store.save_association(edge)
        return edge

    async def _incident_edges(self, memory_id: str) -> list[tuple[MemoryAssociation, str]]:
        outgoing = await self.store.get_associations_from(memory_id)
        incoming = await self.store.get_associations_to(memory_id)
        edges = [(e, "outgoing") for e in outgoing]
        edges.extend((e, "incoming") for e in incoming if e.association_type.is_symmetric)
        return edges

    async def neighbors(
        self,
        memory_id: str,
        association_type: AssociationType | None = None,
        min_strength: float | None = None,
        now: datetime | None = None,
    ) -> list[Neighbor]:
        """
        Long-term memories one edge away, strongest first.

        Args:
            memory_id: Memory to expand from
            association_type: Only follow edges of this type
            min_strength: Effective strength floor (defaults to the edge floor)
            now: Evaluation time for decay
        """
        now = now or _utcnow()
        if min_strength is None:
            min_strength = self.config.min_strength

        best: dict[str, Neighbor] = {}
        for edge, direction in await self._incident_edges(memory_id):
            if association_type is not None and edge.association_type != association_type:
                continue
            strength = self.effective_strength(edge, now)
            if strength < min_strength:
                continue

            other_id = edge.other_end(memory_id)
            current = best.get(other_id)
            if current is not None and current.strength >= strength:
                continue

            memory = await self.store.get_long_term(other_id)
            if memory is None:
                continue
            best[other_id] = Neighbor(
                memory=memory,
                association=edge,
                strength=strength,
                direction=direction,
            )

        return sorted(best.values(), key=lambda n: n.strength, reverse=True)

    async def contradictions(self, memory_id: str) -> set[str]:
        """IDs of memories recorded as contradicting ``memory_id``."""
        found: set[str] = set()
        for edge, _ in await self._incident_edges(memory_id):
            if edge.association_type == AssociationType.CONTRADICTS:
                found.add(edge.other_end(memory_id))

        memory = await self.store.get_long_term(memory_id)
        if memory is not None:
            found.update(memory.contradicted_by)
        return found

    async def mark_contradiction(
        self,
        memory_id: str,
        other_id: str,
        confidence: float | None = None,
        now: datetime | None = None,
    ) -> MemoryAssociation:
        """Record that two memories conflict. Neither memory is removed."""
        now = now or _utcnow()
        edge = await self.add_or_reinforce(
            memory_id, other_id, AssociationType.CONTRADICTS, confidence, now
        )

        for this_id, that_id in ((memory_id, other_id), (other_id, memory_id)):
            memory = await self.store.get_long_term(this_id)
            if memory is not None and that_id not in memory.contradicted_by:
                memory.contradicted_by.append(that_id)
                memory.updated_at = now
                await self.store.save_long_term(memory)

        logger.info(f"Marked memories {memory_id} and {other_id} as contradicting")
        return edge

    async def reinforce_co_occurrence(
        self,
        memory_ids: list[str],
        now: datetime | None = None,
    ) -> int:
        """
        Strengthen existing edges between memories used together.

        Returns:
            Number of edges reinforced
        """
        now = now or _utcnow()
        reinforced = 0
        for a, b in combinations(dict.fromkeys(memory_ids), 2):
            edges = [
                e for e in await self.store.get_associations_from(a) if e.to_memory_id == b
            ]
            edges += [
                e for e in await self.store.get_associations_from(b) if e.to_memory_id == a
            ]
            for edge in edges:
                edge.strength = min(
                    1.0, self.effective_strength(edge, now) + self.config.reinforcement_step
                )
                edge.last_reinforced_at = now
                await self.store.save_association(edge)
                reinforced += 1
        return reinforced
