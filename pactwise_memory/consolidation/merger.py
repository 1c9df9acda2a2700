"""
Memory merging for the consolidation pipeline.

Handles:
- Grouping candidates by (user, memory type)
- Clustering near-duplicate content
- Building a new long-term memory from a cluster
- Reinforcing an existing long-term memory with a cluster
"""

from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Sequence

from pydantic import BaseModel, Field

from pactwise_memory.config import ConsolidationConfig, DecayConfig
from pactwise_memory.decay.functions import base_strength
from pactwise_memory.decay.importance import decay_rate_for
from pactwise_memory.encoding.text import (
    content_similarity,
    extract_keywords,
    extract_patterns,
    merge_unique_sentences,
)
from pactwise_memory.models.base import (
    ImportanceLevel,
    LongTermContext,
    MemorySource,
    MemoryType,
    _utcnow,
)
from pactwise_memory.models.long_term import LineageEntry, LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory


class MergeResult(BaseModel):
    """Result of folding one cluster into long-term memory."""

    memory_id: str
    created: bool
    merged_ids: list[str]
    similarity: float | None = None
    patterns: list[str] = Field(default_factory=list)
    merged_at: datetime = Field(default_factory=_utcnow)


class MemoryMerger:
    """
    Merges short-term records into long-term memories.

    Strengthens an existing long-term memory instead of creating a new
    one whenever the content already matches above the threshold.
    """

    def __init__(
        self,
        config: ConsolidationConfig | None = None,
        decay_config: DecayConfig | None = None,
    ):
        self.config = config or ConsolidationConfig()
        self.decay_config = decay_config or DecayConfig()

    # Grouping and clustering

    def group(
        self,
        records: Sequence[ShortTermMemory],
    ) -> dict[tuple[str, MemoryType], list[ShortTermMemory]]:
        """Group records by owning user and memory type."""
        groups: dict[tuple[str, MemoryType], list[ShortTermMemory]] = defaultdict(list)
        for record in records:
            groups[(record.user_id, record.memory_type)].append(record)
        return dict(groups)

    def similarity(self, a: ShortTermMemory, b: ShortTermMemory) -> float:
        return content_similarity(a.content, b.content, a.embedding, b.embedding)

    def cluster(self, records: Sequence[ShortTermMemory]) -> list[list[ShortTermMemory]]:
        """
        Single-link clustering at the similarity threshold.

        Clusters keep the input order of their first member.
        """
        parent = list(range(len(records)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for i in range(len(records)):
            for j in range(i + 1, len(records)):
                if self.similarity(records[i], records[j]) >= self.config.similarity_threshold:
                    parent[find(j)] = find(i)

        clusters: dict[int, list[ShortTermMemory]] = {}
        for i, record in enumerate(records):
            clusters.setdefault(find(i), []).append(record)
        return list(clusters.values())

    def best_match(
        self,
        cluster: Sequence[ShortTermMemory],
        candidates: Sequence[LongTermMemory],
    ) -> tuple[LongTermMemory | None, float]:
        """Existing long-term memory most similar to any cluster member."""
        best: LongTermMemory | None = None
        best_score = 0.0
        for memory in candidates:
            for record in cluster:
                score = content_similarity(
                    record.content, memory.content, record.embedding, memory.embedding
                )
                if score > best_score:
                    best, best_score = memory, score

        if best is None or best_score < self.config.similarity_threshold:
            return None, best_score
        return best, best_score

    # Cluster-level aggregates

    def consolidated_importance(self, cluster: Sequence[ShortTermMemory]) -> ImportanceLevel:
        """Highest level held by at least ``importance_share`` of the cluster."""
        counts = Counter(record.importance for record in cluster)
        for level in sorted(counts, key=lambda lvl: lvl.rank, reverse=True):
            if counts[level] / len(cluster) >= self.config.importance_share:
                return level
        return ImportanceLevel.MEDIUM

    def group_confidence(self, cluster: Sequence[ShortTermMemory]) -> float:
        """Mean confidence, with a bonus for well-attested clusters."""
        mean = sum(record.confidence for record in cluster) / len(cluster)
        if len(cluster) > 3:
            mean += 0.1
        return min(1.0, mean)

    def merge_content(self, cluster: Sequence[ShortTermMemory]) -> str:
        """Most important record first, then sentences the others add."""
        ordered = sorted(cluster, key=lambda r: (-r.importance.rank, r.created_at))
        return merge_unique_sentences(ordered[0].content, [r.content for r in ordered[1:]])

    def patterns(self, cluster: Sequence[ShortTermMemory]) -> list[str]:
        return extract_patterns([record.content for record in cluster])

    def build_summary(self, content: str, patterns: Sequence[str]) -> str:
        limit = self.config.summary_length
        summary = content if len(content) <= limit else content[:limit].rstrip() + "..."
        if patterns:
            summary += f" Patterns: {', '.join(patterns[:5])}"
        return summary

    def merge_structured_data(
        self,
        cluster: Sequence[ShortTermMemory],
        base: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        merged: dict[str, Any] = dict(base or {})
        for record in sorted(cluster, key=lambda r: r.created_at):
            if record.structured_data:
                merged.update(record.structured_data)
        return merged or None

    def primary_source(self, cluster: Sequence[ShortTermMemory]) -> MemorySource:
        return Counter(record.source for record in cluster).most_common(1)[0][0]

    # Long-term writes

    def build_long_term(
        self,
        cluster: Sequence[ShortTermMemory],
        now: datetime,
        job_id: str | None = None,
    ) -> LongTermMemory:
        """Create a new long-term memory from a cluster."""
        first = cluster[0]
        content = self.merge_content(cluster)
        patterns = self.patterns(cluster)
        importance = self.consolidated_importance(cluster)
        cluster_ids = [record.id for record in cluster]

        context = LongTermContext(domain=first.memory_type.value, tags=list(patterns[:5]))
        for record in cluster:
            context.absorb(record.context)

        embedding = next((r.embedding for r in cluster if r.embedding is not None), None)

        return LongTermMemory(
            user_id=first.user_id,
            enterprise_id=first.enterprise_id,
            memory_type=first.memory_type,
            content=content,
            structured_data=self.merge_structured_data(cluster),
            summary=self.build_summary(content, patterns),
            embedding=embedding,
            keywords=extract_keywords(content, self.config.max_keywords),
            context=context,
            importance=importance,
            strength=base_strength(len(cluster), 0.0, self.decay_config),
            decay_rate=decay_rate_for(importance, self.decay_config),
            reinforcement_count=len(cluster),
            last_accessed_at=now,
            last_reinforced_at=now,
            created_at=now,
            updated_at=now,
            consolidated_from=cluster_ids,
            source=self.primary_source(cluster),
            source_chain=[LineageEntry(job_id=job_id, short_term_ids=cluster_ids, reinforced_at=now)],
            confidence=self.group_confidence(cluster),
        )

    def reinforce_long_term(
        self,
        memory: LongTermMemory,
        cluster: Sequence[ShortTermMemory],
        now: datetime,
        job_id: str | None = None,
    ) -> None:
        """
        Fold a cluster into an existing long-term memory.

        Bumps the reinforcement count, resets the decay clock and merges
        new content into the summary. ``consolidated_from`` is provenance
        and is left untouched; the cluster is recorded in ``source_chain``.
        """
        additions = [record.content for record in cluster]
        summary = merge_unique_sentences(memory.summary or memory.content, additions)
        if len(summary) > self.config.max_summary_length:
            summary = summary[: self.config.max_summary_length].rstrip() + "..."

        importance = ImportanceLevel.higher_of(
            memory.importance, self.consolidated_importance(cluster)
        )

        memory.summary = summary
        memory.keywords = extract_keywords(
            " ".join([memory.content, summary, *additions]), self.config.max_keywords
        )
        for record in cluster:
            memory.context.absorb(record.context)
        memory.structured_data = self.merge_structured_data(cluster, memory.structured_data)

        memory.importance = importance
        memory.decay_rate = decay_rate_for(importance, self.decay_config)
        memory.confidence = max(memory.confidence, self.group_confidence(cluster))
        memory.reinforcement_count += len(cluster)
        memory.last_reinforced_at = now
        memory.updated_at = now
        memory.strength = base_strength(
            memory.reinforcement_count, memory.attention_boost, self.decay_config
        )
        memory.source_chain.append(
            LineageEntry(
                job_id=job_id,
                short_term_ids=[record.id for record in cluster],
                reinforced_at=now,
            )
        )
