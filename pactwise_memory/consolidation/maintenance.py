"""
Memory maintenance.

Handles:
- Deleting expired short-term records that were never promoted
- Folding duplicate pending short-term records of a user
- Pruning long-term memories decayed below the strength floor
- Triggering consolidation for users with pending memories
- Removing orphaned and decayed association edges
- Usage analysis per user
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from pactwise_memory.config import AssociationConfig, DecayConfig
from pactwise_memory.consolidation.engine import ConsolidationEngine
from pactwise_memory.decay.functions import MemoryDecayCalculator
from pactwise_memory.encoding.text import normalize
from pactwise_memory.models.base import ImportanceLevel, _utcnow
from pactwise_memory.models.consolidation import ConsolidationJob
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.storage.base import BaseMemoryStore, is_eligible_for_consolidation

logger = logging.getLogger(__name__)


class MaintenanceResult(BaseModel):
    """Result of a maintenance pass."""

    expired_deleted: list[str] = Field(default_factory=list)
    duplicates_removed: list[str] = Field(default_factory=list)
    long_term_pruned: list[str] = Field(default_factory=list)
    associations_removed: list[str] = Field(default_factory=list)
    consolidation_jobs: list[str] = Field(default_factory=list)
    ran_at: datetime = Field(default_factory=_utcnow)

    @property
    def total_removed(self) -> int:
        return (
            len(self.expired_deleted)
            + len(self.duplicates_removed)
            + len(self.long_term_pruned)
            + len(self.associations_removed)
        )


class MemoryUsage(BaseModel):
    """Memory statistics of one user."""

    user_id: str
    short_term_total: int = 0
    short_term_pending: int = 0
    short_term_consolidated: int = 0
    short_term_by_type: dict[str, int] = Field(default_factory=dict)
    long_term_total: int = 0
    long_term_by_type: dict[str, int] = Field(default_factory=dict)
    long_term_verified: int = 0
    long_term_weak: int = 0
    average_strength: float = 0.0
    recent_short_term: int = 0
    recent_long_term: int = 0
    analyzed_at: datetime = Field(default_factory=_utcnow)

    @property
    def avg_memories_per_day(self) -> float:
        """Average daily intake over the recent window (7 days)."""
        return (self.recent_short_term + self.recent_long_term) / 7


class MemoryMaintenance:
    """
    Cleanup of records that have outlived their usefulness.

    Long-term memories are normally left to decay; pruning only applies
    after a grace period and never to critical or verified memories.
    With a consolidation engine attached, a pass also promotes the
    pending short-term records of every user it finds.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        decay_config: DecayConfig | None = None,
        association_config: AssociationConfig | None = None,
        engine: ConsolidationEngine | None = None,
    ):
        self.store = store
        self.decay_config = decay_config or DecayConfig()
        self.association_config = association_config or AssociationConfig()
        self.engine = engine
        self.calculator = MemoryDecayCalculator(self.decay_config, self.association_config)

    async def run(
        self,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> MaintenanceResult:
        """
        Run every maintenance step.

        Args:
            user_id: Owner whose short-term duplicates are folded and whose
                long-term memories may be pruned (both skipped when None)
            now: Evaluation time
        """
        now = now or _utcnow()
        result = MaintenanceResult(ran_at=now)

        result.expired_deleted = await self.cleanup_expired(now)
        if user_id is not None:
            result.duplicates_removed = await self.remove_duplicates(user_id)
            result.long_term_pruned = await self.prune_weak(user_id, now)
        if self.engine is not None:
            jobs = await self.consolidate_pending(user_id, now)
            result.consolidation_jobs = [job.id for job in jobs]
        result.associations_removed = await self.cleanup_associations(now)

        logger.info(
            f"Maintenance removed {len(result.expired_deleted)} expired, "
            f"{len(result.duplicates_removed)} duplicate, "
            f"{len(result.long_term_pruned)} weak, "
            f"{len(result.associations_removed)} edges; "
            f"ran {len(result.consolidation_jobs)} consolidation jobs"
        )
        return result

    async def cleanup_expired(self, now: datetime | None = None) -> list[str]:
        """Delete expired short-term records that were never promoted or flagged."""
        now = now or _utcnow()
        deleted = []
        for record in await self.store.get_expired(now):
            if record.is_consolidated or record.should_consolidate:
                continue
            if await self.store.delete_short_term(record.id):
                deleted.append(record.id)
        return deleted

    async def remove_duplicates(self, user_id: str) -> list[str]:
        """
        Fold pending short-term records of a user that repeat each other.

        Records of the same type with identical normalized content are
        merged into the newest one, which keeps the summed access count,
        the highest importance and any consolidation flag. Consolidated
        records are lineage and are never touched.
        """
        groups: dict[tuple, list[ShortTermMemory]] = defaultdict(list)
        for record in await self.store.get_short_term_by_user(user_id):
            if record.is_consolidated:
                continue
            groups[(record.memory_type, normalize(record.content))].append(record)

        removed = []
        for records in groups.values():
            if len(records) < 2:
                continue
            records.sort(key=lambda r: (r.created_at, r.id))
            keeper, duplicates = records[-1], records[:-1]

            for duplicate in duplicates:
                keeper.access_count += duplicate.access_count + 1
                keeper.importance = ImportanceLevel.higher_of(keeper.importance, duplicate.importance)
                keeper.should_consolidate = keeper.should_consolidate or duplicate.should_consolidate
                keeper.confidence = max(keeper.confidence, duplicate.confidence)
                keeper.last_accessed_at = max(keeper.last_accessed_at, duplicate.last_accessed_at)
            await self.store.save_short_term(keeper)

            for duplicate in duplicates:
                if await self.store.delete_short_term(duplicate.id):
                    removed.append(duplicate.id)

        if removed:
            logger.debug(f"Folded {len(removed)} duplicate short-term memories of {user_id}")
        return removed

    async def prune_weak(self, user_id: str, now: datetime | None = None) -> list[str]:
        """Delete long-term memories below the strength floor after the grace period."""
        now = now or _utcnow()
        grace = timedelta(hours=self.decay_config.prune_grace_period_hours)
        pruned = []

        for memory in await self.store.get_long_term_by_user(user_id):
            if memory.importance == ImportanceLevel.CRITICAL or memory.is_verified:
                continue
            if now - memory.created_at < grace:
                continue
            if not self.calculator.is_below_floor(memory, now):
                continue
            if await self.store.delete_long_term(memory.id):
                pruned.append(memory.id)
                logger.debug(f"Pruned long-term memory {memory.id}")
        return pruned

    async def consolidate_pending(
        self,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> list[ConsolidationJob]:
        """
        Trigger a user-wide consolidation for every user with pending records.

        A user whose run raises is logged and skipped so the sweep reaches
        the remaining users.

        Returns:
            The jobs that ran (or were already active)
        """
        if self.engine is None:
            raise ValueError("consolidate_pending requires a consolidation engine")
        now = now or _utcnow()

        pending = await self.store.get_eligible_for_consolidation(
            self.engine.config.reuse_threshold, user_id=user_id
        )
        owners = list(dict.fromkeys((m.user_id, m.enterprise_id) for m in pending))

        jobs = []
        for owner_id, enterprise_id in owners:
            try:
                job = await self.engine.trigger(owner_id, enterprise_id, None, now)
            except Exception:
                logger.exception(f"Consolidation sweep failed for {owner_id}")
                continue
            if job is not None:
                jobs.append(job)
        return jobs

    async def cleanup_associations(self, now: datetime | None = None) -> list[str]:
        """Remove edges with a missing endpoint or decayed below the edge floor."""
        now = now or _utcnow()
        removed = []
        for edge in await self.store.get_all_associations():
            orphaned = (
                await self.store.get_long_term(edge.from_memory_id) is None
                or await self.store.get_long_term(edge.to_memory_id) is None
            )
            weak = (
                self.calculator.association_strength(edge, now)
                < self.association_config.min_strength
            )
            if (orphaned or weak) and await self.store.delete_association(edge.id):
                removed.append(edge.id)
        return removed

    async def analyze_usage(
        self,
        user_id: str,
        reuse_threshold: int = 3,
        now: datetime | None = None,
    ) -> MemoryUsage:
        """Counts by tier and type, strength health and recent intake of a user."""
        now = now or _utcnow()
        recent = now - timedelta(days=7)
        short_term = await self.store.get_short_term_by_user(user_id)
        long_term = await self.store.get_long_term_by_user(user_id)

        strengths = [self.calculator.long_term_strength(m, now) for m in long_term]
        return MemoryUsage(
            user_id=user_id,
            short_term_total=len(short_term),
            short_term_pending=sum(
                1 for m in short_term if is_eligible_for_consolidation(m, reuse_threshold)
            ),
            short_term_consolidated=sum(1 for m in short_term if m.is_consolidated),
            short_term_by_type=dict(Counter(m.memory_type.value for m in short_term)),
            long_term_total=len(long_term),
            long_term_by_type=dict(Counter(m.memory_type.value for m in long_term)),
            long_term_verified=sum(1 for m in long_term if m.is_verified),
            long_term_weak=sum(1 for m in long_term if self.calculator.is_below_floor(m, now)),
            average_strength=sum(strengths) / len(strengths) if strengths else 0.0,
            recent_short_term=sum(1 for m in short_term if m.created_at > recent),
            recent_long_term=sum(1 for m in long_term if m.created_at > recent),
            analyzed_at=now,
        )
