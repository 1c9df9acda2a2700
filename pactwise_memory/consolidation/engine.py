"""
Consolidation engine: promotion of short-term records into long-term memory.

Runs on an external trigger, never on a timer. At most one job is in
flight per (user, session): a trigger that finds an active job returns
that job instead of starting a parallel run. A user-wide job (no session)
overlaps every session of its user, so the two exclude each other too.
Jobs carry an execution timeout so a stuck run cannot block the key forever.

Pipeline per job:
1. Load the job's short-term records, skipping missing or consolidated ones
2. Group by (user, memory type) and cluster near-duplicates
3. Reinforce a matching long-term memory, or create a new one
4. Mark the cluster's short-term records consolidated
5. Link long-term memories touched by the job that share entities or topics
"""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from itertools import combinations

from pactwise_memory.associations.graph import AssociationGraph
from pactwise_memory.config import ConsolidationConfig, DecayConfig
from pactwise_memory.consolidation.merger import MemoryMerger, MergeResult
from pactwise_memory.models.association import AssociationType
from pactwise_memory.models.base import _utcnow
from pactwise_memory.models.consolidation import ConsolidationJob, JobStateError, JobStatus
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.storage.base import BaseMemoryStore

logger = logging.getLogger(__name__)


class ConsolidationEngine:
    """
    Promotes eligible short-term records into deduplicated long-term memory.

    Re-running over input that was already (partly) consumed is safe:
    consolidated records are skipped and every cluster is matched against
    existing long-term memories before anything is created.

    Usage:
        engine = ConsolidationEngine(store, graph)
        job = await engine.trigger("user_1", "enterprise_1", session_id="s1")
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        graph: AssociationGraph,
        config: ConsolidationConfig | None = None,
        decay_config: DecayConfig | None = None,
        merger: MemoryMerger | None = None,
    ):
        self.store = store
        self.graph = graph
        self.config = config or ConsolidationConfig()
        self.merger = merger or MemoryMerger(self.config, decay_config)
        # Per user: session and user-wide triggers of one user share a lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _is_stale(self, job: ConsolidationJob, now: datetime) -> bool:
        began = job.started_at or job.created_at
        return now - began >= timedelta(seconds=self.config.stale_after_seconds)

    async def trigger(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> ConsolidationJob | None:
        """
        Consolidate the eligible short-term records of a user (or session).

        Args:
            user_id: Owning user
            enterprise_id: Owning enterprise
            session_id: Restrict to one session (None = all of the user's sessions)
            now: Logical time of the run

        Returns:
            The finished job, the already-active job when coalesced, or
            None when nothing is eligible
        """
        now = now or _utcnow()

        async with self._lock_for(user_id):
            active = await self._active_job(user_id, session_id, now)
            if active is not None:
                logger.debug(
                    f"Coalesced consolidation trigger for {user_id}/{session_id} "
                    f"into job {active.id}"
                )
                return active

            candidates = await self.store.get_eligible_for_consolidation(
                self.config.reuse_threshold, user_id=user_id, session_id=session_id
            )
            if not candidates:
                return None

            job = await self._start_job(
                user_id, enterprise_id, session_id, [c.id for c in candidates], now
            )

        return await self._execute(job, now)

    async def rerun(self, job_id: str, now: datetime | None = None) -> ConsolidationJob | None:
        """
        Explicitly re-trigger a failed job over its unconsumed input.

        Raises:
            JobStateError: If the job is unknown or did not fail

        Returns:
            The new job, the active job when coalesced, or None when every
            input record was already consumed
        """
        now = now or _utcnow()
        failed = await self.store.get_job(job_id)
        if failed is None:
            raise JobStateError(f"Consolidation job {job_id} not found")
        if failed.status != JobStatus.FAILED:
            raise JobStateError(f"Only failed jobs can be re-run, {job_id} is {failed.status.value}")

        async with self._lock_for(failed.user_id):
            active = await self._active_job(failed.user_id, failed.session_id, now)
            if active is not None:
                return active

            remaining = []
            for memory_id in failed.short_term_memory_ids:
                record = await self.store.get_short_term(memory_id)
                if record is not None and not record.is_consolidated:
                    remaining.append(memory_id)
            if not remaining:
                return None

            job = await self._start_job(
                failed.user_id,
                failed.enterprise_id,
                failed.session_id,
                remaining,
                now,
                rerun_of=failed.id,
            )

        return await self._execute(job, now)

    async def _active_job(
        self,
        user_id: str,
        session_id: str | None,
        now: datetime,
    ) -> ConsolidationJob | None:
        """
        Return the live job overlapping a key, failing any that went stale.

        A session key overlaps itself and the user-wide key; the user-wide
        key overlaps every session of the user.
        """
        for job in await self.store.get_user_active_jobs(user_id):
            if session_id is not None and job.session_id not in (session_id, None):
                continue
            if not self._is_stale(job, now):
                return job
            job.fail(f"Timed out after {self.config.stale_after_seconds}s", now)
            await self.store.save_job(job)
            logger.warning(f"Marked stale consolidation job {job.id} as failed")
        return None

    async def _start_job(
        self,
        user_id: str,
        enterprise_id: str,
        session_id: str | None,
        memory_ids: list[str],
        now: datetime,
        rerun_of: str | None = None,
    ) -> ConsolidationJob:
        job = ConsolidationJob(
            user_id=user_id,
            enterprise_id=enterprise_id,
            session_id=session_id,
            short_term_memory_ids=memory_ids,
            created_at=now,
            rerun_of=rerun_of,
        )
        await self.store.save_job(job)
        job.start(now)
        await self.store.save_job(job)
        logger.info(
            f"Started consolidation job {job.id} for {user_id}/{session_id} "
            f"with {len(memory_ids)} candidates"
        )
        return job

    async def _execute(self, job: ConsolidationJob, now: datetime) -> ConsolidationJob:
        try:
            await asyncio.wait_for(
                self._run(job, now), timeout=self.config.job_timeout_seconds
            )
            job.complete(now)
            logger.info(
                f"Consolidation job {job.id} completed: "
                f"{job.stats.memories_consolidated} consolidated, "
                f"{job.stats.memories_created} created, "
                f"{job.stats.memories_reinforced} reinforced"
            )
        except asyncio.TimeoutError:
            job.fail(f"Timed out after {self.config.job_timeout_seconds}s", now)
            logger.error(f"Consolidation job {job.id} timed out")
        except Exception as e:
            job.fail(str(e) or e.__class__.__name__, now)
            logger.exception(f"Consolidation job {job.id} failed")

        stored = await self.store.get_job(job.id)
        if stored is not None and not stored.status.is_active:
            # Another trigger already settled this job; its status is final
            logger.warning(
                f"Consolidation job {job.id} finished {job.status.value} after it was "
                f"marked {stored.status.value}; keeping {stored.status.value}"
            )
            stored.created_long_term_memory_ids = job.created_long_term_memory_ids
            stored.reinforced_long_term_memory_ids = job.reinforced_long_term_memory_ids
            stored.stats = job.stats
            await self.store.save_job(stored)
            return stored

        await self.store.save_job(job)
        return job

    async def _run(self, job: ConsolidationJob, now: datetime) -> None:
        records: list[ShortTermMemory] = []
        for memory_id in job.short_term_memory_ids:
            record = await self.store.get_short_term(memory_id)
            if record is None or record.is_consolidated:
                job.stats.memories_skipped += 1
                continue
            records.append(record)
        job.stats.memories_processed = len(records)

        touched: dict[str, LongTermMemory] = {}
        for (user_id, memory_type), group in self.merger.group(records).items():
            pool = await self.store.get_long_term_by_user(user_id, memory_type)

            for cluster in self.merger.cluster(group):
                cluster = await self._still_pending(cluster, job)
                if not cluster:
                    continue

                memory, result = await self._fold_cluster(cluster, pool, job, now)
                if result.created:
                    pool.append(memory)

                for record in cluster:
                    record.mark_consolidated(now)
                    await self.store.save_short_term(record)

                job.stats.memories_consolidated += len(cluster)
                job.stats.patterns_found += len(result.patterns)
                touched[memory.id] = memory

        job.stats.associations_touched = await self._link_related(list(touched.values()), now)

    async def _still_pending(
        self,
        cluster: list[ShortTermMemory],
        job: ConsolidationJob,
    ) -> list[ShortTermMemory]:
        """Drop records another run consumed since this job loaded them."""
        pending = []
        for record in cluster:
            fresh = await self.store.get_short_term(record.id)
            if fresh is None or fresh.is_consolidated:
                job.stats.memories_skipped += 1
                continue
            pending.append(fresh)
        return pending

    async def _fold_cluster(
        self,
        cluster: list[ShortTermMemory],
        pool: list[LongTermMemory],
        job: ConsolidationJob,
        now: datetime,
    ) -> tuple[LongTermMemory, MergeResult]:
        """Reinforce the matching long-term memory or create a new one."""
        match, score = self.merger.best_match(cluster, pool)
        patterns = self.merger.patterns(cluster)
        merged_ids = [record.id for record in cluster]

        if match is not None:
            self.merger.reinforce_long_term(match, cluster, now, job_id=job.id)
            await self.store.save_long_term(match)
            if match.id not in job.reinforced_long_term_memory_ids:
                job.reinforced_long_term_memory_ids.append(match.id)
            job.stats.memories_reinforced += 1
            return match, MergeResult(
                memory_id=match.id,
                created=False,
                merged_ids=merged_ids,
                similarity=score,
                patterns=patterns,
                merged_at=now,
            )

        memory = self.merger.build_long_term(cluster, now, job_id=job.id)
        await self.store.save_long_term(memory)
        job.created_long_term_memory_ids.append(memory.id)
        job.stats.memories_created += 1
        return memory, MergeResult(
            memory_id=memory.id,
            created=True,
            merged_ids=merged_ids,
            patterns=patterns,
            merged_at=now,
        )

    async def _link_related(self, memories: list[LongTermMemory], now: datetime) -> int:
        """Create or reinforce ``related`` edges between memories sharing a topic."""
        linked = 0
        for a, b in combinations(memories, 2):
            shared_entities = a.context.entity_ids() & b.context.entity_ids()
            shared_keywords = set(a.keywords) & set(b.keywords)
            if not shared_entities and len(shared_keywords) < self.config.min_shared_keywords:
                continue

            confidence = 0.8 if shared_entities else 0.5
            await self.graph.add_or_reinforce(
                a.id, b.id, AssociationType.RELATED, confidence=confidence, now=now
            )
            linked += 1
        return linked
