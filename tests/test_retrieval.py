"""
Tests for multi-tier retrieval ranking.
"""

import pytest
from datetime import timedelta

from pactwise_memory.associations.graph import AssociationGraph
from pactwise_memory.config import RetrievalConfig
from pactwise_memory.models.association import AssociationType
from pactwise_memory.models.base import EntityContext, ImportanceLevel, LongTermContext, MemoryContext
from pactwise_memory.models.working import WorkingItemType, WorkingMemoryItem
from pactwise_memory.retrieval.ranker import MemoryTier, RetrievalRanker
from pactwise_memory.storage.base import StorageError
from pactwise_memory.storage.in_memory import InMemoryStore
from pactwise_memory.working.manager import WorkingMemoryManager

from conftest import NOW, make_ltm, make_stm


USER = "user_123"
SESSION = "session_abc"
QUERY = "vendor notice period"


def _ranker(store, config: RetrievalConfig | None = None) -> RetrievalRanker:
    graph = AssociationGraph(store)
    working = WorkingMemoryManager(store)
    return RetrievalRanker(store, working, graph, config)


class ReadOnlyStore(InMemoryStore):
    """Store that rejects long-term writes once seeded."""

    read_only = False

    async def save_long_term(self, memory):
        if self.read_only:
            raise StorageError("read-only replica")
        return await super().save_long_term(memory)


class TestCandidates:
    """Tests for candidate gathering per tier."""

    @pytest.mark.asyncio
    async def test_results_are_tier_tagged_and_sorted(self, store):
        ranker = _ranker(store)
        await ranker.working.insert(
            USER,
            SESSION,
            WorkingMemoryItem(content="vendor X contract", type=WorkingItemType.ENTITY, last_accessed=NOW),
            now=NOW,
        )
        await store.save_short_term(make_stm("vendor X asked about the notice period"))
        await store.save_long_term(make_ltm("vendor X requires 30-day notice"))

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        assert {r.tier for r in result.results} == {
            MemoryTier.WORKING,
            MemoryTier.SHORT_TERM,
            MemoryTier.LONG_TERM,
        }
        scores = [r.score for r in result.results]
        assert scores == sorted(scores, reverse=True)
        assert result.candidate_count == 3

    @pytest.mark.asyncio
    async def test_irrelevant_long_term_is_skipped(self, store):
        await store.save_long_term(make_ltm("quarterly invoices paid by wire"))

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.by_tier(MemoryTier.LONG_TERM) == []

    @pytest.mark.asyncio
    async def test_entity_link_makes_memory_relevant(self, store):
        memory = make_ltm(
            "quarterly invoices paid by wire",
            context=LongTermContext(vendor_ids=["v-9"]),
        )
        await store.save_long_term(memory)

        result = await _ranker(store).retrieve(
            USER, SESSION, QUERY, entity_context=EntityContext(vendor_ids=["v-9"]), now=NOW
        )

        (ranked,) = result.by_tier(MemoryTier.LONG_TERM)
        assert ranked.memory_id == memory.id
        assert ranked.relevance == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_short_term_entity_match(self, store):
        await store.save_short_term(
            make_stm("payment terms discussed", context=MemoryContext(contract_id="c-7"))
        )

        result = await _ranker(store).retrieve(
            USER, SESSION, QUERY, entity_context=EntityContext(contract_ids=["c-7"]), now=NOW
        )

        assert result.results[0].relevance == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_short_term_excludes_expired_and_consolidated(self, store):
        promoted = make_stm("promoted")
        promoted.mark_consolidated(NOW)
        expired = make_stm("expired", expires_at=NOW - timedelta(minutes=1))
        live = make_stm("live")
        for record in (promoted, expired, live):
            await store.save_short_term(record)

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.ids() == [live.id]

    @pytest.mark.asyncio
    async def test_faded_working_items_are_skipped(self, store):
        ranker = _ranker(store)
        await ranker.working.insert(
            USER,
            SESSION,
            WorkingMemoryItem(
                content="vendor notice",
                type=WorkingItemType.CONCEPT,
                last_accessed=NOW - timedelta(hours=1),
            ),
            now=NOW,
        )

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.results == []


class TestScoring:
    """Tests for the four ranking signals."""

    @pytest.mark.asyncio
    async def test_stronger_memory_ranks_higher(self, store):
        weak = make_ltm("vendor X requires 30-day notice")
        strong = make_ltm("vendor X requires 30-day notice", reinforcement_count=5)
        await store.save_long_term(weak)
        await store.save_long_term(strong)

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.ids() == [strong.id, weak.id]

    @pytest.mark.asyncio
    async def test_importance_raises_score(self, store):
        low = make_ltm("vendor X requires 30-day notice", importance=ImportanceLevel.LOW)
        high = make_ltm("vendor X requires 30-day notice", importance=ImportanceLevel.HIGH)
        await store.save_long_term(low)
        await store.save_long_term(high)

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.ids() == [high.id, low.id]

    @pytest.mark.asyncio
    async def test_recency_half_life(self, store):
        await store.save_long_term(
            make_ltm("vendor X requires 30-day notice", last_accessed_at=NOW - timedelta(hours=72))
        )

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.results[0].recency == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_contradiction_penalty(self, store):
        plain = make_ltm("vendor X requires 30-day notice")
        disputed = make_ltm("vendor X requires 30-day notice")
        rival = make_ltm("quarterly invoices paid by wire")
        for memory in (plain, disputed, rival):
            await store.save_long_term(memory)
        ranker = _ranker(store)
        await ranker.graph.mark_contradiction(disputed.id, rival.id, now=NOW)

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        by_id = {r.memory_id: r for r in result.results}
        assert by_id[disputed.id].contradicted
        assert not by_id[plain.id].contradicted
        assert by_id[disputed.id].score == pytest.approx(by_id[plain.id].score * 0.7)

    @pytest.mark.asyncio
    async def test_query_embedding_relevance(self, store):
        memory = make_ltm("net thirty", embedding=[0.0, 1.0])
        await store.save_long_term(memory)

        result = await _ranker(store).retrieve(
            USER, SESSION, "payment schedule", query_embedding=[0.0, 2.0], now=NOW
        )

        assert result.ids() == [memory.id]
        assert result.results[0].relevance == pytest.approx(1.0)


class TestLimits:
    """Tests for result bounding."""

    @pytest.mark.asyncio
    async def test_default_and_explicit_limits(self, store):
        for i in range(15):
            await store.save_short_term(make_stm(f"fact {i}", created_at=NOW + timedelta(seconds=i)))
        ranker = _ranker(store)

        assert len((await ranker.retrieve(USER, SESSION, QUERY, now=NOW)).results) == 10
        assert len((await ranker.retrieve(USER, SESSION, QUERY, limit=3, now=NOW)).results) == 3

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, store):
        for i in range(8):
            await store.save_short_term(make_stm(f"fact {i}"))
        ranker = _ranker(store, RetrievalConfig(max_limit=5))

        result = await ranker.retrieve(USER, SESSION, QUERY, limit=20, now=NOW)

        assert len(result.results) == 5
        assert result.candidate_count == 8

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_is_rejected(self, store, limit):
        await store.save_short_term(make_stm("fact"))
        ranker = _ranker(store)

        with pytest.raises(ValueError):
            await ranker.retrieve(USER, SESSION, QUERY, limit=limit, now=NOW)

        assert (await store.get_short_term_by_user(USER))[0].access_count == 0


class TestAssociativeExpansion:
    """Tests for one-hop expansion through the graph."""

    @pytest.mark.asyncio
    async def test_strong_neighbor_is_pulled_in(self, store):
        anchor = make_ltm("vendor X requires 30-day notice")
        neighbor = make_ltm("quarterly invoices paid by wire")
        await store.save_long_term(anchor)
        await store.save_long_term(neighbor)
        ranker = _ranker(store)
        for _ in range(3):
            edge = await ranker.graph.add_or_reinforce(anchor.id, neighbor.id, now=NOW)

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        (expanded,) = result.by_tier(MemoryTier.ASSOCIATIVE)
        assert expanded.memory_id == neighbor.id
        assert expanded.via_association_id == edge.id
        assert expanded.relevance == pytest.approx((2 / 3) * 0.5)

        bumped = await store.get_association(anchor.id, neighbor.id, AssociationType.RELATED)
        assert bumped.strength == pytest.approx(0.52)

    @pytest.mark.asyncio
    async def test_weak_neighbor_is_not_expanded(self, store):
        anchor = make_ltm("vendor X requires 30-day notice")
        neighbor = make_ltm("quarterly invoices paid by wire")
        await store.save_long_term(anchor)
        await store.save_long_term(neighbor)
        ranker = _ranker(store)
        await ranker.graph.add_or_reinforce(anchor.id, neighbor.id, now=NOW)

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        assert result.by_tier(MemoryTier.ASSOCIATIVE) == []

    @pytest.mark.asyncio
    async def test_direct_candidates_are_not_duplicated(self, store):
        a = make_ltm("vendor X requires 30-day notice")
        b = make_ltm("vendor notice period is strict")
        await store.save_long_term(a)
        await store.save_long_term(b)
        ranker = _ranker(store)
        for _ in range(3):
            await ranker.graph.add_or_reinforce(a.id, b.id, now=NOW)

        result = await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        assert sorted(result.ids()) == sorted([a.id, b.id])
        assert result.by_tier(MemoryTier.ASSOCIATIVE) == []


class TestRetrievalSideEffects:
    """Tests for attention reinforcement."""

    @pytest.mark.asyncio
    async def test_long_term_gets_light_reinforcement(self, store):
        memory = make_ltm("vendor X requires 30-day notice")
        await store.save_long_term(memory)
        later = NOW + timedelta(hours=1)

        await _ranker(store).retrieve(USER, SESSION, QUERY, now=later)

        updated = await store.get_long_term(memory.id)
        assert updated.attention_boost == pytest.approx(0.02)
        assert updated.access_count == 1
        assert updated.last_accessed_at == later
        assert updated.last_reinforced_at is None
        assert updated.reinforcement_count == 0

    @pytest.mark.asyncio
    async def test_attention_boost_is_capped(self, store):
        memory = make_ltm("vendor X requires 30-day notice")
        await store.save_long_term(memory)
        ranker = _ranker(store)

        for _ in range(20):
            await ranker.retrieve(USER, SESSION, QUERY, now=NOW)

        assert (await store.get_long_term(memory.id)).attention_boost == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_working_item_is_accessed(self, store):
        ranker = _ranker(store)
        item = WorkingMemoryItem(content="vendor X", type=WorkingItemType.ENTITY, last_accessed=NOW)
        await ranker.working.insert(USER, SESSION, item, now=NOW)

        await ranker.retrieve(USER, SESSION, QUERY, now=NOW + timedelta(minutes=2))

        state = await ranker.working.get_state(USER, SESSION)
        assert state.get_item(item.id).access_count == 1

    @pytest.mark.asyncio
    async def test_repeated_use_flags_short_term_for_consolidation(self, store):
        record = make_stm("vendor X notice", importance=ImportanceLevel.LOW, should_consolidate=False)
        await store.save_short_term(record)
        ranker = _ranker(store)

        for _ in range(3):
            await ranker.retrieve(USER, SESSION, QUERY, now=NOW)
        assert not (await store.get_short_term(record.id)).should_consolidate

        await ranker.retrieve(USER, SESSION, QUERY, now=NOW)
        updated = await store.get_short_term(record.id)
        assert updated.access_count == 4
        assert updated.should_consolidate

    @pytest.mark.asyncio
    async def test_side_effect_failure_does_not_fail_retrieval(self):
        store = ReadOnlyStore()
        await store.connect()
        await store.save_long_term(make_ltm("vendor X requires 30-day notice"))
        store.read_only = True

        result = await _ranker(store).retrieve(USER, SESSION, QUERY, now=NOW)

        assert len(result.results) == 1
