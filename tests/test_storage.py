"""
Tests for storage backends.
"""

import pytest
from datetime import timedelta

from pactwise_memory.config import StorageConfig
from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.base import ImportanceLevel, MemoryType
from pactwise_memory.models.consolidation import ConsolidationJob
from pactwise_memory.models.working import WorkingItemType, WorkingMemoryItem, WorkingMemoryState
from pactwise_memory.storage import InMemoryStore, SQLiteStore, create_store
from pactwise_memory.storage.base import StorageError

from conftest import NOW, make_ltm, make_stm


class TestShortTermStorage:
    """Tests for short-term record persistence."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, any_store):
        stm = make_stm()
        await any_store.save_short_term(stm)

        loaded = await any_store.get_short_term(stm.id)
        assert loaded is not None
        assert loaded.content == stm.content
        assert loaded.created_at == stm.created_at

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        assert await any_store.get_short_term("missing") is None

    @pytest.mark.asyncio
    async def test_delete(self, any_store):
        stm = make_stm()
        await any_store.save_short_term(stm)
        assert await any_store.delete_short_term(stm.id)
        assert not await any_store.delete_short_term(stm.id)

    @pytest.mark.asyncio
    async def test_by_user_and_session_in_creation_order(self, any_store):
        later = make_stm("second", created_at=NOW + timedelta(minutes=1))
        earlier = make_stm("first")
        other = make_stm("elsewhere", session_id="other")
        for memory in (later, earlier, other):
            await any_store.save_short_term(memory)

        results = await any_store.get_by_user_and_session("user_123", "session_abc")
        assert [m.content for m in results] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_by_user_across_sessions(self, any_store):
        later = make_stm("second", session_id="other", created_at=NOW + timedelta(minutes=1))
        earlier = make_stm("first")
        stranger = make_stm("not mine", user_id="someone_else")
        for memory in (later, earlier, stranger):
            await any_store.save_short_term(memory)

        results = await any_store.get_short_term_by_user("user_123")
        assert [m.content for m in results] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_by_type_and_importance(self, any_store):
        await any_store.save_short_term(make_stm("a", importance=ImportanceLevel.HIGH))
        await any_store.save_short_term(make_stm("b"))
        await any_store.save_short_term(make_stm("c", memory_type=MemoryType.FEEDBACK))

        high = await any_store.get_by_type_and_importance(
            MemoryType.DOMAIN_KNOWLEDGE, ImportanceLevel.HIGH
        )
        assert [m.content for m in high] == ["a"]
        all_domain = await any_store.get_by_type_and_importance(MemoryType.DOMAIN_KNOWLEDGE)
        assert len(all_domain) == 2

    @pytest.mark.asyncio
    async def test_expired(self, any_store):
        await any_store.save_short_term(make_stm("old", expires_at=NOW - timedelta(minutes=1)))
        await any_store.save_short_term(make_stm("fresh"))

        expired = await any_store.get_expired(NOW)
        assert [m.content for m in expired] == ["old"]

    @pytest.mark.asyncio
    async def test_eligible_for_consolidation(self, any_store):
        eligible = make_stm("flagged")
        unflagged = make_stm("unflagged", should_consolidate=False)
        low_unused = make_stm("low", importance=ImportanceLevel.LOW)
        low_reused = make_stm("low reused", importance=ImportanceLevel.LOW, access_count=4)
        done = make_stm("done")
        done.mark_consolidated(NOW)
        for memory in (eligible, unflagged, low_unused, low_reused, done):
            await any_store.save_short_term(memory)

        results = await any_store.get_eligible_for_consolidation(reuse_threshold=3)
        assert {m.content for m in results} == {"flagged", "low reused"}

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        stm = make_stm()
        await store.save_short_term(stm)

        loaded = await store.get_short_term(stm.id)
        loaded.content = "mutated"
        assert (await store.get_short_term(stm.id)).content == stm.content


class TestLongTermStorage:
    """Tests for long-term record persistence."""

    @pytest.mark.asyncio
    async def test_save_get_update(self, any_store):
        ltm = make_ltm(keywords=["vendor", "notice"])
        await any_store.save_long_term(ltm)

        ltm.reinforcement_count = 3
        await any_store.save_long_term(ltm)

        loaded = await any_store.get_long_term(ltm.id)
        assert loaded.reinforcement_count == 3
        assert loaded.keywords == ["vendor", "notice"]

    @pytest.mark.asyncio
    async def test_by_user_and_type(self, any_store):
        await any_store.save_long_term(make_ltm("a"))
        await any_store.save_long_term(make_ltm("b", memory_type=MemoryType.USER_PREFERENCE))
        await any_store.save_long_term(make_ltm("c", user_id="someone_else"))

        assert len(await any_store.get_long_term_by_user("user_123")) == 2
        prefs = await any_store.get_long_term_by_user("user_123", MemoryType.USER_PREFERENCE)
        assert [m.content for m in prefs] == ["b"]

    @pytest.mark.asyncio
    async def test_delete(self, any_store):
        ltm = make_ltm()
        await any_store.save_long_term(ltm)
        assert await any_store.delete_long_term(ltm.id)
        assert await any_store.get_long_term(ltm.id) is None


class TestAssociationStorage:
    """Tests for edge persistence."""

    def _edge(self, a="m1", b="m2", kind=AssociationType.RELATED) -> MemoryAssociation:
        return MemoryAssociation(
            from_memory_id=a,
            to_memory_id=b,
            association_type=kind,
            created_at=NOW,
            last_reinforced_at=NOW,
        )

    @pytest.mark.asyncio
    async def test_lookup_by_key_and_endpoint(self, any_store):
        edge = self._edge()
        await any_store.save_association(edge)

        found = await any_store.get_association("m1", "m2", AssociationType.RELATED)
        assert found.id == edge.id
        assert await any_store.get_association("m2", "m1", AssociationType.RELATED) is None
        assert [e.id for e in await any_store.get_associations_from("m1")] == [edge.id]
        assert [e.id for e in await any_store.get_associations_to("m2")] == [edge.id]

    @pytest.mark.asyncio
    async def test_one_edge_per_key(self, any_store):
        await any_store.save_association(self._edge())
        with pytest.raises(StorageError):
            await any_store.save_association(self._edge())

    @pytest.mark.asyncio
    async def test_same_pair_different_type(self, any_store):
        await any_store.save_association(self._edge())
        await any_store.save_association(self._edge(kind=AssociationType.SUPPORTS))
        assert len(await any_store.get_all_associations()) == 2

    @pytest.mark.asyncio
    async def test_update_and_delete(self, any_store):
        edge = self._edge()
        await any_store.save_association(edge)
        edge.strength = 0.6
        await any_store.save_association(edge)

        found = await any_store.get_association("m1", "m2", AssociationType.RELATED)
        assert found.strength == 0.6
        assert await any_store.delete_association(edge.id)
        assert await any_store.get_all_associations() == []


class TestWorkingStateStorage:
    """Tests for working memory state persistence."""

    @pytest.mark.asyncio
    async def test_round_trip_by_session(self, any_store):
        state = WorkingMemoryState(user_id="user_123", session_id="session_abc", last_update=NOW)
        state.items.append(
            WorkingMemoryItem(content="contract c-1", type=WorkingItemType.ENTITY, last_accessed=NOW)
        )
        await any_store.save_working_state(state)

        loaded = await any_store.get_working_state("user_123", "session_abc")
        assert loaded.size == 1
        assert loaded.items[0].content == "contract c-1"
        assert await any_store.get_working_state("user_123", "other") is None


class TestJobStorage:
    """Tests for consolidation job persistence."""

    @pytest.mark.asyncio
    async def test_active_jobs_by_scope(self, any_store):
        active = ConsolidationJob(user_id="user_123", enterprise_id="ent", session_id="s1")
        done = ConsolidationJob(user_id="user_123", enterprise_id="ent", session_id="s1")
        done.start(NOW)
        done.complete(NOW)
        user_wide = ConsolidationJob(user_id="user_123", enterprise_id="ent")
        for job in (active, done, user_wide):
            await any_store.save_job(job)

        in_session = await any_store.get_active_jobs("user_123", "s1")
        assert [j.id for j in in_session] == [active.id]
        across_sessions = await any_store.get_active_jobs("user_123", None)
        assert [j.id for j in across_sessions] == [user_wide.id]
        every_key = await any_store.get_user_active_jobs("user_123")
        assert {j.id for j in every_key} == {active.id, user_wide.id}
        assert await any_store.get_user_active_jobs("someone_else") == []

    @pytest.mark.asyncio
    async def test_get_job(self, any_store):
        job = ConsolidationJob(user_id="u", enterprise_id="e", short_term_memory_ids=["a", "b"])
        await any_store.save_job(job)
        loaded = await any_store.get_job(job.id)
        assert loaded.short_term_memory_ids == ["a", "b"]


class TestStoreLifecycle:
    """Tests for connection handling."""

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        backend = InMemoryStore()
        with pytest.raises(StorageError):
            await backend.get_short_term("x")

    @pytest.mark.asyncio
    async def test_context_manager(self, temp_directory):
        backend = SQLiteStore(StorageConfig(sqlite_path=temp_directory / "ctx.db"))
        async with backend:
            assert await backend.is_connected()
        assert not await backend.is_connected()

    def test_factory_selects_backend(self, temp_directory):
        assert isinstance(create_store(StorageConfig()), InMemoryStore)
        sqlite_config = StorageConfig(backend="sqlite", sqlite_path=temp_directory / "f.db")
        assert isinstance(create_store(sqlite_config), SQLiteStore)
