"""
Working memory manager.

Holds the bounded scratch context of each (user, session). Every
mutation of one session runs under that session's lock so concurrent
turns observe each other's evictions and the capacity bound is exact.
State lives in the store; the manager keeps nothing but the locks.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from pactwise_memory.config import DecayConfig, WorkingMemoryConfig
from pactwise_memory.decay.functions import working_activation
from pactwise_memory.encoding.text import word_overlap
from pactwise_memory.models.base import _utcnow
from pactwise_memory.models.working import WorkingMemoryItem, WorkingMemoryState
from pactwise_memory.storage.base import BaseMemoryStore

logger = logging.getLogger(__name__)


class EvictedItem(BaseModel):
    """An item taken out of (or promoted from) working memory, with its activation then."""

    item: WorkingMemoryItem
    activation: float
    evicted_at: datetime


class InsertResult(BaseModel):
    """Result of inserting an item into working memory."""

    item: WorkingMemoryItem
    evicted: list[EvictedItem] = Field(default_factory=list)
    size: int = 0
    capacity: int = 0
    created_state: bool = False


class FlushResult(BaseModel):
    """Result of flushing a session's working memory at session end."""

    promoted: list[EvictedItem] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    remaining: int = 0


EvictionCallback = Callable[[str, str, EvictedItem], Awaitable[None]]


class WorkingMemoryManager:
    """
    Per-session bounded working memory.

    Insert appends and evicts the lowest-activation item (ties: oldest
    ``last_accessed``) until the state is back within capacity. Eviction
    is the backpressure mechanism and never an error.

    Usage:
        manager = WorkingMemoryManager(store)
        result = await manager.insert("user_1", "session_1", item)
        await manager.access("user_1", "session_1", item.id)
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        config: WorkingMemoryConfig | None = None,
        decay_config: DecayConfig | None = None,
        on_evict: EvictionCallback | None = None,
    ):
        self.store = store
        self.config = config or WorkingMemoryConfig()
        self.decay_config = decay_config or DecayConfig()
        self.on_evict = on_evict
        # Entries vanish once no coroutine holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, session_id: str) -> asyncio.Lock:
        key = (user_id, session_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def activation(self, item: WorkingMemoryItem, now: datetime | None = None) -> float:
        """Effective activation of an item at ``now``."""
        return working_activation(item, now or _utcnow(), self.decay_config)

    async def get_state(self, user_id: str, session_id: str) -> WorkingMemoryState | None:
        return await self.store.get_working_state(user_id, session_id)

    async def active_items(
        self,
        user_id: str,
        session_id: str,
        min_activation: float | None = None,
        now: datetime | None = None,
    ) -> list[tuple[WorkingMemoryItem, float]]:
        """Items at or above ``min_activation``, most active first."""
        now = now or _utcnow()
        if min_activation is None:
            min_activation = self.config.eviction_threshold

        state = await self.store.get_working_state(user_id, session_id)
        if state is None:
            return []

        scored = [(item, self.activation(item, now)) for item in state.items]
        active = [(item, a) for item, a in scored if a >= min_activation]
        active.sort(key=lambda pair: pair[1], reverse=True)
        return active

    async def insert(
        self,
        user_id: str,
        session_id: str,
        item: WorkingMemoryItem,
        now: datetime | None = None,
    ) -> InsertResult:
        """
        Add an item, creating the session state on first use.

        Args:
            user_id: Owning user
            session_id: Owning session
            item: Item to add (an item with the same id is replaced)
            now: Evaluation time for activations

        Returns:
            InsertResult with any evicted items
        """
        now = now or _utcnow()

        async with self._lock_for(user_id, session_id):
            state = await self.store.get_working_state(user_id, session_id)
            created = state is None
            if state is None:
                state = WorkingMemoryState(
                    user_id=user_id,
                    session_id=session_id,
                    capacity=self.config.capacity,
                )

            state.items = [existing for existing in state.items if existing.id != item.id]
            self._link(state, item)
            state.items.append(item)

            evicted = self._enforce_capacity(state, now)
            state.last_update = now
            await self.store.save_working_state(state)

            result = InsertResult(
                item=item,
                evicted=evicted,
                size=len(state.items),
                capacity=state.capacity,
                created_state=created,
            )

        for entry in evicted:
            await self._notify_evicted(user_id, session_id, entry)

        return result

    async def access(
        self,
        user_id: str,
        session_id: str,
        item_id: str,
        now: datetime | None = None,
    ) -> WorkingMemoryItem | None:
        """
        Refresh an item: activation 1.0, ``last_accessed = now``.

        Associated items receive a spreading activation boost.

        Returns:
            The refreshed item, or None if the session or item is unknown
        """
        now = now or _utcnow()

        async with self._lock_for(user_id, session_id):
            state = await self.store.get_working_state(user_id, session_id)
            if state is None:
                return None
            item = state.get_item(item_id)
            if item is None:
                return None

            item.activation = 1.0
            item.last_accessed = now
            item.access_count += 1

            for linked_id in item.associations:
                linked = state.get_item(linked_id)
                if linked is None:
                    continue
                # Re-anchor the decay clock at the boosted value
                linked.activation = min(
                    1.0, self.activation(linked, now) + self.config.spreading_boost
                )
                linked.last_accessed = now

            state.last_update = now
            await self.store.save_working_state(state)
            return item

    async def set_focus(self, user_id: str, session_id: str, item_id: str) -> bool:
        """Mark the focus item. Returns False if the item is unknown."""
        async with self._lock_for(user_id, session_id):
            state = await self.store.get_working_state(user_id, session_id)
            if state is None or state.get_item(item_id) is None:
                return False
            state.focus_item = item_id
            await self.store.save_working_state(state)
            return True

    async def flush(
        self,
        user_id: str,
        session_id: str,
        now: datetime | None = None,
    ) -> FlushResult:
        """
        Settle a session's working memory when the session ends.

        Items that are still highly active, or were accessed often, are
        returned for promotion. Items that have faded out are dropped from
        the state; everything else stays for a resumed session.
        """
        now = now or _utcnow()

        async with self._lock_for(user_id, session_id):
            state = await self.store.get_working_state(user_id, session_id)
            if state is None:
                return FlushResult()

            result = FlushResult()
            kept: list[WorkingMemoryItem] = []
            for item in state.items:
                activation = self.activation(item, now)
                if (
                    activation > self.config.promote_activation
                    or item.access_count > self.config.promote_access_count
                ):
                    result.promoted.append(
                        EvictedItem(item=item, activation=activation, evicted_at=now)
                    )
                if activation <= self.config.flush_prune_activation:
                    result.pruned.append(item.id)
                else:
                    kept.append(item)

            pruned = set(result.pruned)
            for item in kept:
                item.associations = [a for a in item.associations if a not in pruned]
            if state.focus_item in pruned:
                state.focus_item = None
            state.items = kept
            state.last_update = now
            await self.store.save_working_state(state)

            result.remaining = len(kept)

        logger.info(
            f"Flushed working memory of session {session_id}: "
            f"{len(result.promoted)} promoted, {len(result.pruned)} pruned"
        )
        return result

    def _link(self, state: WorkingMemoryState, new_item: WorkingMemoryItem) -> None:
        """Link items sharing a type or enough wording."""
        for existing in state.items:
            related = existing.type == new_item.type or (
                word_overlap(existing.content, new_item.content)
                > self.config.content_overlap_threshold
            )
            if not related:
                continue
            if existing.id not in new_item.associations:
                new_item.associations.append(existing.id)
            if new_item.id not in existing.associations:
                existing.associations.append(new_item.id)

    def _enforce_capacity(
        self,
        state: WorkingMemoryState,
        now: datetime,
    ) -> list[EvictedItem]:
        evicted: list[EvictedItem] = []

        while state.is_over_capacity:
            victim = min(
                state.items,
                key=lambda i: (self.activation(i, now), i.last_accessed),
            )
            activation = self.activation(victim, now)
            state.items.remove(victim)

            for remaining in state.items:
                if victim.id in remaining.associations:
                    remaining.associations.remove(victim.id)
            if state.focus_item == victim.id:
                state.focus_item = None

            logger.debug(
                f"Evicted working item {victim.id} (activation={activation:.3f}) "
                f"from session {state.session_id}"
            )
            evicted.append(EvictedItem(item=victim, activation=activation, evicted_at=now))

        return evicted

    async def _notify_evicted(
        self,
        user_id: str,
        session_id: str,
        entry: EvictedItem,
    ) -> None:
        if self.on_evict is None:
            return
        if entry.activation <= self.config.capture_evicted_threshold:
            return
        try:
            await self.on_evict(user_id, session_id, entry)
        except Exception as e:
            logger.warning(f"Eviction handler failed for item {entry.item.id}: {e}")
