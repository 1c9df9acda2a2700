"""
Pytest configuration and shared fixtures.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from pactwise_memory.config import StorageConfig
from pactwise_memory.models.base import ImportanceLevel, MemoryType
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.storage.in_memory import InMemoryStore
from pactwise_memory.storage.sqlite import SQLiteStore


NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def temp_directory():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_user_id():
    """Provide a sample user ID."""
    return "user_123"


@pytest.fixture
def sample_enterprise_id():
    """Provide a sample enterprise ID."""
    return "ent_acme"


@pytest.fixture
def sample_session_id():
    """Provide a sample chat session ID."""
    return "session_abc"


@pytest.fixture
def now():
    """A fixed evaluation time."""
    return NOW


@pytest_asyncio.fixture
async def store():
    """A connected in-process store."""
    memory_store = InMemoryStore()
    await memory_store.connect()
    yield memory_store
    await memory_store.disconnect()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request, temp_directory):
    """Each store backend in turn."""
    if request.param == "sqlite":
        backend = SQLiteStore(
            StorageConfig(backend="sqlite", sqlite_path=temp_directory / "memory.db")
        )
    else:
        backend = InMemoryStore()
    await backend.connect()
    yield backend
    await backend.disconnect()


def make_stm(
    content: str = "vendor X requires 30-day notice",
    memory_type: MemoryType = MemoryType.DOMAIN_KNOWLEDGE,
    importance: ImportanceLevel = ImportanceLevel.MEDIUM,
    should_consolidate: bool = True,
    user_id: str = "user_123",
    session_id: str = "session_abc",
    created_at: datetime = NOW,
    **kwargs,
) -> ShortTermMemory:
    """Helper to create a short-term memory."""
    return ShortTermMemory(
        user_id=user_id,
        enterprise_id=kwargs.pop("enterprise_id", "ent_acme"),
        session_id=session_id,
        memory_type=memory_type,
        content=content,
        importance=importance,
        should_consolidate=should_consolidate,
        created_at=created_at,
        last_accessed_at=created_at,
        expires_at=kwargs.pop("expires_at", created_at + timedelta(hours=24)),
        **kwargs,
    )


def make_ltm(
    content: str = "vendor X requires 30-day notice",
    memory_type: MemoryType = MemoryType.DOMAIN_KNOWLEDGE,
    importance: ImportanceLevel = ImportanceLevel.MEDIUM,
    user_id: str = "user_123",
    created_at: datetime = NOW,
    **kwargs,
) -> LongTermMemory:
    """Helper to create a long-term memory."""
    return LongTermMemory(
        user_id=user_id,
        enterprise_id=kwargs.pop("enterprise_id", "ent_acme"),
        memory_type=memory_type,
        content=content,
        importance=importance,
        created_at=created_at,
        updated_at=created_at,
        last_accessed_at=kwargs.pop("last_accessed_at", created_at),
        **kwargs,
    )
