"""
SQLite storage backend for memory records.

Uses aiosqlite for async operations. Each collection is one table: the
columns used by secondary indexes are stored alongside the full record
serialized as JSON.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from pactwise_memory.config import StorageConfig
from pactwise_memory.models.association import AssociationType, MemoryAssociation
from pactwise_memory.models.base import ImportanceLevel, MemoryType
from pactwise_memory.models.consolidation import ConsolidationJob, JobStatus
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.short_term import ShortTermMemory
from pactwise_memory.models.working import WorkingMemoryState
from pactwise_memory.storage.base import BaseMemoryStore, StorageError


# SQL Schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS short_term_memories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    enterprise_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    memory_type TEXT NOT NULL,
    importance TEXT NOT NULL,
    should_consolidate INTEGER DEFAULT 0,
    access_count INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    expires_at TEXT,
    consolidated_at TEXT,
    data_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_stm_user_session ON short_term_memories(user_id, session_id);
CREATE INDEX IF NOT EXISTS idx_stm_type_importance ON short_term_memories(memory_type, importance);
CREATE INDEX IF NOT EXISTS idx_stm_expires_at ON short_term_memories(expires_at);
CREATE INDEX IF NOT EXISTS idx_stm_consolidation
    ON short_term_memories(should_consolidate, consolidated_at);

CREATE TABLE IF NOT EXISTS long_term_memories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    enterprise_id TEXT NOT NULL,
    memory_type TEXT NOT NULL,
    importance TEXT NOT NULL,
    strength REAL DEFAULT 0.0,
    created_at TEXT NOT NULL,
    data_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ltm_user_type ON long_term_memories(user_id, memory_type);
CREATE INDEX IF NOT EXISTS idx_ltm_strength ON long_term_memories(strength);

CREATE TABLE IF NOT EXISTS memory_associations (
    id TEXT PRIMARY KEY,
    from_memory_id TEXT NOT NULL,
    to_memory_id TEXT NOT NULL,
    association_type TEXT NOT NULL,
    data_json TEXT NOT NULL,
    UNIQUE (from_memory_id, to_memory_id, association_type)
);

CREATE INDEX IF NOT EXISTS idx_assoc_from ON memory_associations(from_memory_id);
CREATE INDEX IF NOT EXISTS idx_assoc_to ON memory_associations(to_memory_id);

CREATE TABLE IF NOT EXISTS working_memory_states (
    user_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    data_json TEXT NOT NULL,
    PRIMARY KEY (user_id, session_id)
);

CREATE TABLE IF NOT EXISTS consolidation_jobs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    session_id TEXT,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    data_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_job_user_session ON consolidation_jobs(user_id, session_id, status);
"""


def _serialize_datetime(dt: datetime | None) -> str | None:
    """Serialize to a fixed-width UTC string so text order is time order."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class SQLiteStore(BaseMemoryStore):
    """
    SQLite-based storage for memory records.

    Stores each record as JSON with indexed columns for the lookups the
    memory engine performs.
    """

    def __init__(self, config: StorageConfig | None = None):
        """
        Initialize SQLite storage.

        Args:
            config: Storage configuration
        """
        self.config = config or StorageConfig()
        self.db_path = self.config.sqlite_path
        self._connection: aiosqlite.Connection | None = None
        self._connected = False

    async def connect(self) -> None:
        """Initialize connection and create schema."""
        try:
            if str(self.db_path) != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(str(self.db_path))
            self._connection.row_factory = aiosqlite.Row

            await self._connection.executescript(SCHEMA)
            await self._connection.commit()

            self._connected = True
        except Exception as e:
            raise StorageError(f"Failed to connect to SQLite: {e}") from e

    async def disconnect(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
        self._connected = False

    async def is_connected(self) -> bool:
        """Check if storage is connected."""
        return self._connected and self._connection is not None

    def _ensure_connected(self) -> None:
        """Raise error if not connected."""
        if not self._connected or self._connection is None:
            raise StorageError("Not connected to database")

    async def _upsert(
        self,
        table: str,
        row: dict[str, Any],
        conflict_columns: tuple[str, ...] = ("id",),
    ) -> None:
        self._ensure_connected()

        columns = ", ".join(row.keys())
        placeholders = ", ".join(["?" for _ in row])
        updates = ", ".join(
            f"{k} = excluded.{k}" for k in row.keys() if k not in conflict_columns
        )
        query = (
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT({', '.join(conflict_columns)}) DO UPDATE SET {updates}"
        )

        try:
            await self._connection.execute(query, list(row.values()))
            await self._connection.commit()
        except Exception as e:
            await self._connection.rollback()
            raise StorageError(f"Failed to write to {table}: {e}") from e

    async def _delete(self, table: str, record_id: str) -> bool:
        self._ensure_connected()
        try:
            cursor = await self._connection.execute(
                f"DELETE FROM {table} WHERE id = ?", (record_id,)
            )
            await self._connection.commit()
            return cursor.rowcount > 0
        except Exception as e:
            await self._connection.rollback()
            raise StorageError(f"Failed to delete from {table}: {e}") from e

    async def _fetch_json(self, query: str, params: tuple | list = ()) -> list[str]:
        self._ensure_connected()
        try:
            async with self._connection.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(f"Query failed: {e}") from e
        return [row["data_json"] for row in rows]

    # Short-term memory
    async def save_short_term(self, memory: ShortTermMemory) -> str:
        await self._upsert(
            "short_term_memories",
            {
                "id": memory.id,
                "user_id": memory.user_id,
                "enterprise_id": memory.enterprise_id,
                "session_id": memory.session_id,
                "memory_type": memory.memory_type.value,
                "importance": memory.importance.value,
                "should_consolidate": 1 if memory.should_consolidate else 0,
                "access_count": memory.access_count,
                "created_at": _serialize_datetime(memory.created_at),
                "expires_at": _serialize_datetime(memory.expires_at),
                "consolidated_at": _serialize_datetime(memory.consolidated_at),
                "data_json": memory.model_dump_json(),
            },
        )
        return memory.id

    async def get_short_term(self, memory_id: str) -> ShortTermMemory | None:
        rows = await self._fetch_json(
            "SELECT data_json FROM short_term_memories WHERE id = ?", (memory_id,)
        )
        return ShortTermMemory.model_validate_json(rows[0]) if rows else None

    async def delete_short_term(self, memory_id: str) -> bool:
        return await self._delete("short_term_memories", memory_id)

    async def get_by_user_and_session(
        self,
        user_id: str,
        session_id: str,
    ) -> list[ShortTermMemory]:
        rows = await self._fetch_json(
            "SELECT data_json FROM short_term_memories "
            "WHERE user_id = ? AND session_id = ? ORDER BY created_at, id",
            (user_id, session_id),
        )
        return [ShortTermMemory.model_validate_json(r) for r in rows]

    async def get_short_term_by_user(self, user_id: str) -> list[ShortTermMemory]:
        rows = await self._fetch_json(
            "SELECT data_json FROM short_term_memories "
            "WHERE user_id = ? ORDER BY created_at, id",
            (user_id,),
        )
        return [ShortTermMemory.model_validate_json(r) for r in rows]

    async def get_by_type_and_importance(
        self,
        memory_type: MemoryType,
        importance: ImportanceLevel | None = None,
        user_id: str | None = None,
    ) -> list[ShortTermMemory]:
        query = "SELECT data_json FROM short_term_memories WHERE memory_type = ?"
        params: list[Any] = [memory_type.value]
        if importance is not None:
            query += " AND importance = ?"
            params.append(importance.value)
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at, id"

        rows = await self._fetch_json(query, params)
        return [ShortTermMemory.model_validate_json(r) for r in rows]

    async def get_expired(self, now: datetime) -> list[ShortTermMemory]:
        rows = await self._fetch_json(
            "SELECT data_json FROM short_term_memories "
            "WHERE expires_at IS NOT NULL AND expires_at <= ? ORDER BY created_at, id",
            (_serialize_datetime(now),),
        )
        return [ShortTermMemory.model_validate_json(r) for r in rows]

    async def get_eligible_for_consolidation(
        self,
        reuse_threshold: int,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> list[ShortTermMemory]:
        query = (
            "SELECT data_json FROM short_term_memories "
            "WHERE should_consolidate = 1 AND consolidated_at IS NULL "
            "AND (importance != ? OR access_count > ?)"
        )
        params: list[Any] = [ImportanceLevel.LOW.value, reuse_threshold]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        if session_id is not None:
            query += " AND session_id = ?"
            params.append(session_id)
        query += " ORDER BY created_at, id"

        rows = await self._fetch_json(query, params)
        return [ShortTermMemory.model_validate_json(r) for r in rows]

    # Long-term memory
    async def save_long_term(self, memory: LongTermMemory) -> str:
        await self._upsert(
            "long_term_memories",
            {
                "id": memory.id,
                "user_id": memory.user_id,
                "enterprise_id": memory.enterprise_id,
                "memory_type": memory.memory_type.value,
                "importance": memory.importance.value,
                "strength": memory.strength,
                "created_at": _serialize_datetime(memory.created_at),
                "data_json": memory.model_dump_json(),
            },
        )
        return memory.id

    async def get_long_term(self, memory_id: str) -> LongTermMemory | None:
        rows = await self._fetch_json(
            "SELECT data_json FROM long_term_memories WHERE id = ?", (memory_id,)
        )
        return LongTermMemory.model_validate_json(rows[0]) if rows else None

    async def delete_long_term(self, memory_id: str) -> bool:
        return await self._delete("long_term_memories", memory_id)

    async def get_long_term_by_user(
        self,
        user_id: str,
        memory_type: MemoryType | None = None,
    ) -> list[LongTermMemory]:
        query = "SELECT data_json FROM long_term_memories WHERE user_id = ?"
        params: list[Any] = [user_id]
        if memory_type is not None:
            query += " AND memory_type = ?"
            params.append(memory_type.value)
        query += " ORDER BY created_at, id"

        rows = await self._fetch_json(query, params)
        return [LongTermMemory.model_validate_json(r) for r in rows]

    # Associations
    async def save_association(self, association: MemoryAssociation) -> str:
        await self._upsert(
            "memory_associations",
            {
                "id": association.id,
                "from_memory_id": association.from_memory_id,
                "to_memory_id": association.to_memory_id,
                "association_type": association.association_type.value,
                "data_json": association.model_dump_json(),
            },
        )
        return association.id

    async def get_association(
        self,
        from_memory_id: str,
        to_memory_id: str,
        association_type: AssociationType,
    ) -> MemoryAssociation | None:
        rows = await self._fetch_json(
            "SELECT data_json FROM memory_associations "
            "WHERE from_memory_id = ? AND to_memory_id = ? AND association_type = ?",
            (from_memory_id, to_memory_id, association_type.value),
        )
        return MemoryAssociation.model_validate_json(rows[0]) if rows else None

    async def get_associations_from(self, memory_id: str) -> list[MemoryAssociation]:
        rows = await self._fetch_json(
            "SELECT data_json FROM memory_associations WHERE from_memory_id = ?",
            (memory_id,),
        )
        return [MemoryAssociation.model_validate_json(r) for r in rows]

    async def get_associations_to(self, memory_id: str) -> list[MemoryAssociation]:
        rows = await self._fetch_json(
            "SELECT data_json FROM memory_associations WHERE to_memory_id = ?",
            (memory_id,),
        )
        return [MemoryAssociation.model_validate_json(r) for r in rows]

    async def get_all_associations(self) -> list[MemoryAssociation]:
        rows = await self._fetch_json("SELECT data_json FROM memory_associations")
        return [MemoryAssociation.model_validate_json(r) for r in rows]

    async def delete_association(self, association_id: str) -> bool:
        return await self._delete("memory_associations", association_id)

    # Working memory
    async def get_working_state(
        self,
        user_id: str,
        session_id: str,
    ) -> WorkingMemoryState | None:
        rows = await self._fetch_json(
            "SELECT data_json FROM working_memory_states WHERE user_id = ? AND session_id = ?",
            (user_id, session_id),
        )
        return WorkingMemoryState.model_validate_json(rows[0]) if rows else None

    async def save_working_state(self, state: WorkingMemoryState) -> None:
        await self._upsert(
            "working_memory_states",
            {
                "user_id": state.user_id,
                "session_id": state.session_id,
                "data_json": state.model_dump_json(),
            },
            conflict_columns=("user_id", "session_id"),
        )

    # Consolidation jobs
    async def save_job(self, job: ConsolidationJob) -> str:
        await self._upsert(
            "consolidation_jobs",
            {
                "id": job.id,
                "user_id": job.user_id,
                "session_id": job.session_id,
                "status": job.status.value,
                "created_at": _serialize_datetime(job.created_at),
                "data_json": job.model_dump_json(),
            },
        )
        return job.id

    async def get_job(self, job_id: str) -> ConsolidationJob | None:
        rows = await self._fetch_json(
            "SELECT data_json FROM consolidation_jobs WHERE id = ?", (job_id,)
        )
        return ConsolidationJob.model_validate_json(rows[0]) if rows else None

    async def get_active_jobs(
        self,
        user_id: str,
        session_id: str | None,
    ) -> list[ConsolidationJob]:
        rows = await self._fetch_json(
            "SELECT data_json FROM consolidation_jobs "
            "WHERE user_id = ? AND session_id IS ? AND status IN (?, ?) "
            "ORDER BY created_at, id",
            (user_id, session_id, JobStatus.PENDING.value, JobStatus.PROCESSING.value),
        )
        return [ConsolidationJob.model_validate_json(r) for r in rows]

    async def get_user_active_jobs(self, user_id: str) -> list[ConsolidationJob]:
        rows = await self._fetch_json(
            "SELECT data_json FROM consolidation_jobs "
            "WHERE user_id = ? AND status IN (?, ?) "
            "ORDER BY created_at, id",
            (user_id, JobStatus.PENDING.value, JobStatus.PROCESSING.value),
        )
        return [ConsolidationJob.model_validate_json(r) for r in rows]
