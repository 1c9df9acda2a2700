"""
Configuration management for the agent memory system.

Provides centralized configuration for:
- Decay parameters (long-term strength, working activation, edges)
- Working memory capacity and eviction
- Consolidation thresholds and job timeouts
- Association graph reinforcement
- Retrieval weights
- Storage backends
"""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class DecayConfig(BaseModel):
    """Configuration for memory decay behavior."""

    # Long-term strength: base * exp(-rate * hours)
    base_strength_floor: float = Field(
        default=0.3,
        description="Base strength of a never-reinforced long-term memory",
        ge=0.0,
        le=1.0,
    )
    reinforcement_step: float = Field(
        default=0.1,
        description="Base strength gained per reinforcement",
        ge=0.0,
        le=1.0,
    )

    # Per-hour decay rates by importance (critical never decays)
    decay_rates: dict[str, float] = Field(
        default={
            "critical": 0.0,
            "high": 0.001,
            "medium": 0.002,
            "low": 0.005,
            "temporary": 0.02,
        },
        description="Decay rate (lambda, per hour) for each importance level",
    )

    # Working memory activation: activation * factor ** minutes
    working_decay_factor: float = Field(
        default=0.98,
        description="Per-minute multiplicative decay of working memory activation",
        gt=0.0,
        le=1.0,
    )

    # Strength floor used by maintenance pruning
    min_strength_threshold: float = Field(
        default=0.05,
        description="Effective strength below which a long-term memory may be pruned",
        ge=0.0,
        le=1.0,
    )
    prune_grace_period_hours: float = Field(
        default=24 * 30,
        description="Minimum age before a weak long-term memory may be pruned",
        ge=0.0,
    )

    # Light reinforcement applied by retrieval
    attention_boost: float = Field(
        default=0.02,
        description="Strength bump applied when a memory is returned by retrieval",
        ge=0.0,
        le=1.0,
    )
    max_attention_boost: float = Field(
        default=0.3,
        description="Cap on accumulated attention boost",
        ge=0.0,
        le=1.0,
    )


class WorkingMemoryConfig(BaseModel):
    """Configuration for per-session working memory."""

    capacity: int = Field(
        default=7,
        description="Maximum number of items held per session",
        ge=1,
    )
    eviction_threshold: float = Field(
        default=0.5,
        description="Activation below which an item is no longer considered active",
        ge=0.0,
        le=1.0,
    )
    spreading_boost: float = Field(
        default=0.2,
        description="Activation added to associated items when an item is accessed",
        ge=0.0,
        le=1.0,
    )
    content_overlap_threshold: float = Field(
        default=0.3,
        description="Word overlap (of the smaller item) that links two items",
        ge=0.0,
        le=1.0,
    )
    capture_evicted_threshold: float = Field(
        default=0.5,
        description="Evicted items above this activation are captured for consolidation",
        ge=0.0,
        le=1.0,
    )

    # Session-end flush
    promote_activation: float = Field(
        default=0.7,
        description="Items above this activation are promoted when a session ends",
        ge=0.0,
        le=1.0,
    )
    promote_access_count: int = Field(
        default=3,
        description="Items accessed more often than this are promoted when a session ends",
        ge=0,
    )
    flush_prune_activation: float = Field(
        default=0.1,
        description="Items at or below this activation are dropped when a session ends",
        ge=0.0,
        le=1.0,
    )


class ConsolidationConfig(BaseModel):
    """Configuration for the short-term to long-term promotion pipeline."""

    similarity_threshold: float = Field(
        default=0.8,
        description="Normalized content similarity at which records are merged",
        ge=0.0,
        le=1.0,
    )
    reuse_threshold: int = Field(
        default=3,
        description="Access count above which low-importance records become eligible",
        ge=0,
    )
    job_timeout_seconds: float = Field(
        default=60.0,
        description="Execution timeout after which a job is marked failed",
        gt=0.0,
    )
    stale_job_seconds: float | None = Field(
        default=None,
        description="Age at which another trigger fails an active job (None = twice the timeout)",
        gt=0.0,
    )
    min_shared_keywords: int = Field(
        default=2,
        description="Shared keywords needed to link two consolidated memories",
        ge=1,
    )
    importance_share: float = Field(
        default=0.3,
        description="Share of a cluster an importance level needs to win",
        ge=0.0,
        le=1.0,
    )
    max_keywords: int = Field(
        default=10,
        description="Maximum keywords kept per long-term memory",
        ge=1,
    )
    summary_length: int = Field(
        default=200,
        description="Characters of merged content kept in a new summary",
        ge=20,
    )
    max_summary_length: int = Field(
        default=1000,
        description="Cap on a summary grown by reinforcement",
        ge=20,
    )

    @property
    def stale_after_seconds(self) -> float:
        if self.stale_job_seconds is None:
            return 2 * self.job_timeout_seconds
        return self.stale_job_seconds

    @model_validator(mode="after")
    def _stale_outlives_timeout(self) -> "ConsolidationConfig":
        if self.stale_job_seconds is not None and self.stale_job_seconds <= self.job_timeout_seconds:
            raise ValueError("stale_job_seconds must exceed job_timeout_seconds")
        return self


class AssociationConfig(BaseModel):
    """Configuration for the association graph."""

    initial_strength: float = Field(default=0.3, ge=0.0, le=1.0)
    reinforcement_step: float = Field(default=0.1, ge=0.0, le=1.0)
    decay_rate: float = Field(
        default=0.0005,
        description="Per-hour decay rate of unused edges",
        ge=0.0,
    )
    min_strength: float = Field(
        default=0.1,
        description="Edges below this effective strength are removed by maintenance",
        ge=0.0,
        le=1.0,
    )
    attention_boost: float = Field(
        default=0.02,
        description="Strength bump for an edge used in retrieval expansion",
        ge=0.0,
        le=1.0,
    )


class RetrievalConfig(BaseModel):
    """Configuration for memory retrieval."""

    default_limit: int = Field(default=10, ge=1)
    max_limit: int = Field(default=50, ge=1)

    # Score weights
    relevance_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    strength_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    importance_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    recency_weight: float = Field(default=0.1, ge=0.0, le=1.0)

    min_relevance: float = Field(
        default=0.1,
        description="Minimum query relevance for a long-term candidate",
        ge=0.0,
        le=1.0,
    )
    entity_match_relevance: float = Field(
        default=0.5,
        description="Relevance floor for memories linked to the caller's entities",
        ge=0.0,
        le=1.0,
    )
    neighbor_min_strength: float = Field(
        default=0.4,
        description="Edge strength floor for one-hop expansion",
        ge=0.0,
        le=1.0,
    )
    associative_discount: float = Field(
        default=0.8,
        description="Score multiplier for memories reached through an edge",
        ge=0.0,
        le=1.0,
    )
    contradiction_penalty: float = Field(
        default=0.7,
        description="Score multiplier for memories with contradicting neighbors",
        ge=0.0,
        le=1.0,
    )
    recency_half_life_hours: float = Field(
        default=72.0,
        description="Hours for the recency signal to halve",
        gt=0.0,
    )
    importance_weights: dict[str, float] = Field(
        default={
            "critical": 1.0,
            "high": 0.8,
            "medium": 0.5,
            "low": 0.3,
            "temporary": 0.1,
        },
        description="Importance signal for each importance level",
    )


class StorageConfig(BaseModel):
    """Configuration for storage backends."""

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Record store backend",
    )
    sqlite_path: Path = Field(
        default=Path("./data/memory.db"),
        description="Path to SQLite database file",
    )


class MemoryConfig(BaseModel):
    """Master configuration for the agent memory system."""

    decay: DecayConfig = Field(default_factory=DecayConfig)
    working: WorkingMemoryConfig = Field(default_factory=WorkingMemoryConfig)
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    associations: AssociationConfig = Field(default_factory=AssociationConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    auto_consolidate: bool = Field(
        default=False,
        description="Trigger consolidation after turns flagged for consolidation",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    @classmethod
    def from_file(cls, path: Path) -> "MemoryConfig":
        """Load configuration from a JSON file."""
        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

    def to_file(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
