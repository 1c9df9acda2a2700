"""
Memory decay functions.

All decay is lazy: stored values are "as of last write" and effective
values are computed on demand as pure functions of ``(state, now)``.
No function here performs I/O or reads the clock.

- Long-term strength and association strength follow an exponential
  forgetting curve whose plateau rises with reinforcement.
- Working memory activation decays geometrically per minute.
"""

import math
from datetime import datetime, timezone

from pactwise_memory.config import AssociationConfig, DecayConfig
from pactwise_memory.models.association import MemoryAssociation
from pactwise_memory.models.base import ImportanceLevel
from pactwise_memory.models.long_term import LongTermMemory
from pactwise_memory.models.working import WorkingMemoryItem


def _aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours, clamped at zero for out-of-order timestamps."""
    delta = (_aware(end) - _aware(start)).total_seconds() / 3600
    return max(0.0, delta)


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes, clamped at zero for out-of-order timestamps."""
    return hours_between(start, end) * 60


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def base_strength(
    reinforcement_count: int,
    attention_boost: float = 0.0,
    config: DecayConfig | None = None,
) -> float:
    """
    Plateau a long-term memory decays from.

    Formula: min(1, floor + step * reinforcements + attention_boost)
    """
    config = config or DecayConfig()
    return min(
        1.0,
        config.base_strength_floor
        + config.reinforcement_step * reinforcement_count
        + attention_boost,
    )


def exponential_decay(initial: float, rate: float, hours: float) -> float:
    """
    Ebbinghaus forgetting curve.

    Formula: S(t) = S0 * e^(-rate * t), clamped to [0, 1]
    """
    return _clamp(initial * math.exp(-rate * hours))


def long_term_strength(
    record: LongTermMemory,
    now: datetime,
    config: DecayConfig | None = None,
) -> float:
    """
    Effective strength of a long-term memory at ``now``.

    Critical memories are exempt from decay.
    """
    rate = 0.0 if record.importance == ImportanceLevel.CRITICAL else record.decay_rate
    plateau = base_strength(record.reinforcement_count, record.attention_boost, config)
    return exponential_decay(plateau, rate, hours_between(record.decay_anchor, now))


def working_activation(
    item: WorkingMemoryItem,
    now: datetime,
    config: DecayConfig | None = None,
) -> float:
    """
    Effective activation of a working memory item at ``now``.

    Formula: activation * factor ** minutes_since_last_access
    """
    config = config or DecayConfig()
    minutes = minutes_between(item.last_accessed, now)
    return _clamp(item.activation * config.working_decay_factor ** minutes)


def association_strength(
    edge: MemoryAssociation,
    now: datetime,
    config: AssociationConfig | None = None,
) -> float:
    """Effective strength of an edge, decaying since its last reinforcement."""
    config = config or AssociationConfig()
    return exponential_decay(
        edge.strength,
        config.decay_rate,
        hours_between(edge.last_reinforced_at, now),
    )


class MemoryDecayCalculator:
    """
    Calculator for memory decay operations.

    Binds the pure decay functions to a configuration and adds
    threshold checks used by maintenance.
    """

    def __init__(
        self,
        config: DecayConfig | None = None,
        association_config: AssociationConfig | None = None,
    ):
        self.config = config or DecayConfig()
        self.association_config = association_config or AssociationConfig()

    def base_strength(self, reinforcement_count: int, attention_boost: float = 0.0) -> float:
        return base_strength(reinforcement_count, attention_boost, self.config)

    def long_term_strength(self, record: LongTermMemory, now: datetime) -> float:
        return long_term_strength(record, now, self.config)

    def working_activation(self, item: WorkingMemoryItem, now: datetime) -> float:
        return working_activation(item, now, self.config)

    def association_strength(self, edge: MemoryAssociation, now: datetime) -> float:
        return association_strength(edge, now, self.association_config)

    def is_below_floor(
        self,
        record: LongTermMemory,
        now: datetime,
        threshold: float | None = None,
    ) -> bool:
        """Check if a memory is weak enough to be pruned."""
        if threshold is None:
            threshold = self.config.min_strength_threshold
        return self.long_term_strength(record, now) < threshold

    def estimate_hours_to_floor(
        self,
        record: LongTermMemory,
        threshold: float | None = None,
    ) -> float:
        """
        Estimate hours, from the last reinforcement, until the memory
        falls below ``threshold``.

        Returns:
            Estimated hours (inf if the memory never decays)
        """
        if threshold is None:
            threshold = self.config.min_strength_threshold

        plateau = self.base_strength(record.reinforcement_count, record.attention_boost)
        if plateau <= threshold:
            return 0.0

        rate = 0.0 if record.importance == ImportanceLevel.CRITICAL else record.decay_rate
        if rate <= 0 or threshold <= 0:
            return float("inf")

        # From S(t) = S0 * e^(-rate * t), solve for S(t) = threshold
        return max(0.0, -math.log(threshold / plateau) / rate)
