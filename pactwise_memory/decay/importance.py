"""
Importance policy tables.

Importance never decays; it drives the decay rate of long-term
memories, the time-to-live of short-term memories, the default
consolidation flag, and the importance signal used for ranking.
"""

from datetime import datetime, timedelta

from pactwise_memory.config import DecayConfig, RetrievalConfig
from pactwise_memory.models.base import ImportanceLevel, _utcnow


SHORT_TERM_TTL: dict[ImportanceLevel, timedelta] = {
    ImportanceLevel.CRITICAL: timedelta(days=365),
    ImportanceLevel.HIGH: timedelta(days=7),
    ImportanceLevel.MEDIUM: timedelta(hours=24),
    ImportanceLevel.LOW: timedelta(hours=4),
    ImportanceLevel.TEMPORARY: timedelta(minutes=30),
}


def short_term_expiry(
    importance: ImportanceLevel,
    now: datetime | None = None,
) -> datetime:
    """When a short-term record of this importance expires."""
    return (now or _utcnow()) + SHORT_TERM_TTL[importance]


def decay_rate_for(
    importance: ImportanceLevel,
    config: DecayConfig | None = None,
) -> float:
    """Per-hour decay rate for a long-term memory of this importance."""
    config = config or DecayConfig()
    if importance == ImportanceLevel.CRITICAL:
        return 0.0
    return config.decay_rates.get(importance.value, 0.002)


def importance_weight(
    importance: ImportanceLevel,
    config: RetrievalConfig | None = None,
) -> float:
    """Importance signal in [0, 1] used by the retrieval ranker."""
    config = config or RetrievalConfig()
    return config.importance_weights.get(importance.value, 0.5)


def default_should_consolidate(importance: ImportanceLevel) -> bool:
    """Critical and high importance records are always promoted."""
    return importance in (ImportanceLevel.CRITICAL, ImportanceLevel.HIGH)
