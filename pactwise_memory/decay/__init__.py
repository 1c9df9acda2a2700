"""
Decay module for memory strength management.

Provides:
- Lazy forgetting curves for long-term memories and associations
- Geometric activation decay for working memory
- Importance policy tables (decay rates, short-term TTLs)
"""

from pactwise_memory.decay.functions import (
    MemoryDecayCalculator,
    association_strength,
    base_strength,
    exponential_decay,
    hours_between,
    long_term_strength,
    minutes_between,
    working_activation,
)
from pactwise_memory.decay.importance import (
    SHORT_TERM_TTL,
    decay_rate_for,
    default_should_consolidate,
    importance_weight,
    short_term_expiry,
)

__all__ = [
    # Decay functions
    "MemoryDecayCalculator",
    "association_strength",
    "base_strength",
    "exponential_decay",
    "hours_between",
    "long_term_strength",
    "minutes_between",
    "working_activation",
    # Importance
    "SHORT_TERM_TTL",
    "decay_rate_for",
    "default_should_consolidate",
    "importance_weight",
    "short_term_expiry",
]
