"""
Association graph module.
"""

from pactwise_memory.associations.graph import (
    AssociationGraph,
    InvalidAssociationError,
    Neighbor,
)

__all__ = [
    "AssociationGraph",
    "InvalidAssociationError",
    "Neighbor",
]
