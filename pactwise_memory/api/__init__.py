"""
API module for the agent memory system.

Provides:
- MemorySystem: main orchestrator used by the chat assistant
- Classifier: contract for the external turn classifier
"""

from pactwise_memory.api.classifier import Classifier, ClassificationResult, ExtractedInfo
from pactwise_memory.api.memory_system import MemorySystem, SessionEndResult

__all__ = [
    "Classifier",
    "ClassificationResult",
    "ExtractedInfo",
    "MemorySystem",
    "SessionEndResult",
]
