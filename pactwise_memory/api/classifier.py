"""
Classifier contract.

Turning a conversational turn into a memory type, an importance level
and extracted content is the job of an external classifier. The memory
engine never inspects raw turn text itself; it only consumes this
tagged result.
"""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from pactwise_memory.models.base import ImportanceLevel, MemoryContext, MemorySource, MemoryType
from pactwise_memory.models.working import WorkingItemType


class ExtractedInfo(BaseModel):
    """What the classifier pulled out of a turn."""

    content: str
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    structured_data: dict[str, Any] | None = None
    context: MemoryContext | None = None
    embedding: list[float] | None = None
    source: MemorySource = MemorySource.CONVERSATION
    working_item_type: WorkingItemType | None = Field(
        default=None,
        description="Also place the content in working memory as this item type",
    )


class ClassificationResult(BaseModel):
    """Classifier output for one memory-worthy turn."""

    memory_type: MemoryType
    importance: ImportanceLevel
    should_consolidate: bool
    extracted_info: ExtractedInfo


@runtime_checkable
class Classifier(Protocol):
    """Protocol for turn classifiers."""

    async def classify(
        self,
        turn_text: str,
        prior_turn_text: str | None,
        context: dict[str, Any],
    ) -> ClassificationResult | None:
        """
        Classify a turn.

        Returns:
            The classification, or None when the turn holds nothing
            worth remembering
        """
        ...
