"""Qdrant storage client for memorylane.

Combines the storage mixins into MemoryLaneStorage.

Example:
    ```python
    from memorylane.storage import MemoryLaneStorage

    async with MemoryLaneStorage(embedding_dim=1024) as storage:
        await storage.store_memory(memory)
        hits = await storage.search_memories(query_vector, score_threshold=0.4)
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import DEFAULT_EMBEDDING_DIM, StorageBase
from .entities import EntityMixin
from .memories import MemoryMixin, ScoredResult
from .recalls import RecallMixin
from .state import StateMixin

logger = logging.getLogger(__name__)


class MemorySummary(BaseModel):
    """Compact view of a memory for leaderboards."""

    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    type: str
    recall_count: int = Field(ge=0)
    net_feedback: int


class MemoryStats(BaseModel):
    """Statistics about stored memories."""

    model_config = ConfigDict(extra="forbid")

    total_memories: int = Field(default=0, ge=0, description="Number of memories")
    by_type: dict[str, int] = Field(default_factory=dict, description="Memory count per type")
    avg_confidence: float | None = Field(default=None, description="Mean confidence score")
    total_recalls: int = Field(default=0, ge=0, description="Sum of recall counts")
    positive_feedback: int = Field(default=0, ge=0, description="Sum of positive votes")
    negative_feedback: int = Field(default=0, ge=0, description="Sum of negative votes")
    entities: int = Field(default=0, ge=0, description="Number of registered entities")
    tracked_files: int = Field(default=0, ge=0, description="Transcripts with a cursor")
    most_recalled: list[MemorySummary] = Field(default_factory=list)
    best_rated: list[MemorySummary] = Field(default_factory=list)


class MemoryLaneStorage(MemoryMixin, EntityMixin, StateMixin, RecallMixin, StorageBase):
    """Async Qdrant storage for memorylane.

    This class combines functionality from multiple mixins:
    - MemoryMixin: store/get/search memories, merges, counters
    - EntityMixin: entity registry with slug/alias lookup
    - StateMixin: per-file extraction cursors
    - RecallMixin: session recall and feedback audit logs
    """

    async def __aenter__(self) -> MemoryLaneStorage:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get_memory_stats(self, top: int = 5) -> MemoryStats:
        """Aggregate counts, confidence, recall and feedback totals.

        Args:
            top: Size of the most-recalled and best-rated lists.
        """
        memories = await self.list_memories()
        entity_count = await self.count_entities()
        tracked_files = len(await self.list_extraction_states())

        by_type: dict[str, int] = {}
        for memory in memories:
            by_type[memory.type.value] = by_type.get(memory.type.value, 0) + 1

        def summarize(items: list[Any]) -> list[MemorySummary]:
            return [
                MemorySummary(
                    id=m.id,
                    title=m.title,
                    type=m.type.value,
                    recall_count=m.recall_count,
                    net_feedback=m.net_feedback,
                )
                for m in items[:top]
            ]

        most_recalled = sorted(
            (m for m in memories if m.recall_count > 0),
            key=lambda m: (-m.recall_count, m.id),
        )
        best_rated = sorted(
            (m for m in memories if m.positive_feedback + m.negative_feedback > 0),
            key=lambda m: (-m.net_feedback, -m.positive_feedback, m.id),
        )

        return MemoryStats(
            total_memories=len(memories),
            by_type=by_type,
            avg_confidence=(
                sum(m.confidence_score for m in memories) / len(memories) if memories else None
            ),
            total_recalls=sum(m.recall_count for m in memories),
            positive_feedback=sum(m.positive_feedback for m in memories),
            negative_feedback=sum(m.negative_feedback for m in memories),
            entities=entity_count,
            tracked_files=tracked_files,
            most_recalled=summarize(most_recalled),
            best_rated=summarize(best_rated),
        )


__all__ = [
    "DEFAULT_EMBEDDING_DIM",
    "MemoryLaneStorage",
    "MemoryStats",
    "MemorySummary",
    "ScoredResult",
]
