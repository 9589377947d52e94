"""Memory record operations for memorylane storage.

Memories live in the only collection with real embeddings. Point ids are
derived from memory ids, so every write for a memory targets one point.
Read-modify-write updates (merges, recall and feedback counters) all run
under the storage counter lock so they cannot overwrite each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from qdrant_client import models

from memorylane.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from memorylane.models import Memory, MemoryType

logger = logging.getLogger(__name__)

T = TypeVar("T")

COUNTER_FIELDS = frozenset({"recall_count", "positive_feedback", "negative_feedback"})


@dataclass
class ScoredResult(Generic[T]):
    """A search result with similarity score.

    Attributes:
        memory: The matched record.
        score: Cosine similarity from vector search (0.0-1.0).
    """

    memory: T
    score: float


class MemoryMixin:
    """Mixin providing memory operations for MemoryLaneStorage.

    Expects from the base class:
    - _collection_name(kind) -> str
    - _point_id(kind, key) -> str
    - _model_to_payload(record) -> dict
    - _payload_to_model(payload, model_class) -> model
    - _upsert_record(kind, key, payload, vector)
    - _scroll_all(kind, scroll_filter) -> list[Record]
    - _counter_lock: asyncio.Lock
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point_id: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _upsert_record: Any
    _scroll_all: Any
    _counter_lock: asyncio.Lock
    client: Any

    @qdrant_retry
    async def store_memory(self, memory: Memory) -> str:
        """Store a memory with its embedding.

        Raises:
            ValueError: If the memory has no embedding.
        """
        if memory.embedding is None:
            raise ValueError("memory must have an embedding before storage")

        await self._upsert_record(
            "memories",
            memory.id,
            self._model_to_payload(memory),
            vector=list(memory.embedding),
        )
        return memory.id

    @qdrant_retry
    async def get_memory(self, memory_id: str, with_vector: bool = False) -> Memory | None:
        """Get a memory by id, or None if it does not exist."""
        from memorylane.models import Memory

        points = await self.client.retrieve(
            collection_name=self._collection_name("memories"),
            ids=[self._point_id("memories", memory_id)],
            with_payload=True,
            with_vectors=with_vector,
        )
        if not points or points[0].payload is None:
            return None

        memory: Memory = self._payload_to_model(points[0].payload, Memory)
        if with_vector and points[0].vector is not None:
            memory.embedding = list(points[0].vector)
        return memory

    @qdrant_retry
    async def search_memories(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        score_threshold: float | None = None,
    ) -> list[ScoredResult[Memory]]:
        """Nearest memories by cosine similarity, best first.

        Args:
            query_vector: Query embedding.
            limit: Maximum results.
            score_threshold: Drop results below this similarity.
        """
        from memorylane.models import Memory

        results = await self.client.query_points(
            collection_name=self._collection_name("memories"),
            query=list(query_vector),
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        return [
            ScoredResult(memory=self._payload_to_model(p.payload, Memory), score=p.score)
            for p in results.points
            if p.payload is not None
        ]

    async def find_similar_memory(
        self,
        vector: Sequence[float],
        threshold: float,
    ) -> ScoredResult[Memory] | None:
        """Most similar stored memory at or above ``threshold``, if any."""
        matches = await self.search_memories(vector, limit=1, score_threshold=threshold)
        return matches[0] if matches else None

    @qdrant_retry
    async def find_memories_by_entities(
        self,
        entity_ids: Sequence[str],
        limit: int = 50,
    ) -> list[Memory]:
        """Memories whose related_entities intersect ``entity_ids``.

        Returns the ``limit`` most confident matches, highest first.
        """
        from memorylane.models import Memory

        if not entity_ids:
            return []

        points = await self._scroll_all(
            "memories",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="related_entities",
                        match=models.MatchAny(any=list(entity_ids)),
                    )
                ]
            ),
        )
        memories = [self._payload_to_model(p.payload, Memory) for p in points if p.payload]
        memories.sort(key=lambda m: (m.confidence_score, m.last_observed_at), reverse=True)
        return memories[:limit]

    @qdrant_retry
    async def list_memories(self, memory_type: MemoryType | None = None) -> list[Memory]:
        """All memories, optionally restricted to one type."""
        from memorylane.models import Memory

        scroll_filter = None
        if memory_type is not None:
            scroll_filter = models.Filter(
                must=[
                    models.FieldCondition(
                        key="type",
                        match=models.MatchValue(value=memory_type.value),
                    )
                ]
            )
        points = await self._scroll_all("memories", scroll_filter)
        return [self._payload_to_model(p.payload, Memory) for p in points if p.payload]

    @qdrant_retry
    async def count_memories(self) -> int:
        result = await self.client.count(
            collection_name=self._collection_name("memories"),
            exact=True,
        )
        return int(result.count)

    async def merge_memory_observation(
        self,
        memory_id: str,
        *,
        related_entities: list[str],
        confidence: float,
        evidence: list[str],
        observed_at: datetime | None = None,
    ) -> Memory | None:
        """Fold a near-duplicate observation into a stored memory.

        Content and embedding are never touched, so the point's vector is
        left as is and only the payload is rewritten.

        Returns:
            The merged memory, or None if it no longer exists.
        """
        async with self._counter_lock:
            memory = await self.get_memory(memory_id)
            if memory is None:
                return None
            memory.merge_observation(
                related_entities=related_entities,
                confidence=confidence,
                evidence=evidence,
                observed_at=observed_at,
            )
            await self._set_memory_fields(
                memory_id,
                {
                    "times_observed": memory.times_observed,
                    "last_observed_at": memory.last_observed_at.isoformat(),
                    "related_entities": memory.related_entities,
                    "confidence_score": memory.confidence_score,
                    "evidence": memory.evidence,
                },
            )
            return memory

    async def increment_memory_counters(self, memory_id: str, **deltas: int) -> Memory | None:
        """Atomically add ``deltas`` to counter fields of a memory.

        Example:
            await storage.increment_memory_counters("mem_1", recall_count=1)

        Returns:
            The updated memory, or None if it no longer exists.

        Raises:
            ValueError: If a field is not a counter.
        """
        unknown = set(deltas) - COUNTER_FIELDS
        if unknown:
            raise ValueError(f"not counter fields: {sorted(unknown)}")

        async with self._counter_lock:
            memory = await self.get_memory(memory_id)
            if memory is None:
                return None
            updates = {field: getattr(memory, field) + delta for field, delta in deltas.items()}
            for field, value in updates.items():
                setattr(memory, field, max(value, 0))
            await self._set_memory_fields(
                memory_id, {field: getattr(memory, field) for field in updates}
            )
            return memory

    @qdrant_retry
    async def _set_memory_fields(self, memory_id: str, payload: dict[str, Any]) -> None:
        await self.client.set_payload(
            collection_name=self._collection_name("memories"),
            payload=payload,
            points=[self._point_id("memories", memory_id)],
        )
