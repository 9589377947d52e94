"""Dedup-on-write memory store.

Every resolved candidate is either created as a new memory or merged into
an existing one whose embedding is at least ``merge_threshold`` similar.
Content is first-write-wins: a merge only bumps ``times_observed``,
``last_observed_at``, widens ``related_entities``, keeps the higher
confidence, and appends evidence.

Batches are deduplicated against themselves before touching the store.
All contents are embedded in one call, the pairwise similarity matrix is
computed once, and candidates are then resolved in order so a later
near-duplicate merges into whatever an earlier one became.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from memorylane.models import Memory, ResolvedCandidate
from memorylane.similarity import pairwise_similarity

if TYPE_CHECKING:
    from memorylane.embeddings import Embedder
    from memorylane.storage import MemoryLaneStorage

logger = logging.getLogger(__name__)

DEFAULT_MERGE_THRESHOLD = 0.9

UpsertAction = Literal["created", "merged"]


@dataclass
class UpsertResult:
    """Outcome of writing one candidate.

    Attributes:
        action: Whether a new memory was created or an existing one merged.
        memory: The memory as stored after the write.
        similarity: Similarity to the merge target (None when created).
    """

    action: UpsertAction
    memory: Memory
    similarity: float | None = None

    @property
    def created(self) -> bool:
        return self.action == "created"


class MemoryStore:
    """Serializes the similarity-check-then-write sequence for memories.

    Example:
        ```python
        store = MemoryStore(storage, embedder)
        result = await store.upsert(resolved)
        if result.action == "merged":
            print(result.memory.times_observed)
        ```
    """

    def __init__(
        self,
        storage: MemoryLaneStorage,
        embedder: Embedder,
        merge_threshold: float = DEFAULT_MERGE_THRESHOLD,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.merge_threshold = merge_threshold
        self._lock = asyncio.Lock()

    async def upsert(self, candidate: ResolvedCandidate) -> UpsertResult:
        """Create or merge a single candidate."""
        results = await self.upsert_batch([candidate])
        return results[0]

    async def upsert_batch(self, candidates: Sequence[ResolvedCandidate]) -> list[UpsertResult]:
        """Create or merge candidates, deduplicating within the batch.

        Args:
            candidates: Resolved candidates in processing order.

        Returns:
            One result per candidate, in the same order.

        Raises:
            EmbeddingError: If the batch cannot be embedded.
        """
        if not candidates:
            return []

        vectors = await self.embedder.embed_batch([c.candidate.content for c in candidates])
        similarity = pairwise_similarity(vectors)

        # Arena of results indexed by batch position
        results: list[UpsertResult] = []
        async with self._lock:
            for index, (candidate, vector) in enumerate(zip(candidates, vectors, strict=True)):
                result = await self._resolve_one(index, candidate, vector, similarity, results)
                results.append(result)

        created = sum(1 for r in results if r.created)
        logger.debug(
            "Upserted %d candidates: %d created, %d merged",
            len(results),
            created,
            len(results) - created,
        )
        return results

    async def _resolve_one(
        self,
        index: int,
        candidate: ResolvedCandidate,
        vector: list[float],
        similarity: list[list[float]],
        earlier: list[UpsertResult],
    ) -> UpsertResult:
        for j in range(index):
            score = similarity[j][index]
            if score >= self.merge_threshold:
                merged = await self._merge(earlier[j].memory.id, candidate, score)
                if merged is not None:
                    return merged

        match = await self.storage.find_similar_memory(vector, self.merge_threshold)
        if match is not None:
            merged = await self._merge(match.memory.id, candidate, match.score)
            if merged is not None:
                return merged

        memory = candidate.to_memory(vector)
        await self.storage.store_memory(memory)
        return UpsertResult(action="created", memory=memory)

    async def _merge(
        self,
        memory_id: str,
        candidate: ResolvedCandidate,
        score: float,
    ) -> UpsertResult | None:
        evidence = [candidate.candidate.evidence] if candidate.candidate.evidence else []
        memory = await self.storage.merge_memory_observation(
            memory_id,
            related_entities=candidate.entity_ids,
            confidence=candidate.candidate.confidence,
            evidence=evidence,
        )
        if memory is None:
            logger.warning("Merge target %s disappeared; creating instead", memory_id)
            return None
        logger.debug(
            "Merged candidate %r into %s (similarity %.3f)",
            candidate.candidate.title,
            memory_id,
            score,
        )
        return UpsertResult(action="merged", memory=memory, similarity=score)
