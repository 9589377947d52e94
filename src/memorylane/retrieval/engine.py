"""Dual-path retrieval: entity match plus semantic nearest neighbours.

Both paths are read-only and run concurrently. Their hits are merged by
memory id, ranked, cut to ``k``, and recorded: every returned memory gets
its ``recall_count`` bumped and a SessionRecall audit row.

Retrieval never raises for backend failures. A failing path contributes
nothing, and a failure while recording still returns the ranked results.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from memorylane.models import RecallMethod, SessionRecall, generate_id

from .ranking import RankedMemory, RankingEngine, RetrievalCandidate

if TYPE_CHECKING:
    from memorylane.config import Settings
    from memorylane.embeddings import Embedder
    from memorylane.entities import EntityResolver
    from memorylane.storage import MemoryLaneStorage

logger = logging.getLogger(__name__)

ENTITY_MATCH_SIMILARITY = 1.0


def _path_hits(
    name: str,
    outcome: list[RetrievalCandidate] | BaseException,
) -> list[RetrievalCandidate]:
    if isinstance(outcome, Exception):
        logger.warning("%s retrieval path failed: %s", name, outcome)
        return []
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class RetrievalResult(BaseModel):
    """A ranked memory returned to the caller."""

    model_config = ConfigDict(extra="forbid")

    memory_id: str = Field(description="Memory identifier")
    title: str
    content: str
    type: str = Field(description="Memory type")
    category: str
    score: float = Field(ge=0.0, description="Final feedback-adjusted score")
    similarity: float = Field(ge=0.0, le=1.0, description="Raw retrieval similarity")
    recall_method: RecallMethod
    signals: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_ranked(cls, ranked: RankedMemory) -> RetrievalResult:
        memory = ranked.memory
        return cls(
            memory_id=memory.id,
            title=memory.title,
            content=memory.content,
            type=memory.type.value,
            category=memory.category,
            score=ranked.score,
            similarity=ranked.similarity,
            recall_method=ranked.recall_method,
            signals=ranked.signals,
        )


class RetrievalEngine:
    """Finds, ranks, and records memories relevant to a query.

    Example:
        ```python
        engine = RetrievalEngine(storage, embedder, resolver, settings)
        results = await engine.retrieve("what did we decide about the database")
        for r in results:
            print(r.score, r.title)
        ```
    """

    def __init__(
        self,
        storage: MemoryLaneStorage,
        embedder: Embedder,
        resolver: EntityResolver,
        settings: Settings,
        ranking: RankingEngine | None = None,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.resolver = resolver
        self.settings = settings
        self.ranking = ranking or RankingEngine(settings.ranking_weights)

    async def retrieve(
        self,
        query: str,
        k: int | None = None,
        session_id: str | None = None,
    ) -> list[RetrievalResult]:
        """Retrieve up to ``k`` ranked memories for ``query``.

        Args:
            query: Natural language query.
            k: Maximum results (defaults to ``retrieval_default_limit``).
            session_id: Session to attribute recalls to; generated if None.

        Returns:
            Ranked results, possibly empty. Never raises for backend errors.
        """
        limit = k if k is not None else self.settings.retrieval_default_limit
        if not query.strip() or limit <= 0:
            return []

        candidates = await self.find_candidates(query)
        ranked = self.ranking.rank(candidates, query)[:limit]

        await self._record_recalls(ranked, query, session_id or generate_id("ses"))
        return [RetrievalResult.from_ranked(r) for r in ranked]

    async def find_candidates(self, query: str) -> list[RetrievalCandidate]:
        """Run both paths concurrently and merge their hits by memory id."""
        entity_hits, semantic_hits = await asyncio.gather(
            self._entity_path(query),
            self._semantic_path(query),
            return_exceptions=True,
        )
        entity_hits = _path_hits("Entity", entity_hits)
        semantic_hits = _path_hits("Semantic", semantic_hits)

        merged: dict[str, RetrievalCandidate] = {}
        for candidate in semantic_hits:
            merged[candidate.memory.id] = candidate
        for candidate in entity_hits:
            existing = merged.get(candidate.memory.id)
            if existing is None:
                merged[candidate.memory.id] = candidate
            else:
                existing.recall_method = "hybrid"

        logger.debug(
            "Retrieval candidates: %d entity, %d semantic, %d merged",
            len(entity_hits),
            len(semantic_hits),
            len(merged),
        )
        return list(merged.values())

    async def _entity_path(self, query: str) -> list[RetrievalCandidate]:
        entities = await self.resolver.match(query)
        if not entities:
            return []
        memories = await self.storage.find_memories_by_entities(
            [e.id for e in entities],
            limit=self.settings.retrieval_candidate_limit,
        )
        return [
            RetrievalCandidate(memory=m, similarity=ENTITY_MATCH_SIMILARITY, recall_method="entity")
            for m in memories
        ]

    async def _semantic_path(self, query: str) -> list[RetrievalCandidate]:
        vector = await self.embedder.embed(query)
        hits = await self.storage.search_memories(
            vector,
            limit=self.settings.retrieval_candidate_limit,
            score_threshold=self.settings.semantic_threshold,
        )
        return [
            RetrievalCandidate(memory=hit.memory, similarity=hit.score, recall_method="semantic")
            for hit in hits
        ]

    async def _record_recalls(
        self,
        ranked: list[RankedMemory],
        query: str,
        session_id: str,
    ) -> None:
        if not ranked:
            return
        recalls = [
            SessionRecall(
                session_id=session_id,
                memory_id=r.memory.id,
                rank=rank,
                score=r.score,
                similarity=r.similarity,
                recall_method=r.recall_method,
                query=query,
            )
            for rank, r in enumerate(ranked, start=1)
        ]
        try:
            for r in ranked:
                updated = await self.storage.increment_memory_counters(r.memory.id, recall_count=1)
                if updated is not None:
                    r.memory.recall_count = updated.recall_count
            await self.storage.log_session_recalls(recalls)
        except Exception as e:
            logger.warning("Failed to record recalls for session %s: %s", session_id, e)
