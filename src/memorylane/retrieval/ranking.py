"""Composite ranking of retrieval candidates.

Ranking is pure: it reads candidate memories and their raw similarity and
returns a new ordered list without touching storage.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from memorylane.config import RankingWeights
from memorylane.models import Memory, MemoryType, RecallMethod

# Query keyword families and the memory types they favour
QUERY_TYPE_FAMILIES: tuple[tuple[re.Pattern[str], frozenset[MemoryType]], ...] = (
    (
        re.compile(r"\b(mistakes?|wrong|errors?)\b", re.IGNORECASE),
        frozenset({MemoryType.CORRECTION, MemoryType.GAP}),
    ),
    (
        re.compile(r"\b(decided|chose|choose|decisions?)\b", re.IGNORECASE),
        frozenset({MemoryType.DECISION}),
    ),
    (
        re.compile(r"\b(always|usually|prefers?|preferences?)\b", re.IGNORECASE),
        frozenset({MemoryType.COMMITMENT, MemoryType.PATTERN_SEED}),
    ),
    (
        re.compile(r"\b(learned|learnt|realized|realised)\b", re.IGNORECASE),
        frozenset({MemoryType.LEARNING, MemoryType.INSIGHT}),
    ),
)


@dataclass
class RetrievalCandidate:
    """A memory found by retrieval, before ranking.

    Attributes:
        memory: The candidate memory.
        similarity: Raw similarity (1.0 for entity-only matches).
        recall_method: Which path(s) found it.
    """

    memory: Memory
    similarity: float
    recall_method: RecallMethod = "semantic"


@dataclass
class RankedMemory:
    """A candidate with its composite score.

    Attributes:
        memory: The ranked memory.
        score: Final feedback-adjusted score (never negative).
        base_score: Weighted score before feedback.
        similarity: Raw similarity carried through from retrieval.
        recall_method: Which path(s) found it.
        signals: Individual signal values used for the score.
    """

    memory: Memory
    score: float
    base_score: float
    similarity: float
    recall_method: RecallMethod
    signals: dict[str, float] = field(default_factory=dict)


def query_type_matches(query: str) -> list[frozenset[MemoryType]]:
    """Type sets of every keyword family present in ``query``."""
    return [types for pattern, types in QUERY_TYPE_FAMILIES if pattern.search(query)]


class RankingEngine:
    """Weighted, feedback-adjusted scoring.

    Example:
        ```python
        engine = RankingEngine(settings.ranking_weights)
        ranked = engine.rank(candidates, "what mistake did we make")
        best = ranked[0].memory
        ```
    """

    def __init__(self, weights: RankingWeights | None = None) -> None:
        self.weights = weights or RankingWeights()

    def recency_factor(self, last_observed_at: datetime, now: datetime) -> float:
        """Exponential decay by days since the last observation, in [0, 1]."""
        if last_observed_at.tzinfo is None:
            last_observed_at = last_observed_at.replace(tzinfo=UTC)
        age_days = (now - last_observed_at).total_seconds() / 86400.0
        if age_days <= 0:
            return 1.0
        return math.exp(-age_days / self.weights.recency_decay_days)

    def observation_factor(self, times_observed: int) -> float:
        return min(times_observed / self.weights.observation_saturation, 1.0)

    def type_factor(self, memory_type: MemoryType) -> float:
        return 1.0 if memory_type.is_high_priority else 0.0

    def query_boost(self, memory_type: MemoryType, families: list[frozenset[MemoryType]]) -> float:
        """Raw increment from query keyword families that favour this type."""
        hits = sum(1 for types in families if memory_type in types)
        return hits * self.weights.query_type_boost

    def score(
        self,
        candidate: RetrievalCandidate,
        now: datetime,
        families: list[frozenset[MemoryType]] | None = None,
    ) -> RankedMemory:
        """Score one candidate."""
        w = self.weights
        memory = candidate.memory

        similarity = min(max(candidate.similarity, 0.0), 1.0)
        recency = self.recency_factor(memory.last_observed_at, now)
        observation = self.observation_factor(memory.times_observed)
        type_factor = self.type_factor(memory.type)
        query_boost = self.query_boost(memory.type, families or [])

        base = (
            similarity * w.similarity
            + recency * w.recency
            + memory.confidence_score * w.confidence
            + observation * w.observation
            + type_factor * w.type_boost
            + query_boost
        )
        feedback = memory.net_feedback * w.feedback_increment
        final = max(0.0, base + feedback)

        return RankedMemory(
            memory=memory,
            score=final,
            base_score=base,
            similarity=similarity,
            recall_method=candidate.recall_method,
            signals={
                "similarity": similarity,
                "recency": recency,
                "confidence": memory.confidence_score,
                "observation": observation,
                "type": type_factor,
                "query_boost": query_boost,
                "feedback": feedback,
            },
        )

    def rank(
        self,
        candidates: Sequence[RetrievalCandidate],
        query: str = "",
        now: datetime | None = None,
    ) -> list[RankedMemory]:
        """Score and order candidates, best first.

        Ties on score are broken by most recent observation, then by id.
        """
        now = now or datetime.now(UTC)
        families = query_type_matches(query) if query else []
        ranked = [self.score(c, now, families) for c in candidates]
        ranked.sort(key=lambda r: r.memory.id)
        ranked.sort(key=lambda r: (r.score, r.memory.last_observed_at), reverse=True)
        return ranked
