"""Dual-path retrieval and composite ranking."""

from .engine import RetrievalEngine, RetrievalResult
from .ranking import (
    QUERY_TYPE_FAMILIES,
    RankedMemory,
    RankingEngine,
    RetrievalCandidate,
    query_type_matches,
)

__all__ = [
    "QUERY_TYPE_FAMILIES",
    "RankedMemory",
    "RankingEngine",
    "RetrievalCandidate",
    "RetrievalEngine",
    "RetrievalResult",
    "query_type_matches",
]
