"""Audit records for retrieval and feedback events."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

RecallMethod = Literal["entity", "semantic", "hybrid"]
FeedbackPolarity = Literal["positive", "negative"]


class SessionRecall(BaseModel):
    """Immutable record of a memory surfaced by retrieval.

    Attributes:
        id: Unique record identifier.
        session_id: Session that issued the query.
        memory_id: Memory that was returned.
        rank: 1-based position in the ranked results.
        score: Final (feedback-adjusted) composite score.
        similarity: Raw similarity the memory was retrieved with.
        recall_method: Which retrieval path found the memory.
        query: Query text.
        recalled_at: When the memory was surfaced.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("rcl"))
    session_id: str
    memory_id: str
    rank: int = Field(ge=1)
    score: float = Field(ge=0.0)
    similarity: float = Field(ge=0.0, le=1.0)
    recall_method: RecallMethod
    query: str = ""
    recalled_at: datetime = Field(default_factory=utc_now)


class FeedbackEvent(BaseModel):
    """One feedback vote, appended to the ledger.

    Attributes:
        id: Unique event identifier.
        memory_id: Memory the vote applies to.
        polarity: "positive" or "negative".
        session_id: Session the vote came from, if known.
        query: Query the memory was surfaced for, if known.
        created_at: When the vote was recorded.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("fb"))
    memory_id: str
    polarity: FeedbackPolarity
    session_id: str | None = None
    query: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
