"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from memorylane.models import FeedbackPolarity, RecallMethod
from memorylane.retrieval import RetrievalResult


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status.
        version: API version.
        storage_connected: Whether the service (and its storage) is up.
        scheduler_running: Whether periodic extraction is active.
        embedder_available: Whether the embedding provider answers.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    storage_connected: bool
    scheduler_running: bool = False
    embedder_available: bool = False


class RetrieveRequest(BaseModel):
    """Request body for retrieval.

    Attributes:
        query: Natural language query.
        limit: Maximum results (server default if omitted).
        session_id: Session to attribute recalls to.
    """

    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=1, description="Search query")
    limit: int | None = Field(default=None, ge=1, le=100, description="Maximum results")
    session_id: str | None = Field(default=None, description="Session for recall auditing")


class RetrieveResponse(BaseModel):
    """Ranked retrieval results."""

    model_config = ConfigDict(extra="forbid")

    query: str
    results: list[RetrievalResult]
    count: int = Field(ge=0)
    session_id: str | None = None


class FeedbackRequest(BaseModel):
    """Request body for a feedback vote."""

    model_config = ConfigDict(extra="forbid")

    polarity: FeedbackPolarity = Field(description="positive or negative")
    session_id: str | None = Field(default=None, description="Session the vote came from")
    query: str | None = Field(default=None, description="Query the memory was returned for")


class FeedbackResponse(BaseModel):
    """Counters after a vote."""

    model_config = ConfigDict(extra="forbid")

    memory_id: str
    positive: int = Field(ge=0)
    negative: int = Field(ge=0)
    net: int


class RecallRecordResponse(BaseModel):
    """One session recall audit record."""

    model_config = ConfigDict(extra="forbid")

    id: str
    session_id: str
    memory_id: str
    rank: int
    score: float
    similarity: float
    recall_method: RecallMethod
    query: str
    recalled_at: datetime


class RecallsResponse(BaseModel):
    """Recall audit records for a memory or a session."""

    model_config = ConfigDict(extra="forbid")

    recalls: list[RecallRecordResponse]
    count: int = Field(ge=0)
