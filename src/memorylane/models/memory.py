"""Memory model - a durable, typed fact mined from conversation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import generate_id, utc_now

MAX_EVIDENCE_ITEMS = 20


class MemoryType(str, Enum):
    """Closed set of memory types the extractor may produce."""

    CORRECTION = "correction"
    DECISION = "decision"
    COMMITMENT = "commitment"
    INSIGHT = "insight"
    LEARNING = "learning"
    CONFIDENCE = "confidence"
    PATTERN_SEED = "pattern_seed"
    CROSS_AGENT = "cross_agent"
    WORKFLOW_NOTE = "workflow_note"
    GAP = "gap"

    @property
    def priority(self) -> str:
        """Priority band: "high", "medium", or "low"."""
        return TYPE_PRIORITY[self]

    @property
    def is_high_priority(self) -> bool:
        return TYPE_PRIORITY[self] == "high"

    @property
    def confidence_boost(self) -> int:
        """Percentage points added to extracted confidence for this type."""
        return PRIORITY_CONFIDENCE_BOOST[TYPE_PRIORITY[self]]


TYPE_PRIORITY: dict[MemoryType, str] = {
    MemoryType.CORRECTION: "high",
    MemoryType.DECISION: "high",
    MemoryType.COMMITMENT: "high",
    MemoryType.INSIGHT: "medium",
    MemoryType.LEARNING: "medium",
    MemoryType.CONFIDENCE: "medium",
    MemoryType.PATTERN_SEED: "low",
    MemoryType.CROSS_AGENT: "low",
    MemoryType.WORKFLOW_NOTE: "low",
    MemoryType.GAP: "low",
}

PRIORITY_CONFIDENCE_BOOST: dict[str, int] = {"high": 15, "medium": 10, "low": 5}


class SourceChunk(BaseModel):
    """Where in a transcript a memory was first observed.

    Attributes:
        file_path: Transcript file the chunk came from.
        start_position: Byte offset of the first message in the chunk.
        end_position: Byte offset just past the last message in the chunk.
    """

    model_config = ConfigDict(extra="forbid")

    file_path: str = Field(description="Transcript file path")
    start_position: int = Field(ge=0, description="Byte offset where the chunk starts")
    end_position: int = Field(ge=0, description="Byte offset where the chunk ends")


class Memory(BaseModel):
    """A durable fact extracted from conversation.

    Memories are created on first observation and merged (never rewritten)
    on later near-duplicate observations: ``content`` is first-write-wins,
    so the stored embedding always matches the stored content.

    Attributes:
        id: Immutable identifier.
        type: One of the ten memory types.
        title: Short summary.
        content: Full statement of the fact.
        category: Free-form classification.
        confidence_score: Extraction confidence, 0.0-1.0.
        related_entities: Ordered, de-duplicated entity ids.
        embedding: Vector for ``content`` (not persisted in the payload).
        source_chunk: First transcript range this was observed in.
        evidence: Supporting excerpts accumulated across observations.
        reasoning: Extractor's explanation, if given.
        times_observed: How many times the extractor produced this fact.
        formed_at: First observation time.
        last_observed_at: Most recent observation time.
        recall_count: Times surfaced by retrieval.
        positive_feedback: Accumulated positive votes.
        negative_feedback: Accumulated negative votes.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("mem"))
    type: MemoryType = Field(description="Memory type")
    title: str = Field(min_length=1, max_length=200, description="Short summary")
    content: str = Field(min_length=1, description="Full statement of the memory")
    category: str = Field(default="general", description="Free-form classification")
    confidence_score: float = Field(ge=0.0, le=1.0, description="Extraction confidence")
    related_entities: list[str] = Field(
        default_factory=list,
        description="Ordered, de-duplicated entity ids",
    )
    embedding: list[float] | None = Field(
        default=None,
        description="Vector embedding of content",
    )
    source_chunk: SourceChunk | None = Field(
        default=None,
        description="Transcript range of first observation",
    )
    evidence: list[str] = Field(
        default_factory=list,
        description="Supporting excerpts",
    )
    reasoning: str | None = Field(default=None, description="Extractor reasoning")
    times_observed: int = Field(default=1, ge=1, description="Observation count")
    formed_at: datetime = Field(default_factory=utc_now)
    last_observed_at: datetime = Field(default_factory=utc_now)
    recall_count: int = Field(default=0, ge=0, description="Times surfaced by retrieval")
    positive_feedback: int = Field(default=0, ge=0)
    negative_feedback: int = Field(default=0, ge=0)

    @field_validator("related_entities")
    @classmethod
    def _dedupe_entities(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def net_feedback(self) -> int:
        """Positive minus negative feedback votes."""
        return self.positive_feedback - self.negative_feedback

    def merge_observation(
        self,
        *,
        related_entities: list[str],
        confidence: float,
        evidence: list[str],
        observed_at: datetime | None = None,
    ) -> None:
        """Fold a near-duplicate observation into this memory.

        Content, title, type, and embedding are left untouched.

        Args:
            related_entities: Entity ids from the new observation (unioned in order).
            confidence: Confidence of the new observation (max is kept).
            evidence: Excerpts from the new observation (appended, capped).
            observed_at: Observation time, defaults to now.
        """
        self.times_observed += 1
        self.last_observed_at = observed_at or utc_now()
        self.related_entities = list(dict.fromkeys([*self.related_entities, *related_entities]))
        self.confidence_score = max(self.confidence_score, confidence)
        for excerpt in evidence:
            if excerpt and excerpt not in self.evidence:
                self.evidence.append(excerpt)
        if len(self.evidence) > MAX_EVIDENCE_ITEMS:
            self.evidence = self.evidence[-MAX_EVIDENCE_ITEMS:]
