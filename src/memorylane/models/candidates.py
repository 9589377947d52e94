"""Extraction candidates: the typed boundary between LLM output and Memory.

The extractor returns loosely-shaped JSON objects. Each one is validated into
exactly one of ten candidate classes, selected by its ``type`` field. Anything
that does not validate is dropped by the caller and counted as rejected.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)

from .memory import Memory, MemoryType, SourceChunk


class EntityHint(BaseModel):
    """An entity the extractor says a candidate refers to.

    Accepts either a bare string or an object such as
    ``{"type": "project", "raw": "Atlas", "slug": "atlas"}``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1, validation_alias=AliasChoices("raw", "name", "text"))
    type: str | None = Field(default=None, description="Entity type suggested by the model")
    slug: str | None = Field(default=None, description="Slug suggested by the model")


class CandidateBase(BaseModel):
    """Fields shared by every candidate variant."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    title: str = Field(min_length=1, description="Short summary")
    content: str = Field(min_length=1, description="Full statement")
    category: str = Field(min_length=1, description="Free-form classification")
    confidence: float = Field(
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("confidence", "confidence_score", "confidence_pct"),
        description="Model confidence, normalized to 0.0-1.0",
    )
    related_entities: list[EntityHint] = Field(default_factory=list)
    evidence: str | None = Field(
        default=None,
        validation_alias=AliasChoices("evidence", "source_chunk", "excerpt"),
        description="Verbatim excerpt supporting the candidate",
    )
    reasoning: str | None = Field(default=None, description="Why the model extracted this")

    @field_validator("title")
    @classmethod
    def _truncate_title(cls, value: str) -> str:
        return value[:200]

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        """Accept 0-1 floats, 0-100 percentages, and numeric strings."""
        if isinstance(value, bool):
            raise ValueError("confidence must be a number")
        if isinstance(value, str):
            value = float(value.strip().rstrip("%"))
        if not isinstance(value, int | float) or math.isnan(value):
            raise ValueError("confidence must be a number")
        number = float(value)
        if 1.0 < number <= 100.0:
            number /= 100.0
        return min(max(number, 0.0), 1.0)

    @field_validator("related_entities", mode="before")
    @classmethod
    def _coerce_entities(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("related_entities must be an array")
        return [{"raw": item} if isinstance(item, str) else item for item in value]

    @property
    def memory_type(self) -> MemoryType:
        return MemoryType(self.type)  # type: ignore[attr-defined]


class CorrectionCandidate(CandidateBase):
    type: Literal["correction"]


class DecisionCandidate(CandidateBase):
    type: Literal["decision"]


class CommitmentCandidate(CandidateBase):
    type: Literal["commitment"]


class InsightCandidate(CandidateBase):
    type: Literal["insight"]


class LearningCandidate(CandidateBase):
    type: Literal["learning"]


class ConfidenceCandidate(CandidateBase):
    type: Literal["confidence"]


class PatternSeedCandidate(CandidateBase):
    type: Literal["pattern_seed"]


class CrossAgentCandidate(CandidateBase):
    type: Literal["cross_agent"]


class WorkflowNoteCandidate(CandidateBase):
    type: Literal["workflow_note"]


class GapCandidate(CandidateBase):
    type: Literal["gap"]


MemoryCandidate = Annotated[
    Union[
        CorrectionCandidate,
        DecisionCandidate,
        CommitmentCandidate,
        InsightCandidate,
        LearningCandidate,
        ConfidenceCandidate,
        PatternSeedCandidate,
        CrossAgentCandidate,
        WorkflowNoteCandidate,
        GapCandidate,
    ],
    Field(discriminator="type"),
]

candidate_adapter: TypeAdapter[MemoryCandidate] = TypeAdapter(MemoryCandidate)


class ResolvedCandidate(BaseModel):
    """A validated candidate annotated with resolved entity ids.

    Attributes:
        candidate: The validated extraction candidate.
        entity_ids: Ordered entity ids from the resolver.
        source_chunk: Transcript range the candidate came from.
    """

    model_config = ConfigDict(extra="forbid")

    candidate: MemoryCandidate
    entity_ids: list[str] = Field(default_factory=list)
    source_chunk: SourceChunk | None = None

    def to_memory(self, embedding: list[float]) -> Memory:
        """Build a new Memory for a first observation."""
        candidate = self.candidate
        return Memory(
            type=candidate.memory_type,
            title=candidate.title,
            content=candidate.content,
            category=candidate.category,
            confidence_score=candidate.confidence,
            related_entities=self.entity_ids,
            embedding=embedding,
            source_chunk=self.source_chunk,
            evidence=[candidate.evidence] if candidate.evidence else [],
            reasoning=candidate.reasoning,
        )
