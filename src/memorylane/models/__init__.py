"""Domain models for memorylane.

Memory Types:
    - Memory: A durable, typed fact with counters and provenance
    - MemoryType: The ten memory types with their priority bands

Extraction Boundary:
    - MemoryCandidate: Tagged union over the ten candidate variants
    - ResolvedCandidate: Candidate annotated with entity ids

Supporting Types:
    - Entity, EntityMention: Resolved referents and raw mentions
    - ExtractionState: Per-file ingestion cursor
    - SessionRecall, FeedbackEvent: Audit records
"""

from .base import generate_id, slugify, utc_now
from .candidates import (
    CandidateBase,
    CommitmentCandidate,
    ConfidenceCandidate,
    CorrectionCandidate,
    CrossAgentCandidate,
    DecisionCandidate,
    EntityHint,
    GapCandidate,
    InsightCandidate,
    LearningCandidate,
    MemoryCandidate,
    PatternSeedCandidate,
    ResolvedCandidate,
    WorkflowNoteCandidate,
    candidate_adapter,
)
from .entity import Entity, EntityMention, EntityType
from .memory import TYPE_PRIORITY, Memory, MemoryType, SourceChunk
from .recall import FeedbackEvent, FeedbackPolarity, RecallMethod, SessionRecall
from .state import ExtractionState

__all__ = [
    # Helpers
    "generate_id",
    "slugify",
    "utc_now",
    # Memory
    "Memory",
    "MemoryType",
    "SourceChunk",
    "TYPE_PRIORITY",
    # Candidates
    "CandidateBase",
    "CommitmentCandidate",
    "ConfidenceCandidate",
    "CorrectionCandidate",
    "CrossAgentCandidate",
    "DecisionCandidate",
    "EntityHint",
    "GapCandidate",
    "InsightCandidate",
    "LearningCandidate",
    "MemoryCandidate",
    "PatternSeedCandidate",
    "ResolvedCandidate",
    "WorkflowNoteCandidate",
    "candidate_adapter",
    # Entities
    "Entity",
    "EntityMention",
    "EntityType",
    # State and audit
    "ExtractionState",
    "FeedbackEvent",
    "FeedbackPolarity",
    "RecallMethod",
    "SessionRecall",
]
