"""Memory extraction from conversation chunks."""

from .engine import (
    ExtractionEngine,
    ExtractionStats,
    ParseOutcome,
    adjust_confidence,
    parse_candidates,
    validate_candidate,
)
from .llm import is_retriable_error, run_agent_with_retry
from .prompts import EXTRACTION_TRIGGERS, build_extraction_instructions, build_extraction_prompt

__all__ = [
    "EXTRACTION_TRIGGERS",
    "ExtractionEngine",
    "ExtractionStats",
    "ParseOutcome",
    "adjust_confidence",
    "build_extraction_instructions",
    "build_extraction_prompt",
    "is_retriable_error",
    "parse_candidates",
    "run_agent_with_retry",
    "validate_candidate",
]
