"""LLM-backed memory extraction for a chunk of conversation.

The model is asked for a JSON array. Each element is validated on its own
into one of the ten candidate variants; elements that fail are dropped and
counted rather than failing the whole chunk. Transport failures are retried
with backoff and, once the budget is spent, raised as ExtractionError so
the scheduler can mark the chunk failed.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from memorylane.exceptions import (
    ConfigurationError,
    ExtractionError,
    SchemaValidationError,
    TransportError,
)
from memorylane.models import MemoryCandidate, candidate_adapter
from memorylane.transcripts import TranscriptMessage, format_chunk

from .llm import run_agent_with_retry
from .prompts import build_extraction_instructions, build_extraction_prompt

if TYPE_CHECKING:
    from pydantic_ai import Agent

    from memorylane.config import Settings

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

STRONG_SIGNALS = re.compile(
    r"\b(always|never|must|critical|important|exactly|perfect|wrong|incorrect)\b",
    re.IGNORECASE,
)
HEDGING_SIGNALS = re.compile(r"\b(maybe|perhaps|might|could|unsure)\b", re.IGNORECASE)
SIGNAL_ADJUSTMENT = 0.1


@dataclass
class ParseOutcome:
    """Candidates recovered from one model response."""

    candidates: list[MemoryCandidate] = field(default_factory=list)
    rejected: int = 0
    malformed: bool = False


@dataclass
class ExtractionStats:
    """Running counters for observability."""

    chunks: int = 0
    failures: int = 0
    accepted: int = 0
    rejected: int = 0
    malformed_responses: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "chunks": self.chunks,
            "failures": self.failures,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "malformed_responses": self.malformed_responses,
        }


def _normalize_type(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace("-", "_").replace(" ", "_")
    return value


def validate_candidate(item: Any) -> MemoryCandidate:
    """Validate one decoded element into a typed candidate.

    Raises:
        SchemaValidationError: If the element is not a valid candidate.
    """
    if not isinstance(item, dict):
        raise SchemaValidationError("candidate", f"expected object, got {type(item).__name__}")

    data = {**item, "type": _normalize_type(item.get("type"))}
    try:
        return candidate_adapter.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "candidate"
        raise SchemaValidationError(location, first["msg"]) from e


def parse_candidates(text: str) -> ParseOutcome:
    """Recover candidates from a model response.

    The outermost JSON array is located (models sometimes wrap it in prose
    or code fences), decoded, and validated element by element.
    """
    match = _JSON_ARRAY.search(text or "")
    if match is None:
        logger.warning("No JSON array in extraction response")
        return ParseOutcome(malformed=True)

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("Extraction response is not valid JSON: %s", e)
        return ParseOutcome(malformed=True)

    if not isinstance(data, list):
        return ParseOutcome(malformed=True)

    outcome = ParseOutcome()
    for index, item in enumerate(data):
        try:
            outcome.candidates.append(validate_candidate(item))
        except SchemaValidationError as e:
            outcome.rejected += 1
            logger.debug("Dropping candidate %d: %s", index, e.message)
    return outcome


def adjust_confidence(candidate: MemoryCandidate) -> MemoryCandidate:
    """Shift confidence by type priority and by the wording of the content.

    High/medium/low priority types gain 0.15/0.10/0.05. Emphatic wording
    ("always", "must", "wrong") adds 0.1 and hedging ("maybe", "might")
    subtracts 0.1. The result stays within [0, 1].
    """
    score = candidate.confidence + candidate.memory_type.confidence_boost / 100
    if STRONG_SIGNALS.search(candidate.content):
        score += SIGNAL_ADJUSTMENT
    if HEDGING_SIGNALS.search(candidate.content):
        score -= SIGNAL_ADJUSTMENT
    return candidate.model_copy(update={"confidence": min(max(score, 0.0), 1.0)})


class ExtractionEngine:
    """Turns a chunk of messages into validated memory candidates.

    Example:
        ```python
        engine = ExtractionEngine(settings)
        candidates = await engine.extract(chunk.messages)
        print(engine.stats.rejected)
        ```
    """

    def __init__(self, settings: Settings | None = None, agent: Agent[Any, str] | None = None) -> None:
        """Initialize the engine.

        Args:
            settings: Settings for model, timeout, and retry budget.
            agent: Preconfigured agent (tests inject a fake). Built lazily if None.
        """
        if settings is None:
            from memorylane.config import settings as default_settings

            settings = default_settings
        self.settings = settings
        self._agent = agent
        self.stats = ExtractionStats()

    def _get_agent(self) -> Agent[Any, str]:
        if self._agent is None:
            from pydantic_ai import Agent

            try:
                self._agent = Agent(
                    self.settings.extraction_model,
                    output_type=str,
                    instructions=build_extraction_instructions(),
                )
            except Exception as e:
                raise ConfigurationError(
                    f"Cannot create extraction agent for {self.settings.extraction_model}: {e}"
                ) from e
        return self._agent

    async def extract(self, messages: Sequence[TranscriptMessage]) -> list[MemoryCandidate]:
        """Extract candidates from one chunk.

        Returns:
            Valid candidates, possibly empty.

        Raises:
            ExtractionError: If the model could not be reached after retries.
            ConfigurationError: If the agent cannot be created.
        """
        if not messages:
            return []

        self.stats.chunks += 1
        prompt = build_extraction_prompt(format_chunk(messages))

        try:
            output = await run_agent_with_retry(
                self._get_agent(),
                prompt,
                timeout_seconds=self.settings.llm_timeout_seconds,
                max_retries=self.settings.llm_max_retries,
                initial_delay=self.settings.llm_initial_delay,
                max_delay=self.settings.llm_max_delay,
            )
        except TransportError as e:
            self.stats.failures += 1
            raise ExtractionError(
                f"Extraction failed for a chunk of {len(messages)} messages: {e.message}",
                retriable=e.retriable,
            ) from e

        outcome = parse_candidates(str(output))
        if outcome.malformed:
            self.stats.malformed_responses += 1

        candidates = outcome.candidates
        if self.settings.confidence_adjustment_enabled:
            candidates = [adjust_confidence(c) for c in candidates]

        self.stats.accepted += len(candidates)
        self.stats.rejected += outcome.rejected
        if outcome.rejected:
            logger.info(
                "Extraction kept %d candidates, rejected %d",
                len(candidates),
                outcome.rejected,
            )
        return candidates
