"""Instruction template for memory extraction."""

from __future__ import annotations

from memorylane.models import TYPE_PRIORITY, MemoryType

TYPE_DESCRIPTIONS: dict[MemoryType, str] = {
    MemoryType.CORRECTION: "the user corrected how the assistant behaved or what it assumed",
    MemoryType.DECISION: "an explicit choice between options, ideally with the reason",
    MemoryType.COMMITMENT: "a standing preference or rule the user wants followed",
    MemoryType.INSIGHT: "a non-obvious discovery about the problem or codebase",
    MemoryType.LEARNING: "new knowledge gained during the conversation",
    MemoryType.CONFIDENCE: "strong, stated confidence that an approach is right",
    MemoryType.PATTERN_SEED: "a behavior repeated often enough to formalize",
    MemoryType.CROSS_AGENT: "information other agents or tools should know",
    MemoryType.WORKFLOW_NOTE: "an observation about how work gets done",
    MemoryType.GAP: "a missing capability, limitation, or unresolved blocker",
}

EXTRACTION_TRIGGERS = (
    "Recovery sequences: an error, then a workaround, then success",
    'Corrections: "no, do it this other way"',
    "Enthusiasm: \"that's exactly what I wanted\"",
    'Negative reactions: "never do that again"',
    "The same request or workflow repeated several times",
    'Strong wording: "always", "never", "must", "critical"',
    'Stated preferences: "I prefer", "I like", "I want"',
)

_PRIORITY_HEADINGS = (("high", "HIGH PRIORITY"), ("medium", "MEDIUM PRIORITY"), ("low", "LOW PRIORITY"))


def _types_section() -> str:
    lines: list[str] = []
    for priority, heading in _PRIORITY_HEADINGS:
        lines.append(f"{heading}:")
        lines.extend(
            f"  - {memory_type.value}: {TYPE_DESCRIPTIONS[memory_type]}"
            for memory_type in MemoryType
            if TYPE_PRIORITY[memory_type] == priority
        )
        lines.append("")
    return "\n".join(lines).rstrip()


def build_extraction_instructions() -> str:
    """System instructions listing every memory type and trigger."""
    triggers = "\n".join(f"  - {t}" for t in EXTRACTION_TRIGGERS)
    return f"""You read conversations between a user and an AI assistant and pull out the moments worth remembering in future sessions: consequential decisions, corrections, insights, and recurring patterns.

MEMORY TYPES (only extract clear examples):

{_types_section()}

TRIGGERS TO WATCH FOR:
{triggers}

Respond with a JSON array and nothing else. Each element is an object with:
  - "type": one of the memory types above, spelled exactly
  - "title": a short summary, under 100 characters
  - "content": the full memory, self-contained and specific
  - "category": a short free-form topic such as "database" or "testing"
  - "confidence": a number from 0 to 1
  - "related_entities": an array of objects {{"type": "person"|"project"|"organization"|"location"|"technology", "raw": "<name as written>", "slug": "<normalized-name>"}}. Give two spellings of the same thing the same slug
  - "evidence": a short verbatim excerpt from the conversation
  - "reasoning": one sentence on why this is worth remembering

Return [] if nothing in the conversation is worth remembering. Do not invent facts that are not in the conversation."""


def build_extraction_prompt(conversation: str) -> str:
    """User prompt wrapping one formatted chunk."""
    return f"CONVERSATION:\n\n{conversation}\n\nExtract memories as a JSON array."
