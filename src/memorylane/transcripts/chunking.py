"""Group transcript records into extraction chunks.

A chunk is a run of consecutive messages sent to the extractor in one call.
Chunks are built from whole role turns (consecutive messages from the same
speaker) so a turn is never split across two extraction calls.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .source import TranscriptMessage, TranscriptRecord


@dataclass
class Chunk:
    """Messages for one extraction call and the byte range they span."""

    records: list[TranscriptRecord]

    @property
    def messages(self) -> list[TranscriptMessage]:
        return [r.message for r in self.records]

    @property
    def start_position(self) -> int:
        return self.records[0].start

    @property
    def end_position(self) -> int:
        return self.records[-1].end

    def __len__(self) -> int:
        return len(self.records)


def group_turns(records: Iterable[TranscriptRecord]) -> list[list[TranscriptRecord]]:
    """Split records into maximal same-role runs."""
    turns: list[list[TranscriptRecord]] = []
    for record in records:
        if turns and turns[-1][-1].message.role == record.message.role:
            turns[-1].append(record)
        else:
            turns.append([record])
    return turns


def chunk_records(
    records: Iterable[TranscriptRecord],
    min_messages: int = 10,
    max_messages: int = 15,
    include_partial: bool = True,
) -> list[Chunk]:
    """Pack whole turns greedily into chunks of at most ``max_messages``.

    A single turn longer than ``max_messages`` becomes its own chunk. The
    trailing chunk is kept when it reaches ``min_messages`` or when
    ``include_partial`` is set; otherwise it is left for a later read.

    Args:
        records: Records in file order.
        min_messages: Size a trailing chunk must reach unless partials are allowed.
        max_messages: Upper bound for chunks built from more than one turn.
        include_partial: Emit a short trailing chunk.

    Returns:
        Chunks in file order.
    """
    chunks: list[Chunk] = []
    current: list[TranscriptRecord] = []

    for turn in group_turns(records):
        if current and len(current) + len(turn) > max_messages:
            chunks.append(Chunk(current))
            current = []
        current.extend(turn)
        if len(current) >= max_messages:
            chunks.append(Chunk(current))
            current = []

    if current and (include_partial or len(current) >= min_messages):
        chunks.append(Chunk(current))
    return chunks


def format_chunk(messages: Iterable[TranscriptMessage]) -> str:
    """Render messages as ``User: ...`` / ``Assistant: ...`` blocks."""
    return "\n\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.text.strip()}" for m in messages
    )
