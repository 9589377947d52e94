"""Transcript ingestion: discovery, resumable reading, and chunking."""

from .chunking import Chunk, chunk_records, format_chunk, group_turns
from .source import (
    TranscriptBatch,
    TranscriptFile,
    TranscriptMessage,
    TranscriptRecord,
    TranscriptSource,
    parse_record,
)

__all__ = [
    "Chunk",
    "TranscriptBatch",
    "TranscriptFile",
    "TranscriptMessage",
    "TranscriptRecord",
    "TranscriptSource",
    "chunk_records",
    "format_chunk",
    "group_turns",
    "parse_record",
]
