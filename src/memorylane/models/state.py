"""ExtractionState model - the per-file ingestion cursor."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ExtractionState(BaseModel):
    """Durable ingestion cursor for one transcript file.

    ``last_position`` only moves forward. A chunk that fails is remembered
    by ``failed_position`` so the next cycle retries it, and after enough
    failures it is skipped by advancing past it.

    Attributes:
        file_path: Transcript file path (the key).
        last_position: Byte offset up to which the file is fully processed.
        last_extracted_at: When the cursor last advanced.
        failed_position: Start of the chunk that last failed, if any.
        failed_attempts: Consecutive failures at ``failed_position``.
        last_error: Message of the most recent failure.
        skipped_chunks: Chunks given up on after repeated failures.
    """

    model_config = ConfigDict(extra="forbid")

    file_path: str = Field(description="Transcript file path")
    last_position: int = Field(default=0, ge=0, description="Processed byte offset")
    last_extracted_at: datetime | None = Field(default=None)
    failed_position: int | None = Field(default=None, ge=0)
    failed_attempts: int = Field(default=0, ge=0)
    last_error: str | None = Field(default=None)
    skipped_chunks: int = Field(default=0, ge=0)
