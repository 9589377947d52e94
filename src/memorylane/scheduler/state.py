"""Per-file extraction cursors.

The cursor is loaded from storage when a file is processed and saved after
every chunk. ``last_position`` never moves backwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from memorylane.models import ExtractionState, utc_now

if TYPE_CHECKING:
    from memorylane.storage import MemoryLaneStorage

logger = logging.getLogger(__name__)


class ExtractionStateStore:
    """Durable cursor bookkeeping over the extraction_state collection."""

    def __init__(self, storage: MemoryLaneStorage) -> None:
        self.storage = storage

    async def load(self, file_path: str) -> ExtractionState:
        """The stored cursor for a file, or a fresh one at position 0."""
        state = await self.storage.get_extraction_state(file_path)
        return state or ExtractionState(file_path=file_path)

    async def position(self, file_path: str) -> int:
        return (await self.load(file_path)).last_position

    async def advance(self, state: ExtractionState, position: int) -> ExtractionState:
        """Move the cursor forward to ``position`` and clear failure tracking.

        A position at or before the current one leaves the cursor in place.
        """
        if position > state.last_position:
            state.last_position = position
            state.last_extracted_at = utc_now()
        if state.failed_position is not None and state.failed_position < state.last_position:
            state.failed_position = None
            state.failed_attempts = 0
            state.last_error = None
        await self.storage.save_extraction_state(state)
        return state

    async def record_failure(
        self,
        state: ExtractionState,
        position: int,
        error: str,
    ) -> ExtractionState:
        """Count a failure of the chunk starting at ``position``."""
        if state.failed_position == position:
            state.failed_attempts += 1
        else:
            state.failed_position = position
            state.failed_attempts = 1
        state.last_error = error
        await self.storage.save_extraction_state(state)
        return state

    async def skip(self, state: ExtractionState, end_position: int) -> ExtractionState:
        """Give up on the failing chunk and advance past it."""
        logger.warning(
            "Skipping chunk at %s of %s after %d failures: %s",
            state.failed_position,
            state.file_path,
            state.failed_attempts,
            state.last_error,
        )
        state.skipped_chunks += 1
        return await self.advance(state, end_position)

    async def list_states(self) -> list[ExtractionState]:
        return await self.storage.list_extraction_states()
