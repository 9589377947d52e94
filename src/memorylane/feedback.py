"""Feedback ledger: per-memory positive and negative votes.

Votes accumulate on the memory's counters (read by ranking) and are
appended to the feedback event log. Feedback never changes a memory's
extraction confidence.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from memorylane.exceptions import NotFoundError
from memorylane.models import FeedbackEvent, FeedbackPolarity

if TYPE_CHECKING:
    from memorylane.storage import MemoryLaneStorage

logger = logging.getLogger(__name__)


class FeedbackCounts(BaseModel):
    """Current vote counters for one memory."""

    model_config = ConfigDict(extra="forbid")

    memory_id: str
    positive: int = Field(default=0, ge=0)
    negative: int = Field(default=0, ge=0)

    @property
    def net(self) -> int:
        return self.positive - self.negative


class FeedbackLedger:
    """Records feedback votes against memories.

    Example:
        ```python
        ledger = FeedbackLedger(storage)
        counts = await ledger.record_feedback("mem_a1b2c3d4e5f6", "positive")
        print(counts.net)
        ```
    """

    def __init__(self, storage: MemoryLaneStorage) -> None:
        self.storage = storage

    async def record_feedback(
        self,
        memory_id: str,
        polarity: FeedbackPolarity,
        session_id: str | None = None,
        query: str | None = None,
    ) -> FeedbackCounts:
        """Add one vote.

        Raises:
            NotFoundError: If the memory does not exist.
            ValueError: If polarity is not "positive" or "negative".
        """
        if polarity not in ("positive", "negative"):
            raise ValueError(f"Unknown feedback polarity: {polarity!r}")

        field = "positive_feedback" if polarity == "positive" else "negative_feedback"
        memory = await self.storage.increment_memory_counters(memory_id, **{field: 1})
        if memory is None:
            raise NotFoundError("Memory", memory_id)

        await self.storage.log_feedback(
            FeedbackEvent(
                memory_id=memory_id,
                polarity=polarity,
                session_id=session_id,
                query=query,
            )
        )
        logger.info(
            "Recorded %s feedback for %s (net %+d)",
            polarity,
            memory_id,
            memory.net_feedback,
        )
        return FeedbackCounts(
            memory_id=memory_id,
            positive=memory.positive_feedback,
            negative=memory.negative_feedback,
        )

    async def get_counts(self, memory_id: str) -> FeedbackCounts:
        """Current counters for a memory.

        Raises:
            NotFoundError: If the memory does not exist.
        """
        memory = await self.storage.get_memory(memory_id)
        if memory is None:
            raise NotFoundError("Memory", memory_id)
        return FeedbackCounts(
            memory_id=memory_id,
            positive=memory.positive_feedback,
            negative=memory.negative_feedback,
        )

    async def history(self, memory_id: str) -> list[FeedbackEvent]:
        """Feedback events for a memory, oldest first."""
        return await self.storage.get_feedback_events(memory_id)
