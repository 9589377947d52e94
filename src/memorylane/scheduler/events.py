"""Extraction progress events.

The scheduler publishes events to an EventBroker instead of calling back
into consumers. Each subscriber owns a bounded asyncio.Queue; a slow
subscriber loses its oldest events rather than blocking extraction.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from memorylane.models import utc_now

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100

EventKind = Literal[
    "run_started",
    "run_skipped",
    "file_started",
    "chunk_processed",
    "chunk_failed",
    "chunk_skipped",
    "file_completed",
    "run_completed",
    "run_aborted",
]


class ExtractionEvent(BaseModel):
    """One progress notification from the scheduler."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: EventKind
    run_id: str
    file_path: str | None = None
    position: int | None = Field(default=None, ge=0, description="Byte offset the event refers to")
    created: int = Field(default=0, ge=0, description="Memories created")
    merged: int = Field(default=0, ge=0, description="Memories merged")
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class EventBroker:
    """Fan-out of extraction events to subscriber queues."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._subscribers: list[asyncio.Queue[ExtractionEvent]] = []
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue[ExtractionEvent]:
        """Register a new subscriber queue."""
        queue: asyncio.Queue[ExtractionEvent] = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else self.queue_size
        )
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ExtractionEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: ExtractionEvent) -> None:
        """Deliver an event to every subscriber without blocking."""
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
                self.dropped += 1
                logger.warning("Event queue full; dropped oldest event for a subscriber")
            queue.put_nowait(event)

    @staticmethod
    def drain(queue: asyncio.Queue[ExtractionEvent]) -> list[ExtractionEvent]:
        """Remove and return every event currently in ``queue``."""
        events: list[ExtractionEvent] = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return events
