"""Append-only audit logs: session recalls and feedback events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from memorylane.storage.base import PLACEHOLDER_VECTOR
from memorylane.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from memorylane.models import FeedbackEvent, SessionRecall


class RecallMixin:
    """Mixin providing recall and feedback audit operations.

    Records are written once under their own id and never updated.
    """

    _collection_name: Any
    _point_id: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _upsert_record: Any
    _scroll_all: Any
    client: Any

    @qdrant_retry
    async def log_session_recalls(self, recalls: list[SessionRecall]) -> int:
        """Write a batch of recall records.

        Returns:
            Number of records written.
        """
        if not recalls:
            return 0
        await self.client.upsert(
            collection_name=self._collection_name("session_recalls"),
            points=[
                models.PointStruct(
                    id=self._point_id("session_recalls", recall.id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._model_to_payload(recall),
                )
                for recall in recalls
            ],
        )
        return len(recalls)

    @qdrant_retry
    async def get_session_recalls(
        self,
        session_id: str | None = None,
        memory_id: str | None = None,
    ) -> list[SessionRecall]:
        """Recall records filtered by session and/or memory, oldest first."""
        from memorylane.models import SessionRecall

        conditions = [
            models.FieldCondition(key=field, match=models.MatchValue(value=value))
            for field, value in (("session_id", session_id), ("memory_id", memory_id))
            if value is not None
        ]
        points = await self._scroll_all(
            "session_recalls",
            models.Filter(must=conditions) if conditions else None,
        )
        recalls = [self._payload_to_model(p.payload, SessionRecall) for p in points if p.payload]
        return sorted(recalls, key=lambda r: (r.recalled_at, r.rank))

    @qdrant_retry
    async def log_feedback(self, event: FeedbackEvent) -> str:
        await self._upsert_record(
            "feedback_events",
            event.id,
            self._model_to_payload(event),
        )
        return event.id

    @qdrant_retry
    async def get_feedback_events(self, memory_id: str) -> list[FeedbackEvent]:
        from memorylane.models import FeedbackEvent

        points = await self._scroll_all(
            "feedback_events",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="memory_id", match=models.MatchValue(value=memory_id)
                    )
                ]
            ),
        )
        events = [self._payload_to_model(p.payload, FeedbackEvent) for p in points if p.payload]
        return sorted(events, key=lambda e: e.created_at)
