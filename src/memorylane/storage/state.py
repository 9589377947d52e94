"""Extraction cursor persistence for memorylane storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from memorylane.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from memorylane.models import ExtractionState


class StateMixin:
    """Mixin persisting one ExtractionState point per transcript file."""

    _collection_name: Any
    _point_id: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _upsert_record: Any
    _scroll_all: Any
    client: Any

    @qdrant_retry
    async def get_extraction_state(self, file_path: str) -> ExtractionState | None:
        from memorylane.models import ExtractionState

        points = await self.client.retrieve(
            collection_name=self._collection_name("extraction_state"),
            ids=[self._point_id("extraction_state", file_path)],
            with_payload=True,
        )
        if not points or points[0].payload is None:
            return None
        state: ExtractionState = self._payload_to_model(points[0].payload, ExtractionState)
        return state

    @qdrant_retry
    async def save_extraction_state(self, state: ExtractionState) -> None:
        await self._upsert_record(
            "extraction_state",
            state.file_path,
            self._model_to_payload(state),
        )

    @qdrant_retry
    async def list_extraction_states(self) -> list[ExtractionState]:
        from memorylane.models import ExtractionState

        points = await self._scroll_all("extraction_state")
        return [self._payload_to_model(p.payload, ExtractionState) for p in points if p.payload]
