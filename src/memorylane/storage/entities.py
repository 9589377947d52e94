"""Entity registry operations for memorylane storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from memorylane.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from memorylane.models import Entity

# Payload-only field derived from aliases; stripped on read.
ALIAS_KEYS_FIELD = "alias_keys"


class EntityMixin:
    """Mixin providing entity registry operations for MemoryLaneStorage.

    Entities are keyed by id. ``alias_keys`` (the slugs of every alias) is
    written alongside the payload so lookups by slug or alias are a single
    filtered scroll.
    """

    _collection_name: Any
    _point_id: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _upsert_record: Any
    _scroll_all: Any
    client: Any

    @qdrant_retry
    async def store_entity(self, entity: Entity) -> str:
        """Create or replace an entity."""
        payload = self._model_to_payload(entity)
        payload[ALIAS_KEYS_FIELD] = entity.alias_keys
        await self._upsert_record("entities", entity.id, payload)
        return entity.id

    @qdrant_retry
    async def get_entity(self, entity_id: str) -> Entity | None:
        from memorylane.models import Entity

        points = await self.client.retrieve(
            collection_name=self._collection_name("entities"),
            ids=[self._point_id("entities", entity_id)],
            with_payload=True,
        )
        if not points or points[0].payload is None:
            return None
        entity: Entity = self._payload_to_model(points[0].payload, Entity, (ALIAS_KEYS_FIELD,))
        return entity

    @qdrant_retry
    async def find_entities_by_key(self, key: str) -> list[Entity]:
        """Entities whose slug or any alias slug equals ``key``."""
        from memorylane.models import Entity

        points = await self._scroll_all(
            "entities",
            models.Filter(
                should=[
                    models.FieldCondition(key="slug", match=models.MatchValue(value=key)),
                    models.FieldCondition(
                        key=ALIAS_KEYS_FIELD, match=models.MatchValue(value=key)
                    ),
                ]
            ),
        )
        return [
            self._payload_to_model(p.payload, Entity, (ALIAS_KEYS_FIELD,))
            for p in points
            if p.payload
        ]

    @qdrant_retry
    async def list_entities(self) -> list[Entity]:
        from memorylane.models import Entity

        points = await self._scroll_all("entities")
        return [
            self._payload_to_model(p.payload, Entity, (ALIAS_KEYS_FIELD,))
            for p in points
            if p.payload
        ]

    @qdrant_retry
    async def count_entities(self) -> int:
        result = await self.client.count(
            collection_name=self._collection_name("entities"),
            exact=True,
        )
        return int(result.count)
