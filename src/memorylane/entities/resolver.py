"""Entity resolution against the persistent entity registry.

Each mention is normalized to a slug and looked up by slug or alias key.
A hit links to the existing entity (recording the surface form as a new
alias when no other entity already claims it); a miss creates a new entity.
Registry mutation is serialized so two concurrent candidates mentioning the
same new name cannot create two entities for it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from memorylane.exceptions import ConflictError, NotFoundError
from memorylane.models import (
    Entity,
    EntityMention,
    MemoryCandidate,
    ResolvedCandidate,
    SourceChunk,
    utc_now,
)

from .mentions import find_mentions, find_query_entities

if TYPE_CHECKING:
    from memorylane.storage import MemoryLaneStorage

logger = logging.getLogger(__name__)


def _most_recent(entities: list[Entity]) -> Entity:
    """Pick the entity with the latest activity; id breaks exact ties."""
    return max(entities, key=lambda e: (e.last_seen_at, e.id))


class EntityResolver:
    """Create-or-link resolution of entity mentions.

    Example:
        ```python
        resolver = EntityResolver(storage)
        resolved = await resolver.resolve(candidate, source_chunk)
        print(resolved.entity_ids)
        ```
    """

    def __init__(self, storage: MemoryLaneStorage) -> None:
        self.storage = storage
        self._lock = asyncio.Lock()

    async def resolve(
        self,
        candidate: MemoryCandidate,
        source_chunk: SourceChunk | None = None,
    ) -> ResolvedCandidate:
        """Annotate a candidate with the ids of the entities it mentions.

        Mentions come from the candidate's title, content, and the
        extractor's ``related_entities`` hints. The registry is updated as a
        side effect.
        """
        text = f"{candidate.title}\n{candidate.content}"
        mentions = find_mentions(text, candidate.related_entities)

        entity_ids: list[str] = []
        for mention in mentions:
            entity = await self.resolve_mention(mention)
            if entity.id not in entity_ids:
                entity_ids.append(entity.id)

        return ResolvedCandidate(
            candidate=candidate,
            entity_ids=entity_ids,
            source_chunk=source_chunk,
        )

    async def resolve_mention(self, mention: EntityMention) -> Entity:
        """Link a mention to an existing entity or create a new one."""
        async with self._lock:
            matches = await self.storage.find_entities_by_key(mention.key)
            if matches:
                entity = _most_recent(matches)
                if len(matches) > 1:
                    logger.info(
                        "Mention %r matches %d entities; linking to %s",
                        mention.text,
                        len(matches),
                        entity.slug,
                    )
                await self._link(entity, mention)
                return entity
            return await self._create(mention)

    async def _link(self, entity: Entity, mention: EntityMention) -> None:
        # The mention's key already belongs to this entity, so a new surface
        # form never introduces a key another entity could claim.
        if entity.add_alias(mention.text):
            logger.debug("New alias %r for entity %s", mention.text, entity.slug)
        entity.mention_count += 1
        entity.last_seen_at = utc_now()
        await self.storage.store_entity(entity)

    async def _create(self, mention: EntityMention) -> Entity:
        slug = await self._available_slug(mention)
        entity = Entity(slug=slug, name=mention.text, type=mention.entity_type)
        await self.storage.store_entity(entity)
        logger.debug("Created %s entity %s", entity.type, entity.slug)
        return entity

    async def _available_slug(self, mention: EntityMention) -> str:
        """The mention's key, or ``<key>-<type>`` if the key is already a slug.

        Raises:
            ConflictError: If both forms are taken.
        """
        for slug in (mention.key, f"{mention.key}-{mention.entity_type}"[:100]):
            if not await self._slug_taken(slug):
                return slug
        raise ConflictError(f"No free slug for entity {mention.text!r}")

    async def _slug_taken(self, slug: str) -> bool:
        existing = await self.storage.find_entities_by_key(slug)
        return any(e.slug == slug for e in existing)

    async def match(self, text: str) -> list[Entity]:
        """Find existing entities mentioned in ``text`` without mutating anything.

        This is the query path: no entities are created, no aliases are
        added, and no counters change.
        """
        found: dict[str, Entity] = {}
        for mention in find_query_entities(text):
            matches = await self.storage.find_entities_by_key(mention.key)
            if matches:
                entity = _most_recent(matches)
                found.setdefault(entity.id, entity)
        return list(found.values())

    async def link_record(self, entity_id: str, record_id: str) -> Entity:
        """Link an entity to an external contact/project record.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        async with self._lock:
            entity = await self.storage.get_entity(entity_id)
            if entity is None:
                raise NotFoundError("Entity", entity_id)
            entity.linked_record_id = record_id
            await self.storage.store_entity(entity)
            return entity
