"""Entity models for resolution and linking.

An Entity is a resolved real-world referent (a person, project,
organization, location, or technology) that memories point at by id.
Different surface forms ("Postgres", "PostgreSQL") collapse onto one
entity through its alias set.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, slugify, utc_now

EntityType = Literal[
    "person",
    "project",
    "organization",
    "location",
    "technology",
]

MentionSource = Literal["hint", "marker", "quoted", "proper_noun"]


class EntityMention(BaseModel):
    """A single entity-like span found in text.

    Attributes:
        text: Surface text of the mention.
        key: Slug of the mention, used for lookup.
        entity_type: Inferred type.
        source: Which detector produced the mention.
    """

    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1, description="Surface text of the mention")
    key: str = Field(min_length=1, description="Slug used for lookup")
    entity_type: EntityType = Field(description="Inferred entity type")
    source: MentionSource = Field(description="Detector that produced the mention")


class Entity(BaseModel):
    """A resolved entity with a unique slug and a set of aliases.

    Attributes:
        id: Unique entity identifier.
        slug: URL-safe unique key.
        name: Display name (first surface form seen).
        type: Entity type.
        aliases: Other surface forms observed for this entity.
        linked_record_id: Optional link to an external contact/project record.
        mention_count: Mentions resolved to this entity.
        created_at: When the entity was created.
        last_seen_at: Most recent resolution; breaks ambiguity between matches.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("ent"))
    slug: str = Field(min_length=1, max_length=100, description="Unique URL-safe key")
    name: str = Field(min_length=1, description="Display name")
    type: EntityType = Field(description="Entity type")
    aliases: list[str] = Field(default_factory=list, description="Alternative surface forms")
    linked_record_id: str | None = Field(
        default=None,
        description="External contact/project record this entity is linked to",
    )
    mention_count: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    last_seen_at: datetime = Field(default_factory=utc_now)

    @property
    def alias_keys(self) -> list[str]:
        """Slugs of every alias, excluding the entity's own slug."""
        keys = (slugify(alias) for alias in self.aliases)
        return list(dict.fromkeys(k for k in keys if k and k != self.slug))

    def add_alias(self, alias: str) -> bool:
        """Add an alias if it is a new surface form.

        Returns:
            True if the alias was added.
        """
        normalized = alias.strip()
        if not normalized or normalized == self.name or normalized in self.aliases:
            return False
        self.aliases.append(normalized)
        return True

    def matches_key(self, key: str) -> bool:
        """Check whether a slug refers to this entity."""
        return key == self.slug or key in self.alias_keys
