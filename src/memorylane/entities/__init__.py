"""Entity detection and resolution."""

from .mentions import find_mentions, find_query_entities, infer_entity_type
from .resolver import EntityResolver

__all__ = [
    "EntityResolver",
    "find_mentions",
    "find_query_entities",
    "infer_entity_type",
]
