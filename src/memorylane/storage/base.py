"""Shared plumbing for the storage mixins.

Every record kind lives in its own ``{prefix}_{kind}`` collection. Points are
addressed by a UUID derived from the record key, so writes are idempotent
upserts. Only the memories collection holds real embeddings.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from memorylane.config import settings
from memorylane.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection key -> payload fields to index as keywords
COLLECTION_INDEXES: dict[str, tuple[str, ...]] = {
    "memories": ("id", "type", "related_entities"),
    "entities": ("id", "slug", "alias_keys"),
    "extraction_state": ("file_path",),
    "session_recalls": ("session_id", "memory_id"),
    "feedback_events": ("memory_id", "session_id"),
}

VECTOR_COLLECTIONS = frozenset({"memories"})
PLACEHOLDER_VECTOR = [0.0]

DEFAULT_EMBEDDING_DIM = 1024

# Passing this as the URL runs qdrant-client in local in-process mode
IN_MEMORY_URL = ":memory:"


class StorageBase:
    """Client lifecycle, collection setup, and payload helpers.

    ``_counter_lock`` serializes read-modify-write updates (recall counts,
    feedback tallies, cursors) within one process.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        embedding_dim: int = DEFAULT_EMBEDDING_DIM,
        timeout: int | None = None,
    ) -> None:
        """Create an unconnected storage; call ``initialize()`` before use.

        Args:
            url: Qdrant server URL, or ``":memory:"`` for local mode.
                Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            embedding_dim: Vector size of the memories collection. Must match
                the embedder in use.
            timeout: Request timeout in seconds. Defaults to settings.qdrant_timeout_seconds.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._embedding_dim = embedding_dim
        self._timeout = timeout or settings.qdrant_timeout_seconds
        self._client: AsyncQdrantClient | None = None
        self._counter_lock = asyncio.Lock()

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def embedding_dim(self) -> int:
        return self._embedding_dim

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Connect and create any missing collections. Safe to call twice.

        Raises:
            ConfigurationError: If an existing memories collection was built
                for a different vector size.
        """
        if self._client is not None:
            return
        if self._url == IN_MEMORY_URL:
            client = AsyncQdrantClient(location=IN_MEMORY_URL)
        else:
            client = AsyncQdrantClient(url=self._url, api_key=self._api_key, timeout=self._timeout)
        self._client = client
        try:
            await self._ensure_collections()
        except Exception:
            self._client = None
            await client.close()
            raise

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _collection_name(self, kind: str) -> str:
        return f"{self._prefix}_{kind}"

    @staticmethod
    def _point_id(kind: str, key: str) -> str:
        """Hash ``kind/key`` into the UUID form Qdrant requires for point ids."""
        h = hashlib.sha256(f"{kind}/{key}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        response = await self.client.get_collections()
        existing = {c.name for c in response.collections}

        for kind, indexed_fields in COLLECTION_INDEXES.items():
            name = self._collection_name(kind)
            size = self._embedding_dim if kind in VECTOR_COLLECTIONS else len(PLACEHOLDER_VECTOR)
            if name in existing:
                if kind in VECTOR_COLLECTIONS:
                    await self._check_vector_size(name, size)
                continue

            logger.info("Creating collection %s (size=%d)", name, size)
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=size, distance=models.Distance.COSINE),
            )
            for field_name in indexed_fields:
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )

    async def _check_vector_size(self, name: str, expected: int) -> None:
        info = await self.client.get_collection(name)
        vectors = info.config.params.vectors
        actual = vectors.size if isinstance(vectors, models.VectorParams) else None
        if actual is not None and actual != expected:
            raise ConfigurationError(
                f"Collection {name} stores {actual}-dimensional vectors but the embedder "
                f"produces {expected}; use a new collection_prefix or the original model"
            )

    @staticmethod
    def _model_to_payload(record: BaseModel) -> dict[str, Any]:
        """Convert a model to a Qdrant payload (embedding excluded)."""
        data = record.model_dump(mode="json")
        data.pop("embedding", None)
        return data

    @staticmethod
    def _payload_to_model(
        payload: dict[str, Any],
        model_class: type[ModelT],
        derived_fields: tuple[str, ...] = (),
    ) -> ModelT:
        """Convert a Qdrant payload back to a model, dropping index-only fields."""
        data = {k: v for k, v in payload.items() if k not in derived_fields}
        return model_class.model_validate(data)

    async def _upsert_record(
        self,
        kind: str,
        key: str,
        payload: dict[str, Any],
        vector: list[float] | None = None,
    ) -> None:
        """Write one point, replacing any point stored under the same key."""
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, key),
                    vector=vector if vector is not None else PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter | None = None,
        with_vectors: bool = False,
        page_size: int = 256,
    ) -> list[models.Record]:
        """Page through every point in a collection matching ``scroll_filter``."""
        records: list[models.Record] = []
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=with_vectors,
            )
            records.extend(points)
            if offset is None:
                return records
