"""In-process LRU cache in front of an embedder.

Transcripts repeat themselves: the same decision is restated across sessions,
and popular queries are retrieved again and again. Entries are keyed by a
digest of the model name and the exact text, so switching models never
serves a stale vector.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass

from .base import Embedder

logger = logging.getLogger(__name__)


def _content_hash(text: str, model: str = "") -> str:
    return hashlib.sha256(f"{model}\x00{text}".encode()).hexdigest()


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    max_size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CachedEmbedder(Embedder):
    """LRU-cached wrapper for any Embedder implementation.

    Within one ``embed_batch`` call, repeated texts are embedded once and
    only cache misses are forwarded, as a single batch.

    Example:
        ```python
        cached = CachedEmbedder(OllamaEmbedder(), cache_size=1000)
        first = await cached.embed("We decided to use PostgreSQL")
        again = await cached.embed("We decided to use PostgreSQL")  # no request
        print(cached.stats().hit_rate)  # 0.5
        ```
    """

    def __init__(self, embedder: Embedder, cache_size: int = 1000) -> None:
        self._embedder = embedder
        self._cache_size = cache_size
        self._vectors: OrderedDict[str, list[float]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self.model = embedder.model

    @property
    def enabled(self) -> bool:
        return self._cache_size > 0

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        if not self.enabled:
            return await self._embedder.embed_batch(texts)

        keys = [_content_hash(text, self.model) for text in texts]
        resolved: dict[str, list[float]] = {}
        pending: dict[str, str] = {}
        for key, text in zip(keys, texts, strict=True):
            if key in resolved or key in pending:
                continue
            if key in self._vectors:
                self._hits += 1
                self._vectors.move_to_end(key)
                resolved[key] = self._vectors[key]
            else:
                pending[key] = text

        if pending:
            self._misses += len(pending)
            fresh = await self._embedder.embed_batch(list(pending.values()))
            for key, vector in zip(pending, fresh, strict=True):
                self._store(key, vector)
                resolved[key] = vector
            logger.debug(
                "Embedded %d of %d texts (hit_rate=%.2f)", len(pending), len(texts), self.hit_rate
            )

        return [resolved[key] for key in keys]

    def _store(self, key: str, vector: list[float]) -> None:
        self._vectors[key] = vector
        self._vectors.move_to_end(key)
        while len(self._vectors) > self._cache_size:
            self._vectors.popitem(last=False)

    @property
    def dimensions(self) -> int:
        return self._embedder.dimensions

    @property
    def wrapped_embedder(self) -> Embedder:
        return self._embedder

    @property
    def hit_rate(self) -> float:
        return self.stats().hit_rate

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._vectors),
            max_size=self._cache_size,
        )

    def clear_cache(self) -> None:
        """Drop cached vectors, keeping hit/miss counters."""
        self._vectors.clear()

    async def health_check(self) -> bool:
        return await self._embedder.health_check()

    async def close(self) -> None:
        await self._embedder.close()
