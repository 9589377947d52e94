"""Embedder interface.

Vectors are used twice: dedup-on-write compares a candidate against stored
memories, and the semantic retrieval path compares a query against them.
Both sides must come from the same model, so the collection dimension is
taken from ``Embedder.dimensions`` when storage is initialized.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from memorylane.exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Async text-to-vector provider.

    Providers raise ``EmbeddingError`` (never an SDK or HTTP exception) once
    their own retries are exhausted; the scheduler treats that as fatal for
    the current run.

    Example:
        ```python
        embedder = OllamaEmbedder()
        vector = await embedder.embed("We decided to use PostgreSQL")
        vectors = await embedder.embed_batch(["first", "second"])
        ```
    """

    model: str = ""
    _dimensions: int = 0

    @abstractmethod
    async def embed(self, text: str) -> list[float]: ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` and return vectors in input order."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int: ...

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:  # noqa: B027
        """Release network resources held by the embedder."""

    def _accept(self, vectors: Sequence[Sequence[float]], expected: int) -> list[list[float]]:
        """Validate a provider response and adopt its dimension.

        A provider that answers with a different vector size than configured
        wins: the new size is logged and reported from then on.

        Raises:
            EmbeddingError: If the response count differs from ``expected``.
        """
        if len(vectors) != expected:
            raise EmbeddingError(
                f"{type(self).__name__} returned {len(vectors)} embeddings for {expected} inputs"
            )
        accepted = [[float(x) for x in vector] for vector in vectors]
        if accepted and len(accepted[0]) != self._dimensions:
            logger.warning(
                "Embedding dimension mismatch: expected %d, got %d (model=%s)",
                self._dimensions,
                len(accepted[0]),
                self.model,
            )
            self._dimensions = len(accepted[0])
        return accepted
