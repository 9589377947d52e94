"""Ollama embedding provider.

Talks to a local Ollama server over HTTP (``POST /api/embed``). This is the
default provider: it needs no API key and serves ``mxbai-embed-large``
(1024 dimensions) out of the box.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from memorylane.exceptions import EmbeddingError

from .base import Embedder

logger = logging.getLogger(__name__)

MODEL_DIMENSIONS = {
    "mxbai-embed-large": 1024,
    "nomic-embed-text": 768,
    "all-minilm": 384,
}


def _is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts, and 5xx responses are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Retrying Ollama embedding request",
        extra={
            "attempt": retry_state.attempt_number,
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


ollama_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception(_is_transient),
    before_sleep=_log_retry,
    reraise=True,
)


class OllamaEmbedder(Embedder):
    """Embedding provider backed by an Ollama server.

    Example:
        ```python
        embedder = OllamaEmbedder(base_url="http://localhost:11434")
        vector = await embedder.embed("We decided to use PostgreSQL")
        # vector has 1024 dimensions
        ```
    """

    def __init__(
        self,
        model: str = "mxbai-embed-large",
        base_url: str = "http://localhost:11434",
        timeout_seconds: float = 30.0,
        dimensions: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Ollama embedder.

        Args:
            model: Ollama embedding model name.
            base_url: Ollama server URL.
            timeout_seconds: Per-request timeout.
            dimensions: Expected vector size; looked up from the model if None.
            client: Optional preconfigured HTTP client (used in tests).
        """
        self.model = model
        self._dimensions = dimensions or MODEL_DIMENSIONS.get(model, 1024)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            EmbeddingError: If Ollama is unreachable or returns bad data.
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one request.

        Raises:
            EmbeddingError: If Ollama is unreachable or returns bad data.
        """
        if not texts:
            return []

        try:
            data = await self._post_embed(texts)
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingError(f"Ollama embedding request failed: {e}") from e

        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list):
            raise EmbeddingError(f"Ollama response has no embeddings (model={self.model})")
        return self._accept(embeddings, len(texts))

    @ollama_retry
    async def _post_embed(self, texts: list[str]) -> dict[str, Any]:
        response = await self._client.post(
            "/api/embed",
            json={"model": self.model, "input": texts},
        )
        response.raise_for_status()
        payload: dict[str, Any] = response.json()
        return payload

    async def health_check(self) -> bool:
        """Return True if the server answers and has the model pulled."""
        try:
            response = await self._client.get("/api/tags")
            response.raise_for_status()
        except httpx.HTTPError:
            logger.warning("Ollama health check failed", exc_info=True)
            return False
        models = response.json().get("models", [])
        return any(str(m.get("name", "")).split(":")[0] == self.model for m in models)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
