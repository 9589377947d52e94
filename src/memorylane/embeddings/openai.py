"""OpenAI embedding provider.

Requests go through the official async SDK, which retries rate limits and
5xx responses itself. Inputs larger than one request allows are split and
sent in order.
"""

from __future__ import annotations

from openai import AsyncOpenAI, OpenAIError

from memorylane.exceptions import EmbeddingError

from .base import Embedder

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Only the text-embedding-3 family accepts a shortened ``dimensions``
RESIZABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})

MAX_INPUTS_PER_REQUEST = 2048


class OpenAIEmbedder(Embedder):
    """Embedding provider backed by the OpenAI embeddings API.

    Example:
        ```python
        embedder = OpenAIEmbedder(dimensions=1024)
        vector = await embedder.embed("We decided to use PostgreSQL")
        # vector has 1024 dimensions, matching an Ollama-built collection
        ```
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        dimensions: int | None = None,
    ) -> None:
        """Initialize OpenAI embedder.

        Args:
            model: OpenAI embedding model name.
            api_key: OpenAI API key. If None, uses OPENAI_API_KEY env var.
            timeout_seconds: Per-request timeout.
            max_retries: SDK-level retries for transient failures.
            dimensions: Requested vector size. Sent to the API only for
                models that support shortening; ignored otherwise.
        """
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=max_retries)
        self._requested = dimensions if model in RESIZABLE_MODELS else None
        self._dimensions = self._requested or MODEL_DIMENSIONS.get(model, 1536)

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, splitting into as many requests as needed.

        Raises:
            EmbeddingError: If a request fails or returns the wrong count.
        """
        vectors: list[list[float]] = []
        for start in range(0, len(texts), MAX_INPUTS_PER_REQUEST):
            chunk = texts[start : start + MAX_INPUTS_PER_REQUEST]
            vectors.extend(await self._request(chunk))
        return vectors

    async def _request(self, texts: list[str]) -> list[list[float]]:
        options = {"dimensions": self._requested} if self._requested else {}
        try:
            response = await self._client.embeddings.create(model=self.model, input=texts, **options)
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding API failed: {e}") from e
        ordered = sorted(response.data, key=lambda item: item.index)
        return self._accept([item.embedding for item in ordered], len(texts))

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def close(self) -> None:
        await self._client.close()
