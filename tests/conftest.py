"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import math
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from memorylane.config import Settings
from memorylane.embeddings import Embedder
from memorylane.storage import MemoryLaneStorage

# Add tests directory to path so helpers can be imported from conftest
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

# Small embedding dimension for tests
EMBEDDING_DIM = 8


def basis(axis: int) -> list[float]:
    """Unit vector along ``axis``."""
    vector = [0.0] * EMBEDDING_DIM
    vector[axis] = 1.0
    return vector


def angled(similarity: float, axis: int = 0, other: int = 1) -> list[float]:
    """Unit vector whose cosine similarity to ``basis(axis)`` is ``similarity``."""
    vector = [0.0] * EMBEDDING_DIM
    vector[axis] = similarity
    vector[other] = math.sqrt(1.0 - similarity * similarity)
    return vector


class FakeEmbedder(Embedder):
    """Deterministic embedder for tests.

    Texts registered in ``vectors`` get their vector. Any other text gets
    the next unused basis vector, counting down from the last axis, so
    unregistered texts are orthogonal to each other.
    """

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(vectors or {})
        self.calls: list[list[str]] = []
        self.error: Exception | None = None
        self.closed = False
        self._next_axis = EMBEDDING_DIM - 1

    def vector_for(self, text: str) -> list[float]:
        if text not in self.vectors:
            self.vectors[text] = basis(self._next_axis % EMBEDDING_DIM)
            self._next_axis -= 1
        return list(self.vectors[text])

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [self.vector_for(text) for text in texts]

    @property
    def dimensions(self) -> int:
        return EMBEDDING_DIM

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeRunResult:
    output: str


class FakeAgent:
    """Stands in for a pydantic_ai Agent.

    Responses are returned in order and the last one repeats. A response
    may be a string, an exception (raised), or a callable taking the
    prompt.
    """

    def __init__(self, *responses: str | Exception | Callable[[str], str]) -> None:
        self.responses = list(responses) or ["[]"]
        self.prompts: list[str] = []

    async def run(self, prompt: str) -> FakeRunResult:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(prompt)
        return FakeRunResult(output=response)


def candidate_json(
    memory_type: str = "decision",
    title: str = "Use PostgreSQL",
    content: str = "We decided to use PostgreSQL over MySQL for the new service.",
    confidence: Any = 0.8,
    **extra: Any,
) -> dict[str, Any]:
    """One extractor output element."""
    return {
        "type": memory_type,
        "title": title,
        "content": content,
        "category": extra.pop("category", "database"),
        "confidence": confidence,
        **extra,
    }


def llm_response(*candidates: dict[str, Any]) -> str:
    """Serialize candidates the way a model would answer."""
    return json.dumps(list(candidates))


def write_transcript(
    path: Path,
    messages: list[tuple[str, str]],
    append: bool = False,
) -> Path:
    """Write (role, text) pairs as JSONL transcript lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a" if append else "w", encoding="utf-8") as handle:
        for role, text in messages:
            record = {"type": role, "message": {"role": role, "content": text}}
            handle.write(json.dumps(record) + "\n")
    return path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings tuned for fast, offline tests."""
    return Settings(
        env="test",
        transcripts_dir=tmp_path / "transcripts",
        collection_prefix="test",
        embedding_dimensions=EMBEDDING_DIM,
        chunk_min_messages=2,
        chunk_max_messages=4,
        llm_max_retries=0,
        llm_initial_delay=0.0,
        confidence_adjustment_enabled=False,
        extraction_interval_seconds=3600,
        max_chunk_attempts=3,
        cors_enabled=False,
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
async def storage():
    """In-memory storage instance.

    Uses qdrant-client's local mode, so no Qdrant server is required.
    """
    store = MemoryLaneStorage(url=":memory:", prefix="test", embedding_dim=EMBEDDING_DIM)
    await store.initialize()

    yield store

    await store.close()
