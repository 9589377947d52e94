"""Tests for dedup-on-write memory storage."""

import asyncio

import pytest

from memorylane.extraction import validate_candidate
from memorylane.memory_store import MemoryStore
from memorylane.models import MemoryType, ResolvedCandidate, SourceChunk
from memorylane.storage import MemoryLaneStorage

from conftest import FakeEmbedder, angled, basis, candidate_json


def resolved(
    content: str,
    memory_type: str = "decision",
    entity_ids: list[str] | None = None,
    confidence: float = 0.8,
    evidence: str | None = None,
    position: int = 0,
) -> ResolvedCandidate:
    extra = {"evidence": evidence} if evidence else {}
    candidate = validate_candidate(
        candidate_json(memory_type, content=content, confidence=confidence, **extra)
    )
    return ResolvedCandidate(
        candidate=candidate,
        entity_ids=entity_ids or [],
        source_chunk=SourceChunk(
            file_path="/tmp/s.jsonl", start_position=position, end_position=position + 100
        ),
    )


class TestUpsert:
    """Tests for single-candidate writes."""

    async def test_creates_new_memory(self, storage: MemoryLaneStorage):
        embedder = FakeEmbedder({"Use PostgreSQL.": basis(0)})
        store = MemoryStore(storage, embedder)

        result = await store.upsert(resolved("Use PostgreSQL.", entity_ids=["ent_pg"]))

        assert result.created
        assert result.similarity is None
        loaded = await storage.get_memory(result.memory.id)
        assert loaded is not None
        assert loaded.type == MemoryType.DECISION
        assert loaded.related_entities == ["ent_pg"]
        assert loaded.times_observed == 1
        assert loaded.source_chunk is not None
        assert loaded.source_chunk.file_path == "/tmp/s.jsonl"

    async def test_merges_near_duplicate(self, storage: MemoryLaneStorage):
        """A candidate at 0.95 similarity merges instead of creating."""
        embedder = FakeEmbedder({"Use PostgreSQL.": basis(0), "Pick Postgres.": angled(0.95)})
        store = MemoryStore(storage, embedder)
        first = await store.upsert(
            resolved("Use PostgreSQL.", entity_ids=["ent_pg"], confidence=0.6, evidence="one")
        )

        second = await store.upsert(
            resolved("Pick Postgres.", entity_ids=["ent_db"], confidence=0.9, evidence="two")
        )

        assert second.action == "merged"
        assert second.memory.id == first.memory.id
        assert second.similarity == pytest.approx(0.95, abs=1e-4)
        assert await storage.count_memories() == 1
        loaded = await storage.get_memory(first.memory.id)
        assert loaded is not None
        assert loaded.times_observed == 2
        assert loaded.content == "Use PostgreSQL."
        assert loaded.related_entities == ["ent_pg", "ent_db"]
        assert loaded.confidence_score == 0.9
        assert loaded.evidence == ["one", "two"]

    async def test_concurrent_near_duplicates_create_one_row(self, storage: MemoryLaneStorage):
        """Two racing upserts of near-duplicates end up as one observed-twice memory."""
        embedder = FakeEmbedder({"Use PostgreSQL.": basis(0), "Pick Postgres.": angled(0.95)})
        store = MemoryStore(storage, embedder)

        results = await asyncio.gather(
            store.upsert(resolved("Use PostgreSQL.")),
            store.upsert(resolved("Pick Postgres.")),
        )

        assert sorted(r.action for r in results) == ["created", "merged"]
        assert results[0].memory.id == results[1].memory.id
        assert await storage.count_memories() == 1
        loaded = await storage.get_memory(results[0].memory.id)
        assert loaded is not None
        assert loaded.times_observed == 2

    async def test_merge_keeps_higher_confidence(self, storage: MemoryLaneStorage):
        embedder = FakeEmbedder({"a": basis(0), "b": angled(0.99)})
        store = MemoryStore(storage, embedder)
        first = await store.upsert(resolved("a", confidence=0.9))

        await store.upsert(resolved("b", confidence=0.3))

        loaded = await storage.get_memory(first.memory.id)
        assert loaded is not None
        assert loaded.confidence_score == 0.9

    async def test_distinct_memory_below_threshold(self, storage: MemoryLaneStorage):
        """A candidate at 0.85 similarity is a new memory."""
        embedder = FakeEmbedder({"Use PostgreSQL.": basis(0), "Use SQLite locally.": angled(0.85)})
        store = MemoryStore(storage, embedder)
        await store.upsert(resolved("Use PostgreSQL."))

        result = await store.upsert(resolved("Use SQLite locally."))

        assert result.created
        assert await storage.count_memories() == 2

    async def test_custom_threshold(self, storage: MemoryLaneStorage):
        embedder = FakeEmbedder({"a": basis(0), "b": angled(0.85)})
        store = MemoryStore(storage, embedder, merge_threshold=0.8)
        await store.upsert(resolved("a"))

        result = await store.upsert(resolved("b"))

        assert result.action == "merged"


class TestUpsertBatch:
    """Tests for in-batch deduplication."""

    async def test_empty_batch(self, storage: MemoryLaneStorage, embedder: FakeEmbedder):
        assert await MemoryStore(storage, embedder).upsert_batch([]) == []
        assert embedder.calls == []

    async def test_embeds_once(self, storage: MemoryLaneStorage, embedder: FakeEmbedder):
        store = MemoryStore(storage, embedder)
        await store.upsert_batch([resolved("a"), resolved("b"), resolved("c")])
        assert embedder.calls == [["a", "b", "c"]]

    async def test_near_duplicates_in_batch_merge(self, storage: MemoryLaneStorage):
        """Two 0.95-similar candidates from different chunks become one memory."""
        embedder = FakeEmbedder({"first": basis(0), "second": angled(0.95)})
        store = MemoryStore(storage, embedder)

        results = await store.upsert_batch(
            [resolved("first", position=0), resolved("second", position=500)]
        )

        assert [r.action for r in results] == ["created", "merged"]
        assert results[1].memory.id == results[0].memory.id
        memories = await storage.list_memories()
        assert len(memories) == 1
        assert memories[0].times_observed == 2
        assert memories[0].content == "first"

    async def test_results_keep_order(self, storage: MemoryLaneStorage):
        embedder = FakeEmbedder({"a": basis(0), "b": basis(1), "a2": angled(0.97)})
        store = MemoryStore(storage, embedder)

        results = await store.upsert_batch([resolved("a"), resolved("b"), resolved("a2")])

        assert [r.action for r in results] == ["created", "created", "merged"]
        assert results[2].memory.id == results[0].memory.id
        assert await storage.count_memories() == 2

    async def test_batch_merges_into_stored_memory(self, storage: MemoryLaneStorage):
        """Re-ingesting the same contents creates nothing new."""
        embedder = FakeEmbedder({"a": basis(0), "b": basis(1)})
        store = MemoryStore(storage, embedder)
        await store.upsert_batch([resolved("a"), resolved("b")])

        results = await store.upsert_batch([resolved("a"), resolved("b")])

        assert not any(r.created for r in results)
        assert await storage.count_memories() == 2
