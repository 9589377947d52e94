"""Unit tests for memorylane storage layer.

These tests use qdrant-client's local in-memory mode for fast, isolated testing.
No external Qdrant server is required.
"""

from datetime import UTC, datetime, timedelta

import pytest

from memorylane.exceptions import ConfigurationError
from memorylane.models import (
    Entity,
    ExtractionState,
    FeedbackEvent,
    Memory,
    MemoryType,
    SessionRecall,
)
from memorylane.storage import COLLECTION_INDEXES, MemoryLaneStorage

from conftest import EMBEDDING_DIM, angled, basis


def make_memory(vector: list[float] | None = None, **overrides) -> Memory:
    fields = {
        "type": MemoryType.DECISION,
        "title": "Use PostgreSQL",
        "content": "We decided to use PostgreSQL over MySQL.",
        "confidence_score": 0.8,
        "embedding": vector or basis(0),
    }
    fields.update(overrides)
    return Memory(**fields)


class TestStorageInit:
    """Tests for storage initialization."""

    async def test_collections_created(self, storage: MemoryLaneStorage):
        """Every collection should exist with the prefix applied."""
        collections = await storage.client.get_collections()
        names = {c.name for c in collections.collections}

        assert names == {f"test_{kind}" for kind in COLLECTION_INDEXES}

    async def test_ensure_collections_is_idempotent(self, storage: MemoryLaneStorage):
        """Running collection setup twice should not fail."""
        await storage._ensure_collections()
        collections = await storage.client.get_collections()
        assert len(collections.collections) == len(COLLECTION_INDEXES)

    def test_collection_name(self, storage: MemoryLaneStorage):
        """_collection_name should apply prefix correctly."""
        assert storage._collection_name("memories") == "test_memories"

    def test_point_id_is_deterministic(self):
        """The same key always maps to the same UUID-shaped point id."""
        first = MemoryLaneStorage._point_id("memories", "mem_1")
        assert first == MemoryLaneStorage._point_id("memories", "mem_1")
        assert first != MemoryLaneStorage._point_id("entities", "mem_1")
        assert len(first.split("-")) == 5

    def test_client_before_initialize_raises(self):
        """Using the client before initialize() is an error."""
        storage = MemoryLaneStorage(prefix="test", embedding_dim=8)
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = storage.client

    async def test_initialize_twice_keeps_client(self, storage: MemoryLaneStorage):
        client = storage.client
        await storage.initialize()
        assert storage.client is client
        assert storage.initialized

    async def test_vector_size_mismatch_rejected(self, storage: MemoryLaneStorage):
        """Reopening a collection with a different embedder size is a config error."""
        other = MemoryLaneStorage(url=":memory:", prefix="test", embedding_dim=EMBEDDING_DIM * 2)
        other._client = storage.client

        with pytest.raises(ConfigurationError, match="dimensional vectors"):
            await other._ensure_collections()

    async def test_close_resets(self):
        storage = MemoryLaneStorage(url=":memory:", prefix="test", embedding_dim=8)
        await storage.initialize()

        await storage.close()

        assert not storage.initialized


class TestMemoryOperations:
    """Tests for memory CRUD and search."""

    async def test_store_and_get(self, storage: MemoryLaneStorage):
        """A stored memory round-trips without its embedding."""
        memory = make_memory(related_entities=["ent_1"])
        await storage.store_memory(memory)

        loaded = await storage.get_memory(memory.id)

        assert loaded is not None
        assert loaded.id == memory.id
        assert loaded.type == MemoryType.DECISION
        assert loaded.related_entities == ["ent_1"]
        assert loaded.embedding is None

    async def test_get_with_vector(self, storage: MemoryLaneStorage):
        memory = make_memory()
        await storage.store_memory(memory)

        loaded = await storage.get_memory(memory.id, with_vector=True)

        assert loaded is not None
        assert loaded.embedding == pytest.approx(basis(0))

    async def test_get_missing(self, storage: MemoryLaneStorage):
        assert await storage.get_memory("mem_missing") is None

    async def test_store_requires_embedding(self, storage: MemoryLaneStorage):
        memory = make_memory()
        memory.embedding = None
        with pytest.raises(ValueError, match="embedding"):
            await storage.store_memory(memory)

    async def test_search_respects_threshold(self, storage: MemoryLaneStorage):
        """Results below the score threshold are dropped; best comes first."""
        close = make_memory(vector=angled(0.95), title="close")
        medium = make_memory(vector=angled(0.6), title="medium")
        far = make_memory(vector=basis(2), title="far")
        for memory in (close, medium, far):
            await storage.store_memory(memory)

        hits = await storage.search_memories(basis(0), limit=10, score_threshold=0.4)

        assert [h.memory.title for h in hits] == ["close", "medium"]
        assert hits[0].score == pytest.approx(0.95, abs=1e-4)

    async def test_find_similar_memory(self, storage: MemoryLaneStorage):
        await storage.store_memory(make_memory(vector=angled(0.95)))

        assert await storage.find_similar_memory(basis(0), 0.9) is not None
        assert await storage.find_similar_memory(basis(1), 0.9) is None

    async def test_find_memories_by_entities(self, storage: MemoryLaneStorage):
        """Memories are found when any related entity matches."""
        linked = make_memory(related_entities=["ent_pg", "ent_atlas"])
        other = make_memory(related_entities=["ent_redis"], vector=basis(1))
        await storage.store_memory(linked)
        await storage.store_memory(other)

        found = await storage.find_memories_by_entities(["ent_atlas"])

        assert [m.id for m in found] == [linked.id]
        assert await storage.find_memories_by_entities([]) == []

    async def test_entity_matches_ordered_by_confidence(self, storage: MemoryLaneStorage):
        """The limit keeps the most confident matches."""
        for i, confidence in enumerate([0.3, 0.9, 0.5, 0.7]):
            await storage.store_memory(
                make_memory(
                    title=f"m{i}",
                    confidence_score=confidence,
                    related_entities=["ent_pg"],
                    vector=basis(i),
                )
            )

        found = await storage.find_memories_by_entities(["ent_pg"], limit=2)

        assert [m.confidence_score for m in found] == [0.9, 0.7]

    async def test_list_memories_by_type(self, storage: MemoryLaneStorage):
        await storage.store_memory(make_memory())
        await storage.store_memory(make_memory(type=MemoryType.GAP, vector=basis(1)))

        assert len(await storage.list_memories()) == 2
        gaps = await storage.list_memories(MemoryType.GAP)
        assert [m.type for m in gaps] == [MemoryType.GAP]
        assert await storage.count_memories() == 2

    async def test_merge_observation(self, storage: MemoryLaneStorage):
        """A merge updates counters but keeps content and vector."""
        memory = make_memory(related_entities=["ent_a"], evidence=["first"])
        await storage.store_memory(memory)
        observed_at = datetime.now(UTC) + timedelta(minutes=5)

        merged = await storage.merge_memory_observation(
            memory.id,
            related_entities=["ent_b"],
            confidence=0.95,
            evidence=["second"],
            observed_at=observed_at,
        )

        assert merged is not None
        loaded = await storage.get_memory(memory.id, with_vector=True)
        assert loaded is not None
        assert loaded.times_observed == 2
        assert loaded.related_entities == ["ent_a", "ent_b"]
        assert loaded.confidence_score == 0.95
        assert loaded.evidence == ["first", "second"]
        assert loaded.last_observed_at == observed_at
        assert loaded.content == memory.content
        assert loaded.embedding == pytest.approx(basis(0))

    async def test_merge_missing_memory(self, storage: MemoryLaneStorage):
        result = await storage.merge_memory_observation(
            "mem_missing", related_entities=[], confidence=0.5, evidence=[]
        )
        assert result is None

    async def test_increment_counters(self, storage: MemoryLaneStorage):
        memory = make_memory()
        await storage.store_memory(memory)

        await storage.increment_memory_counters(memory.id, recall_count=1)
        updated = await storage.increment_memory_counters(
            memory.id, recall_count=1, positive_feedback=2
        )

        assert updated is not None
        loaded = await storage.get_memory(memory.id)
        assert loaded is not None
        assert loaded.recall_count == 2
        assert loaded.positive_feedback == 2

    async def test_increment_rejects_non_counter(self, storage: MemoryLaneStorage):
        with pytest.raises(ValueError, match="not counter fields"):
            await storage.increment_memory_counters("mem_1", times_observed=1)

    async def test_increment_missing_memory(self, storage: MemoryLaneStorage):
        assert await storage.increment_memory_counters("mem_missing", recall_count=1) is None


class TestEntityOperations:
    """Tests for the entity registry."""

    async def test_store_and_get(self, storage: MemoryLaneStorage):
        entity = Entity(slug="postgresql", name="PostgreSQL", type="technology")
        await storage.store_entity(entity)

        loaded = await storage.get_entity(entity.id)

        assert loaded == entity

    async def test_find_by_slug_and_alias(self, storage: MemoryLaneStorage):
        """Lookups match the slug or any alias slug."""
        entity = Entity(
            slug="postgresql",
            name="PostgreSQL",
            type="technology",
            aliases=["Postgres"],
        )
        await storage.store_entity(entity)

        assert [e.id for e in await storage.find_entities_by_key("postgresql")] == [entity.id]
        assert [e.id for e in await storage.find_entities_by_key("postgres")] == [entity.id]
        assert await storage.find_entities_by_key("mysql") == []

    async def test_store_replaces(self, storage: MemoryLaneStorage):
        """Re-storing an entity updates it in place."""
        entity = Entity(slug="atlas", name="Atlas", type="project")
        await storage.store_entity(entity)
        entity.add_alias("Project Atlas")
        await storage.store_entity(entity)

        assert await storage.count_entities() == 1
        found = await storage.find_entities_by_key("project-atlas")
        assert found[0].aliases == ["Project Atlas"]


class TestStateAndAudit:
    """Tests for cursors and audit logs."""

    async def test_extraction_state_round_trip(self, storage: MemoryLaneStorage):
        state = ExtractionState(file_path="/tmp/a.jsonl", last_position=120)
        await storage.save_extraction_state(state)

        loaded = await storage.get_extraction_state("/tmp/a.jsonl")

        assert loaded == state
        assert await storage.get_extraction_state("/tmp/other.jsonl") is None
        assert len(await storage.list_extraction_states()) == 1

    async def test_session_recalls_filtered(self, storage: MemoryLaneStorage):
        recalls = [
            SessionRecall(
                session_id=session,
                memory_id=memory,
                rank=rank,
                score=0.5,
                similarity=0.5,
                recall_method="semantic",
            )
            for session, memory, rank in (
                ("ses_1", "mem_a", 1),
                ("ses_1", "mem_b", 2),
                ("ses_2", "mem_a", 1),
            )
        ]
        assert await storage.log_session_recalls(recalls) == 3

        by_session = await storage.get_session_recalls(session_id="ses_1")
        by_memory = await storage.get_session_recalls(memory_id="mem_a")

        assert {r.memory_id for r in by_session} == {"mem_a", "mem_b"}
        assert {r.session_id for r in by_memory} == {"ses_1", "ses_2"}
        assert await storage.log_session_recalls([]) == 0

    async def test_feedback_events(self, storage: MemoryLaneStorage):
        await storage.log_feedback(FeedbackEvent(memory_id="mem_a", polarity="positive"))
        await storage.log_feedback(FeedbackEvent(memory_id="mem_a", polarity="negative"))
        await storage.log_feedback(FeedbackEvent(memory_id="mem_b", polarity="positive"))

        events = await storage.get_feedback_events("mem_a")

        assert [e.polarity for e in events] == ["positive", "negative"]


class TestMemoryStats:
    """Tests for aggregate statistics."""

    async def test_empty_stats(self, storage: MemoryLaneStorage):
        stats = await storage.get_memory_stats()
        assert stats.total_memories == 0
        assert stats.avg_confidence is None
        assert stats.most_recalled == []

    async def test_stats(self, storage: MemoryLaneStorage):
        popular = make_memory(confidence_score=0.6)
        rated = make_memory(type=MemoryType.GAP, confidence_score=1.0, vector=basis(1))
        await storage.store_memory(popular)
        await storage.store_memory(rated)
        await storage.increment_memory_counters(popular.id, recall_count=3)
        await storage.increment_memory_counters(rated.id, positive_feedback=2, negative_feedback=1)
        await storage.store_entity(Entity(slug="atlas", name="Atlas", type="project"))

        stats = await storage.get_memory_stats()

        assert stats.total_memories == 2
        assert stats.by_type == {"decision": 1, "gap": 1}
        assert stats.avg_confidence == pytest.approx(0.8)
        assert stats.total_recalls == 3
        assert stats.positive_feedback == 2
        assert stats.negative_feedback == 1
        assert stats.entities == 1
        assert [s.id for s in stats.most_recalled] == [popular.id]
        assert [s.id for s in stats.best_rated] == [rated.id]
        assert stats.best_rated[0].net_feedback == 1
