#!/usr/bin/env python3
"""Quickstart demo - mine a transcript, retrieve, and give feedback.

Demonstrates:
- run_extraction(): Turn a JSONL transcript into typed memories
- retrieve(): Entity + semantic retrieval with composite ranking
- feedback(): Votes that re-rank a memory on the next query
- Re-running extraction: the cursor means nothing is mined twice

Prerequisites:
    - Qdrant running: docker run -p 6333:6333 qdrant/qdrant
    - Ollama running with an embedding model: ollama pull mxbai-embed-large
    - API key in .env: MEMORYLANE_ANTHROPIC_API_KEY=sk-ant-...
"""

import asyncio
import json
import tempfile
from pathlib import Path

from memorylane.config import Settings
from memorylane.logging import configure_logging
from memorylane.service import MemoryLaneService

CONVERSATION = [
    ("user", "Should the billing service use MySQL or PostgreSQL?"),
    ("assistant", "PostgreSQL: we need JSONB and strict constraints. Decided."),
    ("user", "I set the pool size to 200 last week and it fell over."),
    ("assistant", "That was a mistake; PostgreSQL handles ~100 connections. Use PgBouncer."),
    ("user", "Always run migrations in a transaction from now on."),
    ("assistant", "Noted. I'll wrap every migration in BEGIN/COMMIT."),
]


def write_transcript(directory: Path) -> Path:
    path = directory / "demo-project" / "session-1.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for role, text in CONVERSATION:
            handle.write(json.dumps({"type": role, "message": {"role": role, "content": text}}))
            handle.write("\n")
    return path


async def main() -> None:
    print("=" * 70)
    print("memorylane Quickstart Demo")
    print("=" * 70)

    configure_logging(level="WARNING", format="text")

    with tempfile.TemporaryDirectory() as tmp:
        transcripts = Path(tmp)
        write_transcript(transcripts)
        settings = Settings(
            transcripts_dir=transcripts,
            collection_prefix="memorylane_demo",
            extraction_enabled=False,
        )

        async with MemoryLaneService.create(settings) as lane:
            # =================================================================
            # 1. EXTRACT: Mine the transcript
            # =================================================================
            print("\n1. EXTRACTING MEMORIES")
            print("-" * 70)

            report = await lane.run_extraction()
            print(f"  Run {report.run_id}: {report.status}")
            print(f"  Chunks: {report.chunks}  created: {report.created}  merged: {report.merged}")

            # =================================================================
            # 2. RETRIEVE: Query wording steers memory types
            # =================================================================
            print("\n\n2. RETRIEVAL")
            print("-" * 70)

            for query in (
                "what did we decide about the database",
                "what mistake did we make with the database",
            ):
                results = await lane.retrieve(query, limit=3, session_id="ses_demo")
                print(f'\n  Query: "{query}"')
                for r in results:
                    print(f"    {r.score:.3f} [{r.type:13}] {r.title[:45]} ({r.recall_method})")

            # =================================================================
            # 3. FEEDBACK: Upvote the top decision and re-query
            # =================================================================
            print("\n\n3. FEEDBACK")
            print("-" * 70)

            results = await lane.retrieve("what did we decide about the database", limit=1)
            if results:
                top = results[0]
                for _ in range(3):
                    await lane.feedback(top.memory_id, "positive", session_id="ses_demo")
                counts = await lane.feedback(top.memory_id, "negative", session_id="ses_demo")
                again = await lane.retrieve("what did we decide about the database", limit=1)
                print(f"  Votes: +{counts.positive} / -{counts.negative} (net {counts.net:+d})")
                print(f"  Score: {top.score:.3f} -> {again[0].score:.3f}")

            # =================================================================
            # 4. IDEMPOTENCE: Nothing new to mine
            # =================================================================
            print("\n\n4. RE-RUN")
            print("-" * 70)

            report = await lane.run_extraction()
            print(f"  Files with new data: {report.files}  created: {report.created}")

            stats = await lane.stats()
            print(f"\n  Memories: {stats.total_memories}  by type: {stats.by_type}")
            print(f"  Entities: {stats.entities}  recalls: {stats.total_recalls}")

    print(f"\n{'=' * 70}")
    print("Demo complete!")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(main())
