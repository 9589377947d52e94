#!/usr/bin/env python3
"""REST API client demonstration.

This example shows how to use the memorylane REST API with httpx.
First, start the server in another terminal:

    uvicorn memorylane.api:app --reload

Then run this script:

    python examples/api_client.py

The API provides:
    POST /api/v1/extraction/run              - Mine transcripts now
    POST /api/v1/retrieve                    - Ranked memory retrieval
    POST /api/v1/memories/{id}/feedback      - Vote a memory up or down
    GET  /api/v1/sessions/{id}/recalls       - What a session was shown
    GET  /api/v1/health                      - Health check
"""

import asyncio

import httpx

BASE_URL = "http://localhost:8000/api/v1"


async def main() -> None:
    """Run the API client demo."""
    print("=" * 60)
    print("memorylane REST API Demo")
    print("=" * 60)
    print(f"\nConnecting to {BASE_URL}...")

    async with httpx.AsyncClient(timeout=120.0) as client:
        # =====================================================================
        # Health Check
        # =====================================================================
        print("\n🏥 Checking API health...")
        try:
            resp = await client.get(f"{BASE_URL}/health")
            resp.raise_for_status()
            health = resp.json()
            print(f"  Status: {health['status']}")
            print(f"  Version: {health['version']}")
            print(f"  Scheduler: {'running' if health['scheduler_running'] else 'stopped'}")
        except httpx.ConnectError:
            print("\n❌ Could not connect to API server!")
            print("   Start the server with: uvicorn memorylane.api:app --reload")
            return

        # =====================================================================
        # Extraction: Mine transcripts now instead of waiting for the loop
        # =====================================================================
        print("\n⛏️  Running extraction...")
        resp = await client.post(f"{BASE_URL}/extraction/run")
        resp.raise_for_status()
        report = resp.json()
        print(f"  Status: {report['status']}")
        print(f"  Files: {report['files']}, chunks: {report['chunks']}")
        print(f"  Created: {report['created']}, merged: {report['merged']}")

        # =====================================================================
        # Retrieve: Ranked memories for a few questions
        # =====================================================================
        print("\n🔍 Retrieving memories...")

        queries = [
            "what did we decide about the database",
            "what mistake did we make with the database",
            "what does the user usually prefer",
        ]

        session_id = None
        first_hit = None
        for query in queries:
            resp = await client.post(
                f"{BASE_URL}/retrieve",
                json={"query": query, "limit": 3, "session_id": session_id},
            )
            resp.raise_for_status()
            result = resp.json()
            session_id = result["session_id"]

            print(f'\n  Query: "{query}"')
            print(f"  Found: {result['count']} results")
            for r in result["results"]:
                print(f"    [{r['type']}] {r['title'][:50]} ({r['score']:.2f}, {r['recall_method']})")
                first_hit = first_hit or r["memory_id"]

        # =====================================================================
        # Feedback: Vote the first memory up
        # =====================================================================
        if first_hit:
            print(f"\n👍 Upvoting {first_hit}...")
            resp = await client.post(
                f"{BASE_URL}/memories/{first_hit}/feedback",
                json={"polarity": "positive", "session_id": session_id},
            )
            resp.raise_for_status()
            counts = resp.json()
            print(f"  +{counts['positive']} / -{counts['negative']} (net {counts['net']:+d})")

        # =====================================================================
        # Audit: Everything this session was shown
        # =====================================================================
        if session_id:
            resp = await client.get(f"{BASE_URL}/sessions/{session_id}/recalls")
            resp.raise_for_status()
            print(f"\n📜 Session {session_id} was shown {resp.json()['count']} memories")

    print(f"\n{'=' * 60}")
    print("API demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
