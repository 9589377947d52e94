"""Storage backend for memorylane.

Persists memories, entities, extraction cursors, and audit logs in Qdrant.

Example:
    ```python
    from memorylane.storage import MemoryLaneStorage

    async with MemoryLaneStorage(embedding_dim=1024) as storage:
        memory = await storage.get_memory("mem_a1b2c3d4e5f6")
    ```
"""

from .base import COLLECTION_INDEXES, DEFAULT_EMBEDDING_DIM
from .client import MemoryLaneStorage, MemoryStats, MemorySummary
from .memories import ScoredResult

__all__ = [
    "COLLECTION_INDEXES",
    "DEFAULT_EMBEDDING_DIM",
    "MemoryLaneStorage",
    "MemoryStats",
    "MemorySummary",
    "ScoredResult",
]
