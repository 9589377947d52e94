"""memorylane: typed memories mined from conversation transcripts.

Reads assistant conversation transcripts, extracts durable facts
(corrections, decisions, commitments, insights, ...) with an LLM, links
them to the people, projects, and tools they mention, and resurfaces the
most relevant ones for a new query. Feedback on returned memories
re-ranks them over time.

Quick Start:
    from memorylane.service import MemoryLaneService

    async with MemoryLaneService.create() as lane:
        # Mine new transcript lines
        report = await lane.run_extraction()

        # Retrieve relevant memories
        results = await lane.retrieve("what mistake did we make with the database")

        # Tell the ranker what helped
        await lane.feedback(results[0].memory_id, "positive")

Memory Types:
    - High priority: correction, decision, commitment
    - Medium priority: insight, learning, confidence
    - Low priority: pattern_seed, cross_agent, workflow_note, gap
"""

__version__ = "0.1.0"

# Configuration
from .config import RankingWeights, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    ConflictError,
    EmbeddingError,
    ExtractionError,
    MemoryLaneError,
    NotFoundError,
    ParseError,
    SchemaValidationError,
    StorageError,
    TransportError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
)

# Models
from .models import (
    Entity,
    ExtractionState,
    FeedbackEvent,
    Memory,
    MemoryCandidate,
    MemoryType,
    SessionRecall,
)

# Service
from .service import MemoryLaneService

__all__ = [
    "__version__",
    # Configuration
    "RankingWeights",
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "ConflictError",
    "EmbeddingError",
    "ExtractionError",
    "MemoryLaneError",
    "NotFoundError",
    "ParseError",
    "SchemaValidationError",
    "StorageError",
    "TransportError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "log_context",
    # Models
    "Entity",
    "ExtractionState",
    "FeedbackEvent",
    "Memory",
    "MemoryCandidate",
    "MemoryType",
    "SessionRecall",
    # Service
    "MemoryLaneService",
]
