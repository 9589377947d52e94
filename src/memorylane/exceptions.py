"""memorylane exception hierarchy.

Every error raised by the package inherits from MemoryLaneError and carries
a machine-readable ``code`` for API responses. Per-item failures (a chunk,
a candidate, a transcript line) are caught at their unit of work; only
configuration and embedding outages abort an extraction run.
"""

from __future__ import annotations


class MemoryLaneError(Exception):
    """Base exception for all memorylane errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "memorylane_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class TransportError(MemoryLaneError):
    """Network or API failure talking to a model or embedding service.

    Attributes:
        retriable: Whether another attempt could plausibly succeed.
    """

    code: str = "transport_error"

    def __init__(self, message: str, retriable: bool = True) -> None:
        self.retriable = retriable
        super().__init__(message)


class EmbeddingError(TransportError):
    """Embedding generation failed after retries."""

    code: str = "embedding_error"


class ExtractionError(TransportError):
    """Extraction for a chunk failed after the LLM retry budget ran out."""

    code: str = "extraction_error"


class SchemaValidationError(MemoryLaneError):
    """A candidate or request failed schema validation.

    Attributes:
        field: The field that failed validation.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class ParseError(MemoryLaneError):
    """A transcript line could not be parsed.

    Attributes:
        path: Transcript file path.
        position: Byte offset where the bad line starts.
    """

    code: str = "parse_error"

    def __init__(self, path: str, position: int, message: str) -> None:
        self.path = path
        self.position = position
        super().__init__(f"{path}@{position}: {message}")


class ConflictError(MemoryLaneError):
    """A write would violate a uniqueness invariant (slug or alias)."""

    code: str = "conflict"


class NotFoundError(MemoryLaneError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "memory", "entity").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(MemoryLaneError):
    """Storage operation failed."""

    code: str = "storage_error"


class ConfigurationError(MemoryLaneError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"
