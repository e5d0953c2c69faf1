"""Custom exception hierarchy for the memory engine."""

from __future__ import annotations


class CwaError(Exception):
    """Base class for project-specific exceptions."""


class ConfigError(CwaError):
    """Raised when configuration loading or validation fails."""


class ToolError(CwaError):
    """Raised when a tool action fails or yields an invalid response."""


class MemoryEngineError(CwaError):
    """Raised when the semantic memory engine cannot complete an operation."""


class EmbeddingUnavailable(MemoryEngineError):
    """Raised when the embedding gateway fails to produce a vector."""


class PersistenceFailure(MemoryEngineError):
    """Raised when the structured record store fails."""


class RecordNotFound(PersistenceFailure):
    """Raised when a memory or observation row does not exist."""


class VectorStoreError(MemoryEngineError):
    """Raised when the vector engine rejects or fails a call."""


class VectorUpsertFailure(VectorStoreError):
    """Raised when a row was persisted but its vector could not be written.

    The structured row is left in place with its ``embedding_id`` marker, so
    ``record_id`` identifies an orphan for a later repair pass.
    """

    def __init__(self, message: str, *, record_id: str, collection: str) -> None:
        super().__init__(message)
        self.record_id = record_id
        self.collection = collection


class CollectionUnavailable(VectorStoreError):
    """Raised when a single collection cannot be searched."""

    def __init__(self, collection: str, reason: str) -> None:
        super().__init__(f"Collection '{collection}' unavailable: {reason}")
        self.collection = collection
        self.reason = reason


class InvalidPayload(VectorStoreError, ValueError):
    """Raised when a payload value is not a flat scalar."""


class InvalidMemoryType(MemoryEngineError, ValueError):
    """Raised when a memory entry type is not recognised."""


class InvalidObservationType(MemoryEngineError, ValueError):
    """Raised when an observation type is not recognised."""
