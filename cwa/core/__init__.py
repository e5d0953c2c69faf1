"""Core utilities shared by the memory engine and its surfaces."""

from .config import Config  # noqa: F401
from .exceptions import (  # noqa: F401
    CollectionUnavailable,
    ConfigError,
    CwaError,
    EmbeddingUnavailable,
    InvalidMemoryType,
    InvalidObservationType,
    InvalidPayload,
    MemoryEngineError,
    PersistenceFailure,
    RecordNotFound,
    ToolError,
    VectorStoreError,
    VectorUpsertFailure,
)
from .logger import get_logger, project_context, setup_logging  # noqa: F401

__all__ = [
    "CollectionUnavailable",
    "Config",
    "ConfigError",
    "CwaError",
    "EmbeddingUnavailable",
    "InvalidMemoryType",
    "InvalidObservationType",
    "InvalidPayload",
    "MemoryEngineError",
    "PersistenceFailure",
    "RecordNotFound",
    "ToolError",
    "VectorStoreError",
    "VectorUpsertFailure",
    "get_logger",
    "project_context",
    "setup_logging",
]
