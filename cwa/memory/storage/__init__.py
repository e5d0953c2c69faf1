"""Storage backends for the memory engine."""

from .base import MEMORY_KIND, OBSERVATION_KIND, RecordRef, RecordStore, VectorSearchResult, VectorStore
from .sqlite_store import SqliteRecordStore

__all__ = [
    "MEMORY_KIND",
    "OBSERVATION_KIND",
    "RecordRef",
    "RecordStore",
    "SqliteRecordStore",
    "VectorSearchResult",
    "VectorStore",
]
