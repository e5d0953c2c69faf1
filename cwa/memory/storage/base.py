"""Interfaces for structured record storage and vector store operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence

from ..records import MemoryEntry, Observation, ObservationIndex, Payload, Summary

MEMORY_KIND = "memory"
OBSERVATION_KIND = "observation"


class RecordRef:
    """Lightweight pointer to a stored memory or observation row."""

    __slots__ = ("id", "kind", "confidence", "embedding_id")

    def __init__(self, id: str, kind: str, confidence: float, embedding_id: Optional[str]) -> None:
        self.id = id
        self.kind = kind
        self.confidence = confidence
        self.embedding_id = embedding_id

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"RecordRef(id={self.id!r}, kind={self.kind!r}, confidence={self.confidence!r})"


class RecordStore(ABC):
    """Persistent storage for memories, observations and summaries.

    Implementations raise :class:`~cwa.core.exceptions.PersistenceFailure` on
    I/O errors.
    """

    @abstractmethod
    def save_memory(self, entry: MemoryEntry) -> None:
        """Insert the given memory row."""

    @abstractmethod
    def get_memory(self, record_id: str) -> Optional[MemoryEntry]:
        """Return a memory by id or ``None``."""

    @abstractmethod
    def list_memories(self, project_id: str) -> List[MemoryEntry]:
        """Return every memory of a project, newest first."""

    @abstractmethod
    def delete_memory(self, record_id: str) -> bool:
        """Delete a memory row; returns whether a row was removed."""

    @abstractmethod
    def save_observation(self, observation: Observation) -> None:
        """Insert the given observation row."""

    @abstractmethod
    def get_observation(self, record_id: str) -> Optional[Observation]:
        """Return an observation by id or ``None``."""

    @abstractmethod
    def get_observations(self, record_ids: Sequence[str]) -> List[Observation]:
        """Return full observations for the ids that exist, in request order."""

    @abstractmethod
    def list_observations(self, project_id: str, *, limit: int = 20) -> List[ObservationIndex]:
        """Return compact rows of the most recent observations."""

    @abstractmethod
    def observations_since(
        self, project_id: str, since: datetime, *, limit: int = 50
    ) -> List[ObservationIndex]:
        """Return compact rows created at or after ``since``, newest first."""

    @abstractmethod
    def delete_observation(self, record_id: str) -> bool:
        """Delete an observation row; returns whether a row was removed."""

    @abstractmethod
    def get_confidence(self, record_id: str) -> Optional[RecordRef]:
        """Locate a memory or observation by id."""

    @abstractmethod
    def boost_confidence(self, record_id: str, amount: float) -> Optional[RecordRef]:
        """Atomically add ``amount`` to a row's confidence, capped at 1.0.

        Returns the updated reference, or ``None`` when no row has the id.
        """

    @abstractmethod
    def decay_observations(self, project_id: str, factor: float) -> int:
        """Multiply every observation confidence of a project by ``factor``."""

    @abstractmethod
    def low_confidence(self, project_id: str, min_confidence: float) -> List[RecordRef]:
        """Rows with confidence strictly below ``min_confidence``, lowest first."""

    @abstractmethod
    def embedded_records(self, project_id: str) -> Iterable[RecordRef]:
        """Rows of a project that carry an embedding marker."""

    @abstractmethod
    def save_summary(self, summary: Summary) -> None:
        """Insert a summary row."""

    @abstractmethod
    def recent_summaries(self, project_id: str, *, limit: int = 5) -> List[Summary]:
        """Return the newest summaries of a project."""


class VectorStore(ABC):
    """Cosine-similarity vector store organised in named collections.

    Point ids are derived from application ids with
    :func:`~cwa.memory.point_id.uuid_to_point_id`; payloads pass through
    :func:`~cwa.memory.payload.flatten_payload` before they are written.
    """

    @abstractmethod
    def ensure_collection(self, name: str, dim: int) -> None:
        """Create the collection if missing; reject a conflicting dimension."""

    @abstractmethod
    def upsert(
        self,
        collection: str,
        record_id: str,
        vector: Sequence[float],
        payload: Mapping[str, object],
    ) -> None:
        """Insert or replace the point for ``record_id``."""

    @abstractmethod
    def search(
        self, collection: str, vector: Sequence[float], *, top_k: int = 10
    ) -> List["VectorSearchResult"]:
        """Return the ``top_k`` most similar points, best first."""

    @abstractmethod
    def search_filtered(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 10,
        project_id: str,
    ) -> List["VectorSearchResult"]:
        """Like :meth:`search` but restricted to payload ``project_id``."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        """Remove the point for ``record_id`` if present."""

    @abstractmethod
    def count(self, collection: str) -> int:
        """Number of points stored in the collection."""

    @abstractmethod
    def exists(self, collection: str, record_id: str) -> bool:
        """Whether a point for ``record_id`` is stored in the collection."""


class VectorSearchResult:
    """Result entry returned by vector similarity searches."""

    __slots__ = ("id", "score", "payload")

    def __init__(self, id: str, score: float, payload: Optional[Payload] = None) -> None:
        self.id = id
        self.score = score
        self.payload: Payload = dict(payload or {})

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"VectorSearchResult(id={self.id!r}, score={self.score!r})"
