"""Write and search pipeline for structured development observations."""

from __future__ import annotations

import uuid
from typing import List, Optional, Sequence

from .collections import OBSERVATIONS_COLLECTION
from .embedding import EmbeddingGateway
from .pipeline import IndexingPipeline
from .records import (
    DEFAULT_OBSERVATION_CONFIDENCE,
    AddObservationResult,
    Observation,
    ObservationSearchResult,
    ObservationType,
    embedding_marker,
    utcnow,
)
from .storage.base import RecordStore, VectorStore


def observation_embedding_text(
    title: str, narrative: Optional[str], facts: Sequence[str]
) -> str:
    """Title, then narrative, then comma-joined facts, separated by ``". "``."""
    text = title
    if narrative is not None:
        text += ". " + narrative
    if facts:
        text += ". " + ", ".join(facts)
    return text


class ObservationPipeline(IndexingPipeline):
    """Add observations to the structured store and the observations collection."""

    def __init__(
        self,
        record_store: RecordStore,
        vector_store: VectorStore,
        embedder: EmbeddingGateway,
        *,
        collection: str = OBSERVATIONS_COLLECTION,
    ) -> None:
        super().__init__(record_store, vector_store, embedder, collection=collection)

    def add_observation(
        self,
        project_id: str,
        obs_type: ObservationType | str,
        title: str,
        narrative: Optional[str] = None,
        facts: Sequence[str] = (),
        concepts: Sequence[str] = (),
        files_modified: Sequence[str] = (),
        files_read: Sequence[str] = (),
        session_id: Optional[str] = None,
        confidence: float = DEFAULT_OBSERVATION_CONFIDENCE,
    ) -> AddObservationResult:
        observation_type = ObservationType.parse(obs_type)
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")

        record_id = str(uuid.uuid4())
        vector = self._embed(observation_embedding_text(title, narrative, facts))

        observation = Observation(
            id=record_id,
            project_id=project_id,
            session_id=session_id,
            obs_type=observation_type,
            title=title,
            narrative=narrative,
            facts=list(facts),
            concepts=list(concepts),
            files_modified=list(files_modified),
            files_read=list(files_read),
            confidence=confidence,
            embedding_id=embedding_marker(record_id),
            created_at=utcnow(),
        )
        self._persist(self._records.save_observation, observation)

        self._upsert(
            record_id,
            vector,
            {
                "id": record_id,
                "project_id": project_id,
                "obs_type": observation_type.value,
                "title": title,
                "narrative": narrative or "",
                "confidence": confidence,
                "created_at": observation.created_at.isoformat(),
            },
        )

        self._logger.info(
            "Observation added: id=%s type=%s dim=%d", record_id, observation_type.value, len(vector)
        )
        return AddObservationResult(id=record_id, embedding_dim=len(vector))

    def search_observations(
        self, query: str, project_id: str, top_k: int = 10
    ) -> List[ObservationSearchResult]:
        return [
            ObservationSearchResult(
                id=str(hit.payload.get("id", "")),
                title=str(hit.payload.get("title", "")),
                obs_type=str(hit.payload.get("obs_type", "")),
                score=hit.score,
                created_at=str(hit.payload.get("created_at", "")),
            )
            for hit in self._search(query, project_id, top_k)
        ]
