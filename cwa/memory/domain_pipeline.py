"""Embed domain model objects so agents can find them by meaning."""

from __future__ import annotations

from typing import List

from .collections import DOMAIN_OBJECTS_COLLECTION
from .embedding import EmbeddingGateway
from .pipeline import IndexingPipeline
from .records import DomainObjectSearchResult, utcnow
from .storage.base import VectorStore


class DomainObjectPipeline(IndexingPipeline):
    """Index domain objects; their rows live with the domain model, not here."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingGateway,
        *,
        collection: str = DOMAIN_OBJECTS_COLLECTION,
    ) -> None:
        super().__init__(None, vector_store, embedder, collection=collection)

    def embed_domain_object(
        self,
        project_id: str,
        obj_id: str,
        name: str,
        object_type: str,
        context_name: str,
        description: str,
    ) -> int:
        """Embed one object and return the embedding dimension."""
        vector = self._embed(f"{name} ({object_type} in {context_name}): {description}")
        self._upsert(
            obj_id,
            vector,
            {
                "id": obj_id,
                "project_id": project_id,
                "context_name": context_name,
                "name": name,
                "object_type": object_type,
                "description": description,
                "created_at": utcnow().isoformat(),
            },
        )
        self._logger.info(
            "Domain object embedded: id=%s name=%s type=%s dim=%d",
            obj_id,
            name,
            object_type,
            len(vector),
        )
        return len(vector)

    def search_domain_objects(
        self, query: str, project_id: str, top_k: int = 10
    ) -> List[DomainObjectSearchResult]:
        return [
            DomainObjectSearchResult(
                id=str(hit.payload.get("id", "")),
                name=str(hit.payload.get("name", "")),
                object_type=str(hit.payload.get("object_type", "")),
                context_name=str(hit.payload.get("context_name", "")),
                description=str(hit.payload.get("description", "")),
                score=hit.score,
            )
            for hit in self._search(query, project_id, top_k)
        ]
