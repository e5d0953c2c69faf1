"""Write pipeline that embeds, persists and indexes memory entries."""

from __future__ import annotations

import uuid
from typing import List, Mapping, Optional

from cwa.core.exceptions import (
    EmbeddingUnavailable,
    PersistenceFailure,
    VectorUpsertFailure,
)
from cwa.core.logger import get_logger

from .collections import MEMORIES_COLLECTION
from .embedding import EmbeddingGateway
from .records import AddMemoryResult, MemoryEntry, MemoryType, embedding_marker, utcnow
from .storage.base import RecordStore, VectorSearchResult, VectorStore


class IndexingPipeline:
    """Shared embed, persist, upsert sequence.

    The row is written only after the embedding succeeded and the vector only
    after the row was written, so a failure never leaves a vector without its
    row. The opposite case (row without vector) surfaces as
    :class:`VectorUpsertFailure` and is detectable as an orphan later.
    """

    def __init__(
        self,
        record_store: Optional[RecordStore],
        vector_store: VectorStore,
        embedder: EmbeddingGateway,
        *,
        collection: str,
    ) -> None:
        self._records = record_store
        self._vectors = vector_store
        self._embedder = embedder
        self._collection = collection
        self._logger = get_logger(self.__class__.__name__)

    @property
    def collection(self) -> str:
        return self._collection

    def _embed(self, text: str, *, query: bool = False) -> List[float]:
        try:
            vector = self._embedder.embed_query(text) if query else self._embedder.embed(text)
        except EmbeddingUnavailable:
            raise
        except Exception as exc:
            raise EmbeddingUnavailable(f"Embedding request failed: {exc}") from exc
        if not vector:
            raise EmbeddingUnavailable("Embedding gateway returned an empty vector")
        return list(vector)

    def _persist(self, save, record) -> None:
        try:
            save(record)
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"Failed to persist record {record.id}: {exc}") from exc

    def _upsert(self, record_id: str, vector: List[float], payload: Mapping[str, object]) -> None:
        try:
            self._vectors.upsert(self._collection, record_id, vector, payload)
        except Exception as exc:
            self._logger.error(
                "Vector upsert failed for %s in '%s'; row kept as orphan",
                record_id,
                self._collection,
                exc_info=True,
            )
            raise VectorUpsertFailure(
                f"Failed to upsert vector for {record_id} into '{self._collection}': {exc}",
                record_id=record_id,
                collection=self._collection,
            ) from exc

    def _search(self, query: str, project_id: str, top_k: int) -> List[VectorSearchResult]:
        vector = self._embed(query, query=True)
        self._logger.debug("Query embedded for '%s' (dim=%d)", self._collection, len(vector))
        return self._vectors.search_filtered(
            self._collection, vector, top_k=top_k, project_id=project_id
        )


class MemoryPipeline(IndexingPipeline):
    """Add free-text memories to the structured store and the memories collection."""

    def __init__(
        self,
        record_store: RecordStore,
        vector_store: VectorStore,
        embedder: EmbeddingGateway,
        *,
        collection: str = MEMORIES_COLLECTION,
    ) -> None:
        super().__init__(record_store, vector_store, embedder, collection=collection)

    def add_memory(
        self,
        project_id: str,
        content: str,
        entry_type: MemoryType | str,
        context: Optional[str] = None,
    ) -> AddMemoryResult:
        memory_type = MemoryType.parse(entry_type)
        record_id = str(uuid.uuid4())

        vector = self._embed(content)

        entry = MemoryEntry(
            id=record_id,
            project_id=project_id,
            content=content,
            entry_type=memory_type,
            context=context,
            embedding_id=embedding_marker(record_id),
            created_at=utcnow(),
        )
        self._persist(self._records.save_memory, entry)

        self._upsert(
            record_id,
            vector,
            {
                "id": record_id,
                "project_id": project_id,
                "content": content,
                "entry_type": memory_type.value,
                "context": context or "",
                "created_at": entry.created_at.isoformat(),
            },
        )

        self._logger.info(
            "Memory added: id=%s type=%s dim=%d", record_id, memory_type.value, len(vector)
        )
        return AddMemoryResult(id=record_id, embedding_dim=len(vector))
