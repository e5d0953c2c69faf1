"""Qdrant-backed vector store."""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from cwa.core.exceptions import CollectionUnavailable, VectorStoreError
from cwa.core.logger import get_logger

from ..payload import flatten_payload
from ..point_id import uuid_to_point_id
from .base import VectorSearchResult, VectorStore


class QdrantVectorStore(VectorStore):
    """Talk to a Qdrant server; every call goes straight to the engine.

    A preconfigured ``client`` may be injected, for example
    ``QdrantClient(":memory:")`` in tests.
    """

    def __init__(
        self,
        url: str = "http://localhost:6334",
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[QdrantClient] = None,
    ) -> None:
        self._logger = get_logger(self.__class__.__name__)
        if client is None:
            self._logger.info("Connecting to Qdrant at %s", url)
            client = QdrantClient(url=url, api_key=api_key, timeout=int(timeout))
        self._client = client

    def ensure_collection(self, name: str, dim: int) -> None:
        if dim <= 0:
            raise VectorStoreError(f"Collection '{name}' needs a positive dimension, got {dim}")
        try:
            if self._client.collection_exists(name):
                existing = self._dimension_of(name)
                if existing is not None and existing != dim:
                    raise VectorStoreError(
                        f"Collection '{name}' has dimension {existing}, requested {dim}"
                    )
                return
            self._client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=dim, distance=Distance.COSINE),
            )
        except VectorStoreError:
            raise
        except Exception as exc:
            raise VectorStoreError(f"Failed to ensure collection '{name}': {exc}") from exc
        self._logger.info("Created Qdrant collection '%s' (dim=%d)", name, dim)

    def upsert(
        self,
        collection: str,
        record_id: str,
        vector: Sequence[float],
        payload: Mapping[str, object],
    ) -> None:
        flat = flatten_payload(payload)
        values = [float(value) for value in vector]
        try:
            expected = self._dimension_of(collection)
        except Exception as exc:
            raise VectorStoreError(f"Cannot inspect collection '{collection}': {exc}") from exc
        if expected is not None and expected != len(values):
            raise VectorStoreError(
                f"Vector dimension {len(values)} does not match collection "
                f"'{collection}' dimension {expected}"
            )
        point = PointStruct(id=uuid_to_point_id(record_id), vector=values, payload=flat)
        try:
            self._client.upsert(collection_name=collection, points=[point], wait=True)
        except Exception as exc:
            raise VectorStoreError(f"Upsert into '{collection}' failed: {exc}") from exc

    def search(
        self, collection: str, vector: Sequence[float], *, top_k: int = 10
    ) -> List[VectorSearchResult]:
        return self._query(collection, vector, top_k, query_filter=None)

    def search_filtered(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 10,
        project_id: str,
    ) -> List[VectorSearchResult]:
        project_filter = Filter(
            must=[FieldCondition(key="project_id", match=MatchValue(value=project_id))]
        )
        return self._query(collection, vector, top_k, query_filter=project_filter)

    def delete(self, collection: str, record_id: str) -> None:
        try:
            self._client.delete(
                collection_name=collection,
                points_selector=PointIdsList(points=[uuid_to_point_id(record_id)]),
                wait=True,
            )
        except Exception as exc:
            raise VectorStoreError(f"Delete from '{collection}' failed: {exc}") from exc

    def count(self, collection: str) -> int:
        try:
            return int(self._client.count(collection_name=collection, exact=True).count)
        except Exception as exc:
            raise CollectionUnavailable(collection, str(exc)) from exc

    def exists(self, collection: str, record_id: str) -> bool:
        try:
            points = self._client.retrieve(
                collection_name=collection,
                ids=[uuid_to_point_id(record_id)],
                with_payload=False,
                with_vectors=False,
            )
        except Exception as exc:
            raise VectorStoreError(f"Lookup in '{collection}' failed: {exc}") from exc
        return len(points) > 0

    def _query(
        self,
        collection: str,
        vector: Sequence[float],
        top_k: int,
        *,
        query_filter: Optional[Filter],
    ) -> List[VectorSearchResult]:
        if top_k <= 0:
            return []
        try:
            response = self._client.query_points(
                collection_name=collection,
                query=[float(value) for value in vector],
                query_filter=query_filter,
                limit=top_k,
                with_payload=True,
            )
        except Exception as exc:
            raise CollectionUnavailable(collection, str(exc)) from exc
        return [
            VectorSearchResult(str(point.id), float(point.score), point.payload or {})
            for point in response.points
        ]

    def _dimension_of(self, collection: str) -> Optional[int]:
        info = self._client.get_collection(collection_name=collection)
        vectors = info.config.params.vectors
        if isinstance(vectors, VectorParams):
            return int(vectors.size)
        # named vectors are not used by this engine
        return None
