"""Shared fixtures: in-memory vector store, SQLite store, deterministic embedder."""

from __future__ import annotations

import math
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

import pytest

from cwa.core.config import Config
from cwa.core.exceptions import CollectionUnavailable, VectorStoreError
from cwa.memory.collections import DEFAULT_COLLECTIONS
from cwa.memory.embedding import HashEmbeddingGateway
from cwa.memory.factory import MemoryEngine, create_memory_engine
from cwa.memory.payload import flatten_payload
from cwa.memory.point_id import uuid_to_point_id
from cwa.memory.storage import SqliteRecordStore, VectorSearchResult, VectorStore

TEST_DIM = 64


class InMemoryVectorStore(VectorStore):
    """Brute-force cosine store with switches for failure injection."""

    def __init__(self) -> None:
        self.collections: Dict[str, Tuple[int, Dict[str, Tuple[List[float], dict]]]] = {}
        self.fail_upsert = False
        self.fail_delete = False
        self.fail_search: Set[str] = set()
        self.slow_search: Dict[str, float] = {}

    def ensure_collection(self, name: str, dim: int) -> None:
        existing = self.collections.get(name)
        if existing is None:
            self.collections[name] = (dim, {})
        elif existing[0] != dim:
            raise VectorStoreError(f"dimension mismatch for {name}")

    def upsert(self, collection: str, record_id: str, vector: Sequence[float], payload: Mapping[str, object]) -> None:
        if self.fail_upsert:
            raise VectorStoreError("upsert disabled")
        flat = flatten_payload(payload)
        dim, points = self.collections[collection]
        if len(vector) != dim:
            raise VectorStoreError("bad dimension")
        points[uuid_to_point_id(record_id)] = (list(vector), flat)

    def search(self, collection: str, vector: Sequence[float], *, top_k: int = 10) -> List[VectorSearchResult]:
        return self._search(collection, vector, top_k, None)

    def search_filtered(
        self, collection: str, vector: Sequence[float], *, top_k: int = 10, project_id: str
    ) -> List[VectorSearchResult]:
        return self._search(collection, vector, top_k, project_id)

    def delete(self, collection: str, record_id: str) -> None:
        if self.fail_delete:
            raise VectorStoreError("delete disabled")
        self.collections[collection][1].pop(uuid_to_point_id(record_id), None)

    def count(self, collection: str) -> int:
        return len(self.collections[collection][1])

    def exists(self, collection: str, record_id: str) -> bool:
        entry = self.collections.get(collection)
        return entry is not None and uuid_to_point_id(record_id) in entry[1]

    def _search(self, collection, vector, top_k, project_id) -> List[VectorSearchResult]:
        if collection in self.slow_search:
            time.sleep(self.slow_search[collection])
        if collection in self.fail_search:
            raise CollectionUnavailable(collection, "search disabled")
        if collection not in self.collections:
            raise CollectionUnavailable(collection, "missing")
        hits = []
        for point_id, (stored, payload) in self.collections[collection][1].items():
            if project_id is not None and payload.get("project_id") != project_id:
                continue
            hits.append(VectorSearchResult(point_id, _cosine(vector, stored), payload))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def make_config(tmp_path: Path, **overrides) -> Config:
    values = dict(
        db_path=tmp_path / "memory.db",
        vector_backend="faiss",
        qdrant_url="http://localhost:6334",
        qdrant_api_key=None,
        faiss_dir=tmp_path / "vectors",
        embedding_provider="hash",
        ollama_url="http://localhost:11434",
        embedding_model="nomic-embed-text",
        embedding_dim=TEST_DIM,
        request_timeout=5.0,
        collection_timeout=2.0,
        boost_on_access=0.05,
        log_level="INFO",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def embedder() -> HashEmbeddingGateway:
    return HashEmbeddingGateway(TEST_DIM)


@pytest.fixture
def record_store(tmp_path) -> SqliteRecordStore:
    return SqliteRecordStore(tmp_path / "memory.db")


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    store = InMemoryVectorStore()
    for name in DEFAULT_COLLECTIONS:
        store.ensure_collection(name, TEST_DIM)
    return store


@pytest.fixture
def config(tmp_path) -> Config:
    return make_config(tmp_path)


@pytest.fixture
def config_factory(tmp_path):
    def _factory(**overrides) -> Config:
        return make_config(tmp_path, **overrides)

    return _factory


@pytest.fixture
def engine(config, record_store, vector_store, embedder) -> MemoryEngine:
    return create_memory_engine(
        config,
        record_store=record_store,
        vector_store=vector_store,
        embedder=embedder,
    )


@pytest.fixture
def make_engine(tmp_path):
    """Build an engine around an arbitrary vector store."""

    def _factory(vector_store: VectorStore, *, record_store: Optional[SqliteRecordStore] = None) -> MemoryEngine:
        return create_memory_engine(
            make_config(tmp_path),
            record_store=record_store or SqliteRecordStore(tmp_path / "engine.db"),
            vector_store=vector_store,
            embedder=HashEmbeddingGateway(TEST_DIM),
        )

    return _factory
