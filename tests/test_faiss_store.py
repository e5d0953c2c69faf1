"""Tests for the FAISS vector store."""

from __future__ import annotations

import pytest

pytest.importorskip("faiss")

from cwa.core.exceptions import CollectionUnavailable, InvalidPayload, VectorStoreError  # noqa: E402
from cwa.memory.collections import MEMORIES_COLLECTION, OBSERVATIONS_COLLECTION  # noqa: E402
from cwa.memory.storage.faiss_store import FaissVectorStore  # noqa: E402


@pytest.fixture
def store() -> FaissVectorStore:
    store = FaissVectorStore()
    store.ensure_collection("docs", 3)
    return store


def test_ensure_collection_is_idempotent(store):
    store.ensure_collection("docs", 3)
    assert store.count("docs") == 0


def test_dimension_mismatch_is_rejected(store):
    with pytest.raises(VectorStoreError):
        store.ensure_collection("docs", 4)
    with pytest.raises(VectorStoreError):
        store.upsert("docs", "a", [1.0, 0.0], {"id": "a"})


def test_search_orders_by_cosine_similarity(store):
    store.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a", "project_id": "p"})
    store.upsert("docs", "b", [0.7, 0.7, 0.0], {"id": "b", "project_id": "p"})
    store.upsert("docs", "c", [0.0, 0.0, 5.0], {"id": "c", "project_id": "p"})

    hits = store.search("docs", [2.0, 0.0, 0.0], top_k=2)

    assert [hit.payload["id"] for hit in hits] == ["a", "b"]
    assert hits[0].score == pytest.approx(1.0, abs=1e-6)


def test_upsert_replaces_existing_point(store):
    store.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a", "version": 1})
    store.upsert("docs", "a", [0.0, 1.0, 0.0], {"id": "a", "version": 2})

    assert store.count("docs") == 1
    [hit] = store.search("docs", [0.0, 1.0, 0.0], top_k=5)
    assert hit.payload["version"] == 2


def test_filtered_search_scans_past_other_projects(store):
    for index in range(10):
        store.upsert("docs", f"noise-{index}", [1.0, 0.0, 0.0], {"id": f"noise-{index}", "project_id": "other"})
    store.upsert("docs", "mine", [0.0, 1.0, 0.0], {"id": "mine", "project_id": "proj"})

    hits = store.search_filtered("docs", [1.0, 0.0, 0.0], top_k=1, project_id="proj")

    assert [hit.payload["id"] for hit in hits] == ["mine"]


def test_delete_and_exists(store):
    store.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a"})
    assert store.exists("docs", "a")

    store.delete("docs", "a")
    store.delete("docs", "a")
    store.delete("nowhere", "a")

    assert not store.exists("docs", "a")
    assert not store.exists("nowhere", "a")
    assert store.count("docs") == 0


def test_missing_collection_is_unavailable():
    with pytest.raises(CollectionUnavailable):
        FaissVectorStore().search("nowhere", [1.0], top_k=1)


def test_nested_payload_is_rejected(store):
    with pytest.raises(InvalidPayload):
        store.upsert("docs", "a", [1.0, 0.0, 0.0], {"facts": ["x"]})
    assert store.count("docs") == 0


def test_collections_persist_to_directory(tmp_path):
    first = FaissVectorStore(tmp_path)
    first.ensure_collection("docs", 3)
    first.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a", "project_id": "p"})

    second = FaissVectorStore(tmp_path)
    second.ensure_collection("docs", 3)

    assert second.exists("docs", "a")
    [hit] = second.search_filtered("docs", [1.0, 0.0, 0.0], top_k=1, project_id="p")
    assert hit.payload == {"id": "a", "project_id": "p"}
    second.upsert("docs", "b", [0.0, 1.0, 0.0], {"id": "b"})
    assert second.count("docs") == 2


def test_persistence_leaves_no_temporary_files(tmp_path):
    store = FaissVectorStore(tmp_path)
    store.ensure_collection("docs", 3)
    store.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a"})
    store.delete("docs", "a")

    assert sorted(path.name for path in tmp_path.iterdir()) == ["docs.faiss", "docs.json"]


def test_stale_sidecar_is_detected_on_load(tmp_path):
    store = FaissVectorStore(tmp_path)
    store.ensure_collection("docs", 3)
    store.upsert("docs", "a", [1.0, 0.0, 0.0], {"id": "a"})
    stale = (tmp_path / "docs.json").read_text(encoding="utf-8")
    store.upsert("docs", "b", [0.0, 1.0, 0.0], {"id": "b"})
    # index written, sidecar from the previous save
    (tmp_path / "docs.json").write_text(stale, encoding="utf-8")

    with pytest.raises(VectorStoreError):
        FaissVectorStore(tmp_path).ensure_collection("docs", 3)


def test_compaction_removes_vectors_exactly(make_engine):
    engine = make_engine(FaissVectorStore())
    weak = engine.observations.add_observation("proj", "insight", "Weak hunch", confidence=0.1).id
    engine.observations.add_observation("proj", "insight", "Solid finding", confidence=0.9)
    engine.memories.add_memory("proj", "Half remembered", "fact")

    report = engine.lifecycle.compact("proj", 0.6)

    assert report.removed_observations == [weak]
    assert len(report.removed_memories) == 1
    assert engine.vectors.count(OBSERVATIONS_COLLECTION) == 1
    assert engine.vectors.count(MEMORIES_COLLECTION) == 0
