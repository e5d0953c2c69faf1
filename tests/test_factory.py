"""Tests for engine wiring."""

from __future__ import annotations

import pytest

from cwa.core.exceptions import ConfigError
from cwa.memory.collections import DEFAULT_COLLECTIONS
from cwa.memory.embedding import HashEmbeddingGateway, OllamaEmbeddingGateway
from cwa.memory.factory import (
    create_embedding_gateway,
    create_memory_engine,
    create_vector_store,
)


def test_engine_ensures_every_collection(engine, vector_store, embedder):
    for name in DEFAULT_COLLECTIONS:
        assert vector_store.collections[name][0] == embedder.dimension
    assert engine.metrics.as_dict()["writes"]["attempts"] == 0


def test_embedding_gateway_selection(config_factory):
    assert isinstance(create_embedding_gateway(config_factory(embedding_provider="hash")), HashEmbeddingGateway)
    ollama = create_embedding_gateway(config_factory(embedding_provider="ollama"))
    assert isinstance(ollama, OllamaEmbeddingGateway)
    assert ollama.dimension == 64
    ollama.close()


def test_unknown_provider_and_backend_raise(config_factory):
    with pytest.raises(ConfigError):
        create_embedding_gateway(config_factory(embedding_provider="bogus"))
    with pytest.raises(ConfigError):
        create_vector_store(config_factory(vector_backend="bogus"))


def test_offline_engine_from_config(config_factory, tmp_path):
    pytest.importorskip("faiss")
    engine = create_memory_engine(config_factory())

    added = engine.memories.add_memory("proj", "Offline engines use FAISS", "fact")

    results = engine.search.search("FAISS offline", project_id="proj")
    assert results[0].id == added.id
    assert (tmp_path / "vectors" / "cwa_memories.faiss").exists()
