"""Factory helpers for wiring up the memory engine from configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from cwa.core.config import Config
from cwa.core.exceptions import ConfigError
from cwa.core.logger import get_logger

# Allow duplicated OpenMP runtimes (PyTorch/FAISS on macOS can each bundle libomp).
os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")

from .collections import DEFAULT_COLLECTIONS
from .domain_pipeline import DomainObjectPipeline
from .embedding import EmbeddingGateway, HashEmbeddingGateway, OllamaEmbeddingGateway
from .hybrid_search import HybridSearchEngine
from .lifecycle import ConfidenceLifecycle
from .metrics import MemoryMetrics
from .observation_pipeline import ObservationPipeline
from .pipeline import MemoryPipeline
from .storage import RecordStore, SqliteRecordStore, VectorStore
from .timeline import ObservationTimeline


@dataclass
class MemoryEngine:
    """Every engine component, sharing one set of injected collaborators."""

    config: Config
    records: RecordStore
    vectors: VectorStore
    embedder: EmbeddingGateway
    memories: MemoryPipeline
    observations: ObservationPipeline
    domain_objects: DomainObjectPipeline
    lifecycle: ConfidenceLifecycle
    search: HybridSearchEngine
    timeline: ObservationTimeline
    metrics: MemoryMetrics


def create_embedding_gateway(config: Config) -> EmbeddingGateway:
    """Instantiate the embedding gateway selected by ``CWA_EMBEDDING_PROVIDER``."""
    provider = config.embedding_provider
    if provider == "ollama":
        return OllamaEmbeddingGateway(
            config.ollama_url,
            model=config.embedding_model,
            dimension=config.embedding_dim,
            timeout=config.request_timeout,
        )
    if provider == "hash":
        return HashEmbeddingGateway(config.embedding_dim)
    if provider == "qwen":
        # torch and transformers are heavy optional extras
        from .qwen_embedding import QwenEmbeddingGateway

        return QwenEmbeddingGateway(
            dimension=config.embedding_dim,
            instruction=os.getenv("CWA_EMBED_INSTRUCTION") or None,
        )
    raise ConfigError(f"Unsupported embedding provider '{provider}'")


def create_vector_store(config: Config) -> VectorStore:
    """Instantiate the vector store selected by ``CWA_VECTOR_BACKEND``."""
    if config.vector_backend == "qdrant":
        from .storage.qdrant_store import QdrantVectorStore

        return QdrantVectorStore(
            config.qdrant_url,
            api_key=config.qdrant_api_key,
            timeout=config.request_timeout,
        )
    if config.vector_backend == "faiss":
        from .storage.faiss_store import FaissVectorStore

        return FaissVectorStore(config.faiss_dir)
    raise ConfigError(f"Unsupported vector backend '{config.vector_backend}'")


def create_memory_engine(
    config: Optional[Config] = None,
    *,
    record_store: Optional[RecordStore] = None,
    vector_store: Optional[VectorStore] = None,
    embedder: Optional[EmbeddingGateway] = None,
) -> MemoryEngine:
    """Build the engine; explicit collaborators override the configured ones."""
    config = config or Config.load()
    logger = get_logger("MemoryEngineFactory")
    logger.debug("Initialising memory engine", extra=dict(config.as_dict()))

    records = record_store or SqliteRecordStore(config.db_path)
    vectors = vector_store or create_vector_store(config)
    embedder = embedder or create_embedding_gateway(config)

    for collection in DEFAULT_COLLECTIONS:
        vectors.ensure_collection(collection, embedder.dimension)

    engine = MemoryEngine(
        config=config,
        records=records,
        vectors=vectors,
        embedder=embedder,
        memories=MemoryPipeline(records, vectors, embedder),
        observations=ObservationPipeline(records, vectors, embedder),
        domain_objects=DomainObjectPipeline(vectors, embedder),
        lifecycle=ConfidenceLifecycle(records, vectors),
        search=HybridSearchEngine(
            vectors, embedder, collection_timeout=config.collection_timeout
        ),
        timeline=ObservationTimeline(records),
        metrics=MemoryMetrics(),
    )
    logger.info(
        "Memory engine ready (backend=%s, embeddings=%s, dim=%d)",
        config.vector_backend,
        config.embedding_provider,
        embedder.dimension,
    )
    return engine
