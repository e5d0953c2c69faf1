"""Semantic memory and hybrid retrieval engine."""

from .collections import (
    DEFAULT_COLLECTIONS,
    DOMAIN_OBJECTS_COLLECTION,
    MEMORIES_COLLECTION,
    OBSERVATIONS_COLLECTION,
    TERMS_COLLECTION,
)
from .domain_pipeline import DomainObjectPipeline
from .embedding import EmbeddingGateway, HashEmbeddingGateway, OllamaEmbeddingGateway
from .factory import MemoryEngine, create_embedding_gateway, create_memory_engine, create_vector_store
from .hybrid_search import FusionAlgo, HybridSearchEngine, HybridSearchOutcome, HybridSearchResult
from .lifecycle import ConfidenceLifecycle
from .metrics import MemoryMetrics
from .observation_pipeline import ObservationPipeline
from .payload import flatten_payload
from .pipeline import MemoryPipeline
from .point_id import uuid_to_point_id
from .records import (
    AddMemoryResult,
    AddObservationResult,
    CompactionReport,
    DeletionOutcome,
    DomainObjectSearchResult,
    MemoryEntry,
    MemoryType,
    Observation,
    ObservationConcept,
    ObservationIndex,
    ObservationSearchResult,
    ObservationType,
    OrphanRecord,
    Summary,
)
from .storage import RecordStore, SqliteRecordStore, VectorSearchResult, VectorStore
from .timeline import ObservationTimeline

__all__ = [
    "AddMemoryResult",
    "AddObservationResult",
    "CompactionReport",
    "ConfidenceLifecycle",
    "DEFAULT_COLLECTIONS",
    "DOMAIN_OBJECTS_COLLECTION",
    "DeletionOutcome",
    "DomainObjectPipeline",
    "DomainObjectSearchResult",
    "EmbeddingGateway",
    "FusionAlgo",
    "HashEmbeddingGateway",
    "HybridSearchEngine",
    "HybridSearchOutcome",
    "HybridSearchResult",
    "MEMORIES_COLLECTION",
    "MemoryEngine",
    "MemoryEntry",
    "MemoryMetrics",
    "MemoryPipeline",
    "MemoryType",
    "OBSERVATIONS_COLLECTION",
    "Observation",
    "ObservationConcept",
    "ObservationIndex",
    "ObservationPipeline",
    "ObservationSearchResult",
    "ObservationTimeline",
    "ObservationType",
    "OllamaEmbeddingGateway",
    "OrphanRecord",
    "RecordStore",
    "SqliteRecordStore",
    "Summary",
    "TERMS_COLLECTION",
    "VectorSearchResult",
    "VectorStore",
    "create_embedding_gateway",
    "create_memory_engine",
    "create_vector_store",
    "flatten_payload",
    "uuid_to_point_id",
]
