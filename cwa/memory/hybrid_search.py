"""Hybrid search combining dense similarity with a keyword boost.

Each requested collection is searched with the same query vector, results
whose payload mentions the query get a score boost, and the per-collection
lists are merged with Reciprocal Rank Fusion (RRF) or a plain score average.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from cwa.core.exceptions import EmbeddingUnavailable
from cwa.core.logger import get_logger

from .collections import DEFAULT_COLLECTIONS
from .embedding import EmbeddingGateway
from .records import Payload
from .storage.base import VectorSearchResult, VectorStore

RRF_K = 60.0
KEYWORD_BOOST = 1.2
MIN_FETCH_K = 20


class FusionAlgo(str, Enum):
    RRF = "rrf"
    SCORE_AVERAGE = "score_average"


@dataclass
class HybridSearchResult:
    """One fused hit.

    Attributes:
        id: Entity id from the payload, or the native point id
        collection: Collection of the first list that contributed the hit
        score: Fused score, higher is more relevant
        payload: Payload of the first contributing list
    """

    id: str
    collection: str
    score: float
    payload: Payload = field(default_factory=dict)

    def to_document(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "collection": self.collection,
            "score": self.score,
            "payload": dict(self.payload),
        }


@dataclass
class HybridSearchOutcome:
    results: List[HybridSearchResult] = field(default_factory=list)
    failed_collections: Dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return bool(self.failed_collections)


def entity_id(hit: VectorSearchResult) -> str:
    value = hit.payload.get("id")
    return value if isinstance(value, str) else hit.id


def keyword_boost(hits: Sequence[VectorSearchResult], query: str) -> List[VectorSearchResult]:
    """Boost hits whose string payload values contain the query, then re-sort.

    Only re-ranks what dense search already returned. ``sorted`` is stable so
    equal scores keep their dense order.
    """
    needle = query.lower()
    boosted: List[VectorSearchResult] = []
    for hit in hits:
        score = hit.score
        if any(isinstance(value, str) and needle in value.lower() for value in hit.payload.values()):
            score = min(score * KEYWORD_BOOST, 1.0)
        boosted.append(VectorSearchResult(hit.id, score, hit.payload))
    return sorted(boosted, key=lambda item: item.score, reverse=True)


def rrf_fuse(
    ranked_lists: Sequence[Tuple[str, Sequence[VectorSearchResult]]], top_k: int
) -> List[HybridSearchResult]:
    """Sum ``1 / (60 + rank)`` per entity over every list it appears in."""
    fused: Dict[str, HybridSearchResult] = {}
    for collection, hits in ranked_lists:
        for rank, hit in enumerate(hits, start=1):
            key = entity_id(hit)
            entry = fused.get(key)
            if entry is None:
                entry = HybridSearchResult(key, collection, 0.0, dict(hit.payload))
                fused[key] = entry
            entry.score += 1.0 / (RRF_K + rank)
    return _rank(fused.values(), top_k)


def score_average_fuse(
    ranked_lists: Sequence[Tuple[str, Sequence[VectorSearchResult]]], top_k: int
) -> List[HybridSearchResult]:
    """Average the (boosted) per-list scores of each entity."""
    fused: Dict[str, HybridSearchResult] = {}
    counts: Dict[str, int] = {}
    for collection, hits in ranked_lists:
        for hit in hits:
            key = entity_id(hit)
            entry = fused.get(key)
            if entry is None:
                entry = HybridSearchResult(key, collection, 0.0, dict(hit.payload))
                fused[key] = entry
                counts[key] = 0
            entry.score += hit.score
            counts[key] += 1
    for key, entry in fused.items():
        entry.score /= counts[key]
    return _rank(fused.values(), top_k)


def _rank(results, top_k: int) -> List[HybridSearchResult]:
    return sorted(results, key=lambda item: item.score, reverse=True)[:top_k]


class HybridSearchEngine:
    """Embed once, search collections concurrently, boost and fuse."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingGateway,
        *,
        default_collections: Sequence[str] = DEFAULT_COLLECTIONS,
        collection_timeout: float = 10.0,
    ) -> None:
        self._vectors = vector_store
        self._embedder = embedder
        self._default_collections = tuple(default_collections)
        self._collection_timeout = collection_timeout
        self._logger = get_logger(self.__class__.__name__)

    def search(
        self,
        query: str,
        top_k: int = 10,
        collections: Optional[Sequence[str]] = None,
        project_id: Optional[str] = None,
        fusion: FusionAlgo = FusionAlgo.RRF,
    ) -> List[HybridSearchResult]:
        return self.search_with_status(
            query, top_k, collections=collections, project_id=project_id, fusion=fusion
        ).results

    def search_with_status(
        self,
        query: str,
        top_k: int = 10,
        collections: Optional[Sequence[str]] = None,
        project_id: Optional[str] = None,
        fusion: FusionAlgo = FusionAlgo.RRF,
    ) -> HybridSearchOutcome:
        """Like :meth:`search` but also reports collections that failed."""
        if top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {top_k}")
        if isinstance(collections, str):
            raise TypeError("collections must be a sequence of names, not a single string")
        fusion = FusionAlgo(fusion)
        targets = list(dict.fromkeys(self._default_collections if collections is None else collections))
        if not targets or top_k == 0:
            return HybridSearchOutcome()

        try:
            query_vector = self._embedder.embed_query(query)
        except EmbeddingUnavailable:
            raise
        except Exception as exc:
            raise EmbeddingUnavailable(f"Failed to embed search query: {exc}") from exc
        self._logger.debug("Embedded hybrid query (dim=%d)", len(query_vector))

        fetch_k = max(MIN_FETCH_K, top_k * 3)
        per_collection, failures = self._fan_out(targets, query_vector, fetch_k, project_id)

        ranked = [(name, keyword_boost(per_collection.get(name, []), query)) for name in targets]
        if fusion is FusionAlgo.RRF:
            results = rrf_fuse(ranked, top_k)
        else:
            results = score_average_fuse(ranked, top_k)

        if failures:
            self._logger.warning(
                "Hybrid search degraded: %d of %d collections failed (%s)",
                len(failures),
                len(targets),
                ", ".join(sorted(failures)),
            )
        self._logger.info(
            "Hybrid search: %d collections -> %d results (%s)",
            len(targets),
            len(results),
            fusion.value,
        )
        return HybridSearchOutcome(results=results, failed_collections=failures)

    def _fan_out(
        self,
        collections: List[str],
        query_vector: List[float],
        fetch_k: int,
        project_id: Optional[str],
    ) -> Tuple[Dict[str, List[VectorSearchResult]], Dict[str, str]]:
        results: Dict[str, List[VectorSearchResult]] = {}
        failures: Dict[str, str] = {}

        executor = ThreadPoolExecutor(
            max_workers=len(collections), thread_name_prefix="cwa-hybrid"
        )
        try:
            futures = {
                executor.submit(self._search_one, name, query_vector, fetch_k, project_id): name
                for name in collections
            }
            # Collections run in parallel, so one deadline bounds each of them.
            done, _ = wait(futures, timeout=self._collection_timeout)
            for future, name in futures.items():
                if future not in done:
                    failures[name] = f"timed out after {self._collection_timeout}s"
                    continue
                error = future.exception()
                if error is not None:
                    failures[name] = str(error) or error.__class__.__name__
                    self._logger.warning("Collection '%s' search failed: %s", name, error)
                    continue
                results[name] = future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results, failures

    def _search_one(
        self,
        collection: str,
        query_vector: List[float],
        fetch_k: int,
        project_id: Optional[str],
    ) -> List[VectorSearchResult]:
        if project_id is not None:
            return self._vectors.search_filtered(
                collection, query_vector, top_k=fetch_k, project_id=project_id
            )
        return self._vectors.search(collection, query_vector, top_k=fetch_k)
