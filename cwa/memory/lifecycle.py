"""Confidence lifecycle: boost on use, decay over time, compact the weak."""

from __future__ import annotations

from typing import List, Optional

from cwa.core.exceptions import RecordNotFound
from cwa.core.logger import get_logger

from .collections import MEMORIES_COLLECTION, OBSERVATIONS_COLLECTION
from .records import CompactionReport, DeletionOutcome, OrphanRecord
from .storage.base import MEMORY_KIND, OBSERVATION_KIND, RecordRef, RecordStore, VectorStore


class ConfidenceLifecycle:
    """Mutate confidence and remove rows together with their vector twins."""

    def __init__(
        self,
        record_store: RecordStore,
        vector_store: VectorStore,
        *,
        memories_collection: str = MEMORIES_COLLECTION,
        observations_collection: str = OBSERVATIONS_COLLECTION,
    ) -> None:
        self._records = record_store
        self._vectors = vector_store
        self._collections = {
            MEMORY_KIND: memories_collection,
            OBSERVATION_KIND: observations_collection,
        }
        self._logger = get_logger(self.__class__.__name__)

    def boost(self, record_id: str, amount: float) -> float:
        """Raise a row's confidence by ``amount``, capped at 1.0."""
        if amount < 0:
            raise ValueError(f"boost amount must be non-negative, got {amount}")
        ref = self._records.boost_confidence(record_id, amount)
        if ref is None:
            raise RecordNotFound(f"No memory or observation with id {record_id}")
        self._logger.debug("Boosted %s %s by %.3f to %.3f", ref.kind, record_id, amount, ref.confidence)
        return ref.confidence

    def decay(self, project_id: str, factor: float) -> int:
        """Multiply every observation confidence of the project by ``factor``."""
        if not 0.0 <= factor <= 1.0:
            raise ValueError(f"decay factor must be within [0, 1], got {factor}")
        touched = self._records.decay_observations(project_id, factor)
        self._logger.info("Decayed %d observations of %s by %.3f", touched, project_id, factor)
        return touched

    def compact(
        self,
        project_id: str,
        min_confidence: float,
        keep_top: Optional[int] = None,
    ) -> CompactionReport:
        """Remove rows below ``min_confidence``, weakest first.

        ``keep_top`` caps how many rows this pass removes. Vector deletion is
        best effort: failures are logged and reported, never raised.
        """
        if keep_top is not None and keep_top < 0:
            raise ValueError(f"keep_top must be non-negative, got {keep_top}")

        candidates = self._records.low_confidence(project_id, min_confidence)
        if keep_top is not None:
            candidates = candidates[:keep_top]

        report = CompactionReport()
        for ref in candidates:
            if ref.kind == MEMORY_KIND:
                removed = self._records.delete_memory(ref.id)
                if removed:
                    report.removed_memories.append(ref.id)
            else:
                removed = self._records.delete_observation(ref.id)
                if removed:
                    report.removed_observations.append(ref.id)
            if removed and ref.embedding_id:
                report.vector_deletions.append(self._delete_vector(ref))

        self._logger.info(
            "Compacted %s: %d memories, %d observations removed, %d vector deletions failed",
            project_id,
            len(report.removed_memories),
            len(report.removed_observations),
            len(report.failed_deletions),
        )
        return report

    def find_orphans(self, project_id: str) -> List[OrphanRecord]:
        """Rows carrying an embedding marker whose vector is missing."""
        orphans: List[OrphanRecord] = []
        for ref in self._records.embedded_records(project_id):
            collection = self._collections[ref.kind]
            if not self._vectors.exists(collection, ref.id):
                orphans.append(
                    OrphanRecord(
                        id=ref.id,
                        kind=ref.kind,
                        collection=collection,
                        embedding_id=ref.embedding_id or "",
                    )
                )
        if orphans:
            self._logger.warning("Found %d orphaned rows in %s", len(orphans), project_id)
        return orphans

    def _delete_vector(self, ref: RecordRef) -> DeletionOutcome:
        collection = self._collections[ref.kind]
        try:
            self._vectors.delete(collection, ref.id)
        except Exception as exc:
            self._logger.error(
                "Vector deletion failed for %s in '%s'", ref.id, collection, exc_info=True
            )
            return DeletionOutcome(id=ref.id, collection=collection, succeeded=False, error=str(exc))
        return DeletionOutcome(id=ref.id, collection=collection, succeeded=True)
