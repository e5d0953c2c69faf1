"""FAISS-based vector store for offline use."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import faiss
import numpy as np

from cwa.core.exceptions import CollectionUnavailable, VectorStoreError
from cwa.core.logger import get_logger

from ..payload import flatten_payload
from ..point_id import uuid_to_point_id
from ..records import Payload
from .base import VectorSearchResult, VectorStore


class _FaissCollection:
    """One cosine index plus the id and payload bookkeeping FAISS lacks."""

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self.point_ids: Dict[str, int] = {}
        self.payloads: Dict[int, Payload] = {}
        self.next_id = 0

    def labels(self) -> Dict[int, str]:
        return {label: point_id for point_id, label in self.point_ids.items()}


class FaissVectorStore(VectorStore):
    """Keep one normalised inner-product FAISS index per collection.

    When ``directory`` is given each collection is written to
    ``<name>.faiss`` with a ``<name>.json`` sidecar after every mutation and
    loaded back on :meth:`ensure_collection`.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self._directory = Path(directory) if directory else None
        self._collections: Dict[str, _FaissCollection] = {}
        self._lock = threading.RLock()
        self._logger = get_logger(self.__class__.__name__)

    def ensure_collection(self, name: str, dim: int) -> None:
        if dim <= 0:
            raise VectorStoreError(f"Collection '{name}' needs a positive dimension, got {dim}")
        with self._lock:
            collection = self._collections.get(name)
            if collection is None:
                collection = self._load(name) or _FaissCollection(dim)
                self._collections[name] = collection
                self._logger.debug("FAISS collection '%s' ready (dim=%d)", name, collection.dimension)
            if collection.dimension != dim:
                raise VectorStoreError(
                    f"Collection '{name}' has dimension {collection.dimension}, requested {dim}"
                )

    def upsert(
        self,
        collection: str,
        record_id: str,
        vector: Sequence[float],
        payload: Mapping[str, object],
    ) -> None:
        flat = flatten_payload(payload)
        point_id = uuid_to_point_id(record_id)
        with self._lock:
            target = self._require(collection)
            matrix = self._as_matrix(vector, target.dimension, collection)
            label = target.point_ids.get(point_id)
            if label is not None:
                target.index.remove_ids(np.asarray([label], dtype="int64"))
            else:
                label = target.next_id
                target.next_id += 1
                target.point_ids[point_id] = label
            target.index.add_with_ids(matrix, np.asarray([label], dtype="int64"))
            target.payloads[label] = flat
            self._save(collection, target)

    def search(
        self, collection: str, vector: Sequence[float], *, top_k: int = 10
    ) -> List[VectorSearchResult]:
        return self._search(collection, vector, top_k, project_id=None)

    def search_filtered(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 10,
        project_id: str,
    ) -> List[VectorSearchResult]:
        return self._search(collection, vector, top_k, project_id=project_id)

    def delete(self, collection: str, record_id: str) -> None:
        point_id = uuid_to_point_id(record_id)
        with self._lock:
            target = self._collections.get(collection)
            if target is None:
                return
            label = target.point_ids.pop(point_id, None)
            if label is None:
                return
            target.index.remove_ids(np.asarray([label], dtype="int64"))
            target.payloads.pop(label, None)
            self._save(collection, target)

    def count(self, collection: str) -> int:
        with self._lock:
            return int(self._require(collection).index.ntotal)

    def exists(self, collection: str, record_id: str) -> bool:
        with self._lock:
            target = self._collections.get(collection)
            return target is not None and uuid_to_point_id(record_id) in target.point_ids

    def _search(
        self,
        collection: str,
        vector: Sequence[float],
        top_k: int,
        *,
        project_id: Optional[str],
    ) -> List[VectorSearchResult]:
        if top_k <= 0:
            return []
        with self._lock:
            target = self._require(collection)
            total = int(target.index.ntotal)
            if total == 0:
                return []
            query = self._as_matrix(vector, target.dimension, collection)
            # Filtering happens after retrieval, so a filtered search scans everything.
            k = total if project_id is not None else min(top_k, total)
            similarities, labels = target.index.search(query, k)
            lookup = target.labels()
            results: List[VectorSearchResult] = []
            for score, label in zip(similarities[0], labels[0]):
                if label == -1:
                    continue
                payload = target.payloads.get(int(label), {})
                if project_id is not None and payload.get("project_id") != project_id:
                    continue
                results.append(VectorSearchResult(lookup[int(label)], float(score), payload))
                if len(results) >= top_k:
                    break
            return results

    def _require(self, collection: str) -> _FaissCollection:
        target = self._collections.get(collection)
        if target is None:
            raise CollectionUnavailable(collection, "collection has not been created")
        return target

    @staticmethod
    def _as_matrix(vector: Sequence[float], dimension: int, collection: str) -> np.ndarray:
        matrix = np.asarray(vector, dtype="float32").reshape(1, -1)
        if matrix.shape[1] != dimension:
            raise VectorStoreError(
                f"Vector dimension {matrix.shape[1]} does not match collection "
                f"'{collection}' dimension {dimension}"
            )
        matrix = np.ascontiguousarray(matrix)
        faiss.normalize_L2(matrix)
        return matrix

    def _paths(self, name: str) -> tuple[Path, Path]:
        assert self._directory is not None
        return self._directory / f"{name}.faiss", self._directory / f"{name}.json"

    def _save(self, name: str, collection: _FaissCollection) -> None:
        if self._directory is None:
            return
        index_path, meta_path = self._paths(name)
        self._directory.mkdir(parents=True, exist_ok=True)
        meta = {
            "dimension": collection.dimension,
            "next_id": collection.next_id,
            "ntotal": int(collection.index.ntotal),
            "point_ids": collection.point_ids,
            "payloads": {str(label): payload for label, payload in collection.payloads.items()},
        }
        index_tmp = index_path.with_name(index_path.name + ".tmp")
        meta_tmp = meta_path.with_name(meta_path.name + ".tmp")
        faiss.write_index(collection.index, str(index_tmp))
        meta_tmp.write_text(json.dumps(meta, ensure_ascii=False), encoding="utf-8")
        # sidecar last: _load rejects a sidecar whose ntotal disagrees with the index
        os.replace(index_tmp, index_path)
        os.replace(meta_tmp, meta_path)
        self._logger.debug("FAISS collection '%s' saved to %s", name, index_path)

    def _load(self, name: str) -> Optional[_FaissCollection]:
        if self._directory is None:
            return None
        index_path, meta_path = self._paths(name)
        if not index_path.exists() or not meta_path.exists():
            return None
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        collection = _FaissCollection(int(meta["dimension"]))
        collection.index = faiss.read_index(str(index_path))
        stored_total = int(meta.get("ntotal", len(meta["point_ids"])))
        if collection.index.ntotal != stored_total:
            raise VectorStoreError(
                f"FAISS collection '{name}' is inconsistent: index holds {collection.index.ntotal} "
                f"vectors, sidecar expects {stored_total}"
            )
        collection.next_id = int(meta["next_id"])
        collection.point_ids = {key: int(value) for key, value in meta["point_ids"].items()}
        collection.payloads = {int(label): payload for label, payload in meta["payloads"].items()}
        self._logger.debug("FAISS collection '%s' loaded from %s", name, index_path)
        return collection
