"""Embedding gateways that turn text into fixed-size vectors."""

from __future__ import annotations

import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from cwa.core.exceptions import EmbeddingUnavailable
from cwa.core.logger import get_logger

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class EmbeddingGateway(ABC):
    """Produce one vector per text; failures raise :class:`EmbeddingUnavailable`."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector returned by :meth:`embed`."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Return the embedding of ``text``."""

    def embed_query(self, text: str) -> List[float]:
        """Embed a search query; gateways with asymmetric models override this."""
        return self.embed(text)


class HashEmbeddingGateway(EmbeddingGateway):
    """Deterministic feature-hashing embedder.

    Each lower-cased word token is hashed to a signed bucket and the result is
    L2-normalised, so texts sharing words land close together. Useful offline
    and in tests where no model is available.
    """

    def __init__(self, dimension: int = 768) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        tokens = _TOKEN_PATTERN.findall(text.lower())
        if not tokens:
            tokens = [text]
        for token in tokens:
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:8], "big") % self._dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


class OllamaEmbeddingGateway(EmbeddingGateway):
    """Call an Ollama server's ``/api/embeddings`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        *,
        model: str = "nomic-embed-text",
        dimension: int = 768,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._dimension = dimension
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._logger = get_logger(self.__class__.__name__)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model(self) -> str:
        return self._model

    def embed(self, text: str) -> List[float]:
        url = f"{self._base_url}/api/embeddings"
        try:
            response = self._client.post(url, json={"model": self._model, "prompt": text})
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailable(f"Failed to reach Ollama at {self._base_url}: {exc}") from exc

        if response.status_code >= 400:
            raise EmbeddingUnavailable(
                f"Ollama embedding error ({response.status_code}): {response.text}"
            )

        try:
            embedding = response.json()["embedding"]
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingUnavailable(f"Malformed Ollama embedding response: {exc}") from exc

        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingUnavailable("Ollama returned an empty embedding")
        if len(embedding) != self._dimension:
            raise EmbeddingUnavailable(
                f"Ollama model '{self._model}' returned {len(embedding)} dimensions, "
                f"expected {self._dimension}"
            )
        return [float(value) for value in embedding]

    def health_check(self) -> bool:
        """Return True when the server answers and lists the configured model."""
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            response.raise_for_status()
            models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("Ollama health check failed: %s", exc)
            return False
        return any(str(entry.get("name", "")).startswith(self._model) for entry in models)

    def close(self) -> None:
        self._client.close()
