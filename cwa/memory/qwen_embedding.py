"""Embedding gateway backed by a local Qwen3 embedding model."""

from __future__ import annotations

import os
from typing import List, Sequence

import numpy as np

from cwa.core.exceptions import EmbeddingUnavailable

from .embedding import EmbeddingGateway

try:  # pragma: no cover - runtime import guard
    import torch
    import torch.nn.functional as F
except Exception as exc:  # pragma: no cover
    raise EmbeddingUnavailable("torch is required: pip install 'cwa-memory[qwen]'") from exc

try:  # pragma: no cover
    from transformers import AutoModel, AutoTokenizer
except Exception as exc:  # pragma: no cover
    raise EmbeddingUnavailable("transformers is required: pip install 'cwa-memory[qwen]'") from exc


_MODEL_ENV = "QWEN3_EMBEDDING_PATH"
_DEFAULT_MODEL_ID = "Qwen/Qwen3-Embedding-0.6B"


def _last_token_pool(last_hidden_states, attention_mask):
    left_padding = attention_mask[:, -1].sum() == attention_mask.shape[0]
    if left_padding:
        return last_hidden_states[:, -1]
    sequence_lengths = attention_mask.sum(dim=1) - 1
    batch_indices = torch.arange(last_hidden_states.size(0), device=last_hidden_states.device)
    return last_hidden_states[batch_indices, sequence_lengths]


class QwenEmbeddingGateway(EmbeddingGateway):
    """Embed text with Qwen3 last-token pooling, truncated to ``dimension``.

    Qwen3 embeddings support Matryoshka truncation, so a smaller configured
    dimension keeps the leading components and re-normalises them.
    """

    def __init__(
        self,
        *,
        dimension: int,
        model_path: str | None = None,
        max_length: int = 8192,
        instruction: str | None = None,
    ) -> None:
        model_source = model_path or os.getenv(_MODEL_ENV, _DEFAULT_MODEL_ID)

        try:
            tokenizer = AutoTokenizer.from_pretrained(model_source, trust_remote_code=True)
            model = AutoModel.from_pretrained(model_source, trust_remote_code=True)
        except Exception as exc:
            raise EmbeddingUnavailable(f"Cannot load Qwen embedding model '{model_source}': {exc}") from exc

        if tokenizer.pad_token is None and tokenizer.eos_token:
            tokenizer.pad_token = tokenizer.eos_token
        tokenizer.padding_side = "left"

        hidden_size = getattr(model.config, "hidden_size", None)
        if hidden_size is not None and dimension > hidden_size:
            raise EmbeddingUnavailable(
                f"Requested dimension {dimension} exceeds model hidden size {hidden_size}"
            )

        model.eval()
        self._model = model
        self._tokenizer = tokenizer
        self._device = model.device
        self._max_length = max_length
        self._instruction = instruction
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_query(self, text: str) -> List[float]:
        if self._instruction:
            text = f"Instruct: {self._instruction}\nQuery:{text}"
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed documents as-is; the query instruction is added only by :meth:`embed_query`."""
        try:
            batch = self._tokenizer(
                list(texts),
                padding=True,
                truncation=True,
                max_length=self._max_length,
                return_tensors="pt",
            ).to(self._device)
            with torch.no_grad():
                outputs = self._model(**batch)
        except Exception as exc:
            raise EmbeddingUnavailable(f"Qwen embedding failed: {exc}") from exc

        pooled = _last_token_pool(outputs.last_hidden_state, batch["attention_mask"])
        truncated = pooled[:, : self._dimension]
        normalised = F.normalize(truncated, p=2, dim=1)
        vectors = normalised.cpu().numpy().astype(np.float32)
        return [vector.tolist() for vector in vectors]
