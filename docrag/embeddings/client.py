"""
OpenAI-compatible embeddings client.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import openai
from openai import OpenAI

from docrag.config import Settings, settings
from docrag.errors import EmbeddingError

DEFAULT_EMBEDDING_MODEL = settings.embedding_model_name
DEFAULT_EMBED_BATCH_SIZE = settings.embed_batch_size

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def build_openai_client(config: Settings | None = None) -> OpenAI:
    config = config or settings
    api_key = config.openai_api_key.get_secret_value() if config.openai_api_key else None
    return OpenAI(api_key=api_key, base_url=config.openai_base_url)


class EmbeddingsClient:
    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_EMBED_BATCH_SIZE,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.batch_size = batch_size
        self.client = client or build_openai_client()

    def embed_texts(self, texts: Sequence[str], timeout: float | None = None) -> List[List[float]]:
        if not texts:
            return []

        embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i : i + self.batch_size])
            kwargs: Dict[str, Any] = {"model": self.model, "input": batch}
            if timeout is not None:
                kwargs["timeout"] = timeout
            try:
                response = self.client.embeddings.create(**kwargs)
            except _RETRYABLE_ERRORS as exc:
                raise EmbeddingError(f"Embedding request failed: {exc}", retryable=True) from exc
            except openai.OpenAIError as exc:
                raise EmbeddingError(f"Embedding request rejected: {exc}", retryable=False) from exc

            if len(response.data) != len(batch):
                raise EmbeddingError(
                    f"Embedding response has {len(response.data)} vectors for {len(batch)} inputs"
                )
            # The API may return items out of order; `index` is authoritative.
            ordered = sorted(response.data, key=lambda item: item.index)
            embeddings.extend([list(item.embedding) for item in ordered])
            logger.debug("Embedded batch", extra={"count": len(batch), "offset": i, "model": self.model})
        return embeddings

    def embed_text(self, text: str, timeout: float | None = None) -> List[float]:
        vectors = self.embed_texts([text], timeout=timeout)
        if not vectors or not vectors[0]:
            raise EmbeddingError("Embedding response was empty")
        return vectors[0]

    # EmbeddingGateway protocol
    def embed(self, text: str, *, timeout: float | None = None) -> List[float]:
        return self.embed_text(text, timeout=timeout)

    def embed_batch(self, texts: Sequence[str], *, timeout: float | None = None) -> List[List[float]]:
        return self.embed_texts(texts, timeout=timeout)


__all__ = ["EmbeddingsClient", "DEFAULT_EMBEDDING_MODEL", "build_openai_client"]
