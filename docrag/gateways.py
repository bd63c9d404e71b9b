"""
Capability interfaces for the external embedding and generation services.

The engine never talks to a backend directly. It receives plain callables
(``embed_fn(text, timeout=...)``, ``generate_fn(prompt, timeout=...)``) or
objects implementing the protocols below, and threads a per-call timeout
derived from a ``Deadline`` through to them.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from docrag.errors import EmbeddingError, GenerationError

logger = logging.getLogger(__name__)

EmbedFn = Callable[..., Sequence[float]]
EmbedBatchFn = Callable[..., Sequence[Sequence[float]]]
GenerateFn = Callable[..., str]


class EmbeddingGateway(Protocol):
    def embed(self, text: str, *, timeout: float | None = None) -> List[float]:
        ...

    def embed_batch(self, texts: Sequence[str], *, timeout: float | None = None) -> List[List[float]]:
        ...


class GenerationGateway(Protocol):
    def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        ...


@dataclass
class Deadline:
    """Absolute point in time after which external calls must not start."""

    timeout: Optional[float] = None
    started_at: float = field(default_factory=time.monotonic)

    def remaining(self) -> Optional[float]:
        """Seconds left, ``None`` when unbounded, never negative."""
        if self.timeout is None:
            return None
        return max(0.0, self.timeout - (time.monotonic() - self.started_at))

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0


def _as_vector(raw: object) -> List[float]:
    """Coerce a gateway response to a finite float vector or raise ``EmbeddingError``."""
    try:
        vector = [float(x) for x in raw]  # type: ignore[union-attr]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(f"Embedding gateway returned a malformed vector: {exc}") from exc
    if not all(math.isfinite(x) for x in vector):
        raise EmbeddingError("Embedding gateway returned non-finite values")
    return vector


def call_embed(embed_fn: EmbedFn, text: str, deadline: Deadline | None = None) -> List[float]:
    """
    Invoke an embedding callable, normalising failures to ``EmbeddingError``.

    Gateway errors raised by the callable pass through untouched; anything else
    is wrapped as non-retryable with the original exception chained.
    """
    deadline = deadline or Deadline()
    if deadline.expired():
        raise EmbeddingError("Deadline exceeded before embedding request", retryable=True)

    try:
        vector = embed_fn(text, timeout=deadline.remaining())
    except EmbeddingError:
        raise
    except Exception as exc:
        logger.warning("Embedding call failed", extra={"error": repr(exc)})
        raise EmbeddingError(f"Embedding failed: {exc}") from exc

    return _as_vector(vector)


def call_embed_batch(
    embed_batch_fn: EmbedBatchFn,
    texts: Sequence[str],
    deadline: Deadline | None = None,
) -> List[List[float]]:
    """Batch variant of :func:`call_embed`; output order matches ``texts``."""
    deadline = deadline or Deadline()
    if deadline.expired():
        raise EmbeddingError("Deadline exceeded before embedding request", retryable=True)

    try:
        vectors = embed_batch_fn(list(texts), timeout=deadline.remaining())
    except EmbeddingError:
        raise
    except Exception as exc:
        logger.warning("Batch embedding call failed", extra={"error": repr(exc), "count": len(texts)})
        raise EmbeddingError(f"Batch embedding failed: {exc}") from exc

    try:
        count = len(vectors)
    except TypeError as exc:
        raise EmbeddingError(f"Embedding gateway returned {type(vectors).__name__}, not a list") from exc
    if count != len(texts):
        raise EmbeddingError(f"Embedding gateway returned {count} vectors for {len(texts)} inputs")
    return [_as_vector(vector) for vector in vectors]


def call_generate(generate_fn: GenerateFn, prompt: str, deadline: Deadline | None = None) -> str:
    """Invoke a generation callable, normalising failures to ``GenerationError``."""
    deadline = deadline or Deadline()
    if deadline.expired():
        raise GenerationError("Deadline exceeded before generation request", retryable=True)

    try:
        return generate_fn(prompt, timeout=deadline.remaining())
    except GenerationError:
        raise
    except Exception as exc:
        logger.warning("Generation call failed", extra={"error": repr(exc)})
        raise GenerationError(f"Generation failed: {exc}") from exc


__all__ = [
    "EmbedFn",
    "EmbedBatchFn",
    "GenerateFn",
    "EmbeddingGateway",
    "GenerationGateway",
    "Deadline",
    "call_embed",
    "call_embed_batch",
    "call_generate",
]
