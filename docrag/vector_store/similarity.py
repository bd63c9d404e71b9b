"""
Exact cosine-similarity search over a VectorStore.

Implements:
- Cosine similarity scoring with zero-vector safety
- Top-K retrieval by full scan
- Deterministic ordering: score descending, insertion order on ties
"""

from __future__ import annotations

import logging
import math
import time
from typing import List, Sequence

from docrag.errors import DimensionMismatch, ValidationError
from docrag.vector_store.base import ScoredChunk
from docrag.vector_store.memory_store import VectorStore

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatch(len(vec_a), len(vec_b))

    dot_product = math.fsum(a * b for a, b in zip(vec_a, vec_b))
    norm_sq_a = math.fsum(a * a for a in vec_a)
    norm_sq_b = math.fsum(b * b for b in vec_b)

    if norm_sq_a == 0.0 or norm_sq_b == 0.0:
        return 0.0

    # sqrt of the product rather than product of sqrts keeps sim(v, v) at exactly 1.0
    similarity = dot_product / math.sqrt(norm_sq_a * norm_sq_b)
    return max(-1.0, min(1.0, similarity))


def _check_k(k: int) -> None:
    if isinstance(k, bool) or not isinstance(k, int):
        raise ValidationError(f"k must be an int, got {type(k).__name__}")


def search(store: VectorStore, query_vector: Sequence[float], k: int) -> List[ScoredChunk]:
    """
    Rank every chunk in ``store`` against ``query_vector`` and return the top ``k``.

    Args:
        store: Store to scan
        query_vector: Query embedding, same length as ``store.embedding_dim``
        k: Maximum number of results; ``k <= 0`` yields an empty list

    Returns:
        ScoredChunk list sorted by score descending, ties by insertion order,
        ranks starting at 1.

    Raises:
        ValidationError: If ``k`` is not an int or the query has non-finite values
        DimensionMismatch: If the query length differs from the store dimension
    """
    _check_k(k)
    if store.embedding_dim is None:
        return []
    if len(query_vector) != store.embedding_dim:
        raise DimensionMismatch(store.embedding_dim, len(query_vector))
    query = [float(x) for x in query_vector]
    if not all(math.isfinite(x) for x in query):
        raise ValidationError("Query vector values must be finite")
    if k <= 0:
        return []

    start_time = time.perf_counter()

    scored = [
        (cosine_similarity(query, record.embedding), position, record)
        for position, record in enumerate(store)
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))

    results = [
        ScoredChunk(score=score, chunk=record, rank=rank)
        for rank, (score, _, record) in enumerate(scored[:k], start=1)
    ]

    logger.debug(
        "Similarity search completed",
        extra={
            "candidates": len(scored),
            "returned": len(results),
            "top_score": round(results[0].score, 3) if results else None,
            "elapsed_ms": round((time.perf_counter() - start_time) * 1000, 2),
        },
    )
    return results


__all__ = ["cosine_similarity", "search"]
