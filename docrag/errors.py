"""
Exception hierarchy for the vector store engine and its gateways.
"""

from __future__ import annotations


class DocragError(Exception):
    """Base exception for all docrag errors."""


class ValidationError(DocragError):
    """
    Malformed caller input that the caller can correct locally.

    Raised when:
    - ``k`` is not an integer
    - a query is blank
    - an embedding is empty or metadata is not a string mapping
    """


class DimensionMismatch(DocragError):
    """Embedding length differs from the store's established dimension."""

    def __init__(self, expected: int | None, actual: int, message: str | None = None) -> None:
        super().__init__(message or f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class NotFound(DocragError, KeyError):
    """No chunk with the requested id."""

    def __init__(self, chunk_id: str) -> None:
        super().__init__(chunk_id)
        self.chunk_id = chunk_id

    def __str__(self) -> str:
        return f"Chunk not found: {self.chunk_id}"


class CorruptStore(DocragError):
    """
    Persisted store failed to parse or violates a store invariant.

    Raised when:
    - the file is not valid JSON or does not match the store schema
    - the schema version is unknown
    - an embedding length differs from the declared dimension
    - chunk ids are duplicated
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Corrupt vector store at {path}: {reason}")
        self.path = path
        self.reason = reason


class StoreIOError(DocragError, OSError):
    """Reading or writing the store file failed."""


class GatewayError(DocragError):
    """
    Failure of an external capability (embedding or generation).

    ``retryable`` is a hint for callers layering retry/backoff on top;
    nothing in docrag retries on its own.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class EmbeddingError(GatewayError):
    """The embedding gateway failed to produce a vector."""


class GenerationError(GatewayError):
    """The generation gateway failed to produce an answer."""


__all__ = [
    "DocragError",
    "ValidationError",
    "DimensionMismatch",
    "NotFound",
    "CorruptStore",
    "StoreIOError",
    "GatewayError",
    "EmbeddingError",
    "GenerationError",
]
