"""
Vector store shared types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

# Reserved metadata keys; any other key is carried through untouched.
SOURCE_KEY = "source"
CHUNK_INDEX_KEY = "chunk_index"
RESERVED_METADATA_KEYS = (SOURCE_KEY, CHUNK_INDEX_KEY)


@dataclass(frozen=True)
class ChunkRecord:
    """
    One stored chunk. Immutable: records handed out by a store are the store's
    own, so the embedding is a tuple and metadata a read-only mapping.
    """

    id: str
    content: str
    embedding: Tuple[float, ...]
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "embedding", tuple(self.embedding))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass(frozen=True)
class ScoredChunk:
    """A search hit: similarity score, the stored record and its 1-based rank."""

    score: float
    chunk: ChunkRecord
    rank: int


__all__ = [
    "ChunkRecord",
    "ScoredChunk",
    "SOURCE_KEY",
    "CHUNK_INDEX_KEY",
    "RESERVED_METADATA_KEYS",
]
