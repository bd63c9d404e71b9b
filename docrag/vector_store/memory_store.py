"""
In-memory chunk store with a fixed embedding dimension.
"""

from __future__ import annotations

import logging
import math
import uuid
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from docrag.errors import DimensionMismatch, NotFound, ValidationError
from docrag.vector_store.base import ChunkRecord

logger = logging.getLogger(__name__)


def _validated_metadata(metadata: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if metadata is None:
        return {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValidationError(f"Metadata must map str to str, got {key!r}: {value!r}")
    return dict(metadata)


def _validated_vector(embedding: Sequence[float]) -> Tuple[float, ...]:
    vector = tuple(float(x) for x in embedding)
    if not vector:
        raise ValidationError("Embedding must not be empty")
    if not all(math.isfinite(x) for x in vector):
        raise ValidationError("Embedding values must be finite")
    return vector


class VectorStore:
    """
    Ordered collection of chunk records sharing one embedding dimension.

    ``embedding_dim`` stays ``None`` until the first chunk is added and is fixed
    from then on. Insertion order is preserved and used to break score ties
    during search.

    Not safe for concurrent mutation. Index in one phase, then share the store
    read-only between queries; if indexing has to continue while queries run,
    index into ``copy()`` and swap the reference once done.
    """

    def __init__(self) -> None:
        self._records: List[ChunkRecord] = []
        self._positions: Dict[str, int] = {}
        self._embedding_dim: Optional[int] = None

    @classmethod
    def create(cls) -> "VectorStore":
        return cls()

    @classmethod
    def from_records(cls, records: Iterable[ChunkRecord], embedding_dim: Optional[int]) -> "VectorStore":
        """
        Rebuild a store from existing records, keeping their ids and order.

        Raises ``ValidationError`` for duplicate ids, a non-positive dimension
        or non-finite embedding values, and ``DimensionMismatch`` for records of
        the wrong length.
        """
        if embedding_dim is not None and embedding_dim <= 0:
            raise ValidationError(f"embedding_dim must be positive, got {embedding_dim}")

        store = cls()
        for record in records:
            if record.id in store._positions:
                raise ValidationError(f"Duplicate chunk id: {record.id}")
            if embedding_dim is None or len(record.embedding) != embedding_dim:
                raise DimensionMismatch(embedding_dim, len(record.embedding))
            store._append(
                ChunkRecord(
                    id=record.id,
                    content=record.content,
                    embedding=_validated_vector(record.embedding),
                    metadata=_validated_metadata(record.metadata),
                )
            )
        store._embedding_dim = embedding_dim
        return store

    @property
    def embedding_dim(self) -> Optional[int]:
        return self._embedding_dim

    @property
    def records(self) -> Tuple[ChunkRecord, ...]:
        return tuple(self._records)

    def add_chunk(
        self,
        content: str,
        embedding: Sequence[float],
        metadata: Optional[Mapping[str, str]] = None,
        *,
        allow_empty: bool = True,
    ) -> str:
        """
        Append a chunk and return its newly assigned id.

        The first chunk fixes ``embedding_dim``; later chunks must match it or
        ``DimensionMismatch`` is raised. Content is not filtered unless
        ``allow_empty`` is False, in which case blank content raises
        ``ValidationError``. A failed call leaves the store unchanged.
        """
        if not isinstance(content, str):
            raise ValidationError(f"Chunk content must be str, got {type(content).__name__}")
        if not allow_empty and not content.strip():
            raise ValidationError("Chunk content must not be blank")

        vector = _validated_vector(embedding)
        if self._embedding_dim is not None and len(vector) != self._embedding_dim:
            raise DimensionMismatch(self._embedding_dim, len(vector))

        record = ChunkRecord(
            id=self._new_id(),
            content=content,
            embedding=vector,
            metadata=_validated_metadata(metadata),
        )
        if self._embedding_dim is None:
            self._embedding_dim = len(vector)
            logger.debug("Embedding dimension established", extra={"embedding_dim": self._embedding_dim})
        self._append(record)
        return record.id

    def get(self, chunk_id: str) -> ChunkRecord:
        position = self._positions.get(chunk_id)
        if position is None:
            raise NotFound(chunk_id)
        return self._records[position]

    def size(self) -> int:
        return len(self._records)

    def copy(self) -> "VectorStore":
        """Independent snapshot; mutating the copy never affects this store."""
        return VectorStore.from_records(self._records, self._embedding_dim)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ChunkRecord]:
        return iter(tuple(self._records))

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._positions

    def __repr__(self) -> str:
        return f"VectorStore(size={len(self._records)}, embedding_dim={self._embedding_dim})"

    def _append(self, record: ChunkRecord) -> None:
        self._positions[record.id] = len(self._records)
        self._records.append(record)

    def _new_id(self) -> str:
        chunk_id = str(uuid.uuid4())
        while chunk_id in self._positions:
            chunk_id = str(uuid.uuid4())
        return chunk_id


__all__ = ["VectorStore"]
