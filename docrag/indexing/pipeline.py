"""
Indexing pipeline: embed chunk texts, add them to a vector store, save it.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from tqdm import tqdm

from docrag.config import Settings, settings
from docrag.embeddings.client import EmbeddingsClient
from docrag.gateways import Deadline, EmbedBatchFn, EmbedFn, call_embed, call_embed_batch
from docrag.models.schemas import IndexResponse
from docrag.vector_store.base import CHUNK_INDEX_KEY, SOURCE_KEY
from docrag.vector_store.memory_store import VectorStore
from docrag.vector_store.persistence import save_store

logger = logging.getLogger(__name__)

# (content, metadata) pairs in source order
ChunkSource = Iterable[Tuple[str, Mapping[str, str]]]


@dataclass
class IndexStats:
    added: int = 0
    skipped: int = 0


def _prepare(
    chunks: ChunkSource,
    source: Optional[str],
    min_content_chars: int,
    stats: IndexStats,
) -> List[Tuple[str, Dict[str, str]]]:
    prepared: List[Tuple[str, Dict[str, str]]] = []
    for position, (content, metadata) in enumerate(chunks):
        if len(content.strip()) < min_content_chars:
            stats.skipped += 1
            continue
        meta = dict(metadata or {})
        meta.setdefault(CHUNK_INDEX_KEY, str(position))
        if source is not None:
            meta.setdefault(SOURCE_KEY, source)
        prepared.append((content, meta))
    return prepared


def create_store_from_chunks(
    chunks: ChunkSource,
    embed_fn: EmbedFn,
    *,
    embed_batch_fn: EmbedBatchFn | None = None,
    batch_size: int = 64,
    store: VectorStore | None = None,
    source: str | None = None,
    min_content_chars: int = 0,
    timeout: float | None = None,
    stats: IndexStats | None = None,
) -> VectorStore:
    """
    Embed every chunk and add it to ``store`` (a new store if omitted).

    A chunk is added only after its embedding is in hand. If a gateway call
    fails the error propagates and a caller-supplied ``store`` keeps every
    chunk added before the failure. ``timeout`` bounds each gateway call, not
    the whole run.
    """
    store = store if store is not None else VectorStore.create()
    stats = stats if stats is not None else IndexStats()
    prepared = _prepare(chunks, source, min_content_chars, stats)
    if stats.skipped:
        logger.info(
            "Skipped short chunks",
            extra={"skipped": stats.skipped, "min_content_chars": min_content_chars},
        )

    if embed_batch_fn is None:
        for content, meta in tqdm(prepared, desc="Indexing", unit="chunks"):
            embedding = call_embed(embed_fn, content, Deadline(timeout))
            store.add_chunk(content, embedding, meta)
            stats.added += 1
    else:
        for i in tqdm(range(0, len(prepared), batch_size), desc="Indexing", unit="batches"):
            batch = prepared[i : i + batch_size]
            embeddings = call_embed_batch(embed_batch_fn, [content for content, _ in batch], Deadline(timeout))
            for (content, meta), embedding in zip(batch, embeddings):
                store.add_chunk(content, embedding, meta)
                stats.added += 1
            logger.debug("Indexed batch", extra={"count": len(batch), "offset": i})

    logger.info(
        "Chunks indexed",
        extra={"added": stats.added, "skipped": stats.skipped, "embedding_dim": store.embedding_dim},
    )
    return store


@dataclass
class IndexSummary:
    indexed_chunks: int
    skipped_chunks: int
    embedding_dim: Optional[int]
    elapsed_sec: float
    store_path: str

    def to_response(self) -> IndexResponse:
        return IndexResponse(
            indexed_chunks=self.indexed_chunks,
            skipped_chunks=self.skipped_chunks,
            embedding_dim=self.embedding_dim,
            elapsed_sec=round(self.elapsed_sec, 2),
            store_path=self.store_path,
        )


class IndexingService:
    """Build a vector store from a chunk source and persist it."""

    def __init__(
        self,
        embeddings_client: EmbeddingsClient,
        store_path: str | os.PathLike | None = None,
        config: Settings | None = None,
        logger_: logging.Logger | None = None,
    ) -> None:
        self.embeddings_client = embeddings_client
        self.config = config or settings
        self.store_path = str(store_path or self.config.vector_store_path)
        self.logger = logger_ or logging.getLogger(__name__)

    def run(self, chunks: ChunkSource, source: str | None = None) -> IndexSummary:
        started = time.time()
        stats = IndexStats()
        store = create_store_from_chunks(
            chunks,
            self.embeddings_client.embed,
            embed_batch_fn=self.embeddings_client.embed_batch,
            batch_size=self.config.embed_batch_size,
            source=source,
            min_content_chars=self.config.min_chunk_chars,
            stats=stats,
        )
        save_store(store, self.store_path)
        elapsed = time.time() - started
        self.logger.info(
            "IndexingService completed",
            extra={"indexed_chunks": stats.added, "elapsed_sec": round(elapsed, 2), "path": self.store_path},
        )
        return IndexSummary(
            indexed_chunks=stats.added,
            skipped_chunks=stats.skipped,
            embedding_dim=store.embedding_dim,
            elapsed_sec=elapsed,
            store_path=self.store_path,
        )


__all__ = ["ChunkSource", "IndexStats", "IndexSummary", "IndexingService", "create_store_from_chunks"]
