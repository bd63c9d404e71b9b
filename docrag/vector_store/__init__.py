"""
Vector store model, persistence, search and factory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from docrag.config import settings
from docrag.vector_store.base import CHUNK_INDEX_KEY, SOURCE_KEY, ChunkRecord, ScoredChunk
from docrag.vector_store.memory_store import VectorStore
from docrag.vector_store.persistence import SCHEMA_VERSION, load_store, save_store
from docrag.vector_store.similarity import cosine_similarity, search

logger = logging.getLogger(__name__)


def get_vector_store(path: str | None = None, create_missing: bool = False) -> VectorStore:
    """
    Load the store at ``path`` (default: configured VECTOR_STORE_PATH).

    With ``create_missing`` an absent file yields a fresh empty store instead
    of ``StoreIOError``.
    """
    store_path = Path(path or settings.vector_store_path)
    if create_missing and not store_path.exists():
        logger.info("No vector store file yet, starting empty", extra={"path": str(store_path)})
        return VectorStore.create()
    return load_store(store_path)


__all__ = [
    "ChunkRecord",
    "ScoredChunk",
    "VectorStore",
    "SCHEMA_VERSION",
    "SOURCE_KEY",
    "CHUNK_INDEX_KEY",
    "cosine_similarity",
    "get_vector_store",
    "load_store",
    "save_store",
    "search",
]
