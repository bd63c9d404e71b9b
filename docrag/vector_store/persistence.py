"""
JSON persistence for VectorStore with atomic writes and validated loads.

File layout::

    {
      "schema_version": 1,
      "embedding_dim": 1024,
      "chunks": [
        {"id": "...", "content": "...", "embedding": [...], "metadata": {"source": "..."}}
      ]
    }
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from docrag.errors import CorruptStore, DimensionMismatch, StoreIOError, ValidationError
from docrag.vector_store.base import ChunkRecord
from docrag.vector_store.memory_store import VectorStore

SCHEMA_VERSION = 1
SUPPORTED_SCHEMA_VERSIONS = frozenset({SCHEMA_VERSION})

logger = logging.getLogger(__name__)


class StoredChunk(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    content: str
    embedding: List[float]
    metadata: Dict[str, str] = Field(default_factory=dict)


class StoreFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schema_version: int
    embedding_dim: Optional[int] = None
    chunks: List[StoredChunk] = Field(default_factory=list)


def save_store(store: VectorStore, path: str | os.PathLike) -> Path:
    """
    Write ``store`` to ``path`` atomically.

    The JSON is written to a temporary file next to the target, fsynced and
    then moved over ``path`` with ``os.replace``; readers see either the old
    file or the complete new one.
    """
    target = Path(path)
    payload = StoreFile(
        schema_version=SCHEMA_VERSION,
        embedding_dim=store.embedding_dim,
        chunks=[
            StoredChunk(id=r.id, content=r.content, embedding=list(r.embedding), metadata=dict(r.metadata))
            for r in store
        ],
    )
    data = payload.model_dump_json(indent=2)

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    except OSError as exc:
        raise StoreIOError(f"Cannot prepare vector store file {target}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        # mkstemp creates 0600; an overwritten store keeps its previous mode.
        if target.exists():
            os.chmod(tmp_name, stat.S_IMODE(target.stat().st_mode))
        os.replace(tmp_name, target)
        _fsync_dir(target.parent)
    except OSError as exc:
        _discard(tmp_name)
        raise StoreIOError(f"Cannot write vector store file {target}: {exc}") from exc
    except BaseException:
        _discard(tmp_name)
        raise

    logger.info(
        "Vector store saved",
        extra={"path": str(target), "chunks": len(store), "embedding_dim": store.embedding_dim},
    )
    return target


def load_store(path: str | os.PathLike) -> VectorStore:
    """
    Read a store written by :func:`save_store` and check its invariants.

    Raises ``StoreIOError`` when the file cannot be read and ``CorruptStore``
    when its content is malformed, of an unknown schema version, or violates
    the dimension/unique-id invariants.
    """
    source = Path(path)
    try:
        raw = source.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptStore(str(source), f"not UTF-8 text ({exc})") from exc
    except OSError as exc:
        raise StoreIOError(f"Cannot read vector store file {source}: {exc}") from exc

    try:
        parsed = StoreFile.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise CorruptStore(str(source), f"schema validation failed: {exc.error_count()} error(s)") from exc

    if parsed.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise CorruptStore(str(source), f"unsupported schema_version {parsed.schema_version}")
    if parsed.embedding_dim is None and parsed.chunks:
        raise CorruptStore(str(source), "embedding_dim missing for a non-empty store")

    records = [
        ChunkRecord(id=c.id, content=c.content, embedding=c.embedding, metadata=c.metadata)
        for c in parsed.chunks
    ]
    try:
        store = VectorStore.from_records(records, parsed.embedding_dim)
    except DimensionMismatch as exc:
        raise CorruptStore(
            str(source), f"embedding length {exc.actual} differs from declared embedding_dim {exc.expected}"
        ) from exc
    except ValidationError as exc:
        raise CorruptStore(str(source), str(exc)) from exc

    logger.info(
        "Vector store loaded",
        extra={"path": str(source), "chunks": len(store), "embedding_dim": store.embedding_dim},
    )
    return store


def _fsync_dir(directory: Path) -> None:
    """Persist the rename itself. Directories cannot be opened on Windows."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    dir_fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except FileNotFoundError:
        pass


__all__ = ["SCHEMA_VERSION", "SUPPORTED_SCHEMA_VERSIONS", "StoreFile", "StoredChunk", "save_store", "load_store"]
