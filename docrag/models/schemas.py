from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


# Indexing
class IndexResponse(BaseModel):
    """Outcome of building and saving a vector store."""

    indexed_chunks: int = Field(..., ge=0, description="Chunks added to the store")
    skipped_chunks: int = Field(default=0, ge=0, description="Chunks below the minimum content length")
    embedding_dim: int | None = Field(default=None, gt=0)
    elapsed_sec: float | None = Field(None, ge=0, description="Wall time of the indexing run")
    store_path: str


# RAG
class AskRequest(BaseModel):
    """Question against the loaded vector store."""

    question: str = Field(..., min_length=1, description="User question")
    top_k: int | None = Field(
        default=None,
        ge=0,
        description="Override the number of chunks retrieved for context",
    )
    max_context_chars: int | None = Field(default=None, gt=0, description="Override the context budget")


class ContextChunk(BaseModel):
    chunk_id: str
    text: str
    metadata: Dict[str, str]


class RetrievalScore(BaseModel):
    chunk_id: str
    score: float
    rank: int


class AskResponse(BaseModel):
    answer: str
    context_chunks: List[ContextChunk]
    raw_scores: List[RetrievalScore] | None = None


__all__ = [
    "IndexResponse",
    "AskRequest",
    "ContextChunk",
    "AskResponse",
    "RetrievalScore",
]
