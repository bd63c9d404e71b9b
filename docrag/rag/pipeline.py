"""
RAG pipeline: embed question, rank stored chunks, assemble bounded context, generate answer.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Sequence

from docrag.config import Settings, settings
from docrag.embeddings.client import EmbeddingsClient
from docrag.errors import ValidationError
from docrag.gateways import Deadline, EmbedFn, GenerateFn, call_embed, call_generate
from docrag.llm.client import LLMClient
from docrag.models.schemas import AskRequest, AskResponse, ContextChunk, RetrievalScore
from docrag.vector_store import get_vector_store
from docrag.vector_store.base import ScoredChunk
from docrag.vector_store.memory_store import VectorStore
from docrag.vector_store.persistence import load_store
from docrag.vector_store.similarity import search

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "Based on the following context from a document, answer the question: {question}\n\n"
    "Context:\n{context}\n\n"
    "Answer:"
)
CHUNK_TEMPLATE = "(Score: {score:.3f}) {content}"
CHUNK_SEPARATOR = "\n\n"
EMPTY_CONTEXT = "(no relevant context found)"

# Below this many characters a cut-down lower-ranked chunk is dropped instead.
MIN_PARTIAL_CHARS = 50


@dataclass
class ContextWindow:
    text: str
    included: List[ScoredChunk] = field(default_factory=list)
    truncated: bool = False


@dataclass
class RAGResult:
    answer: str
    prompt: str
    context: ContextWindow
    results: List[ScoredChunk]


def _validate_query(query_text: str, k: int) -> None:
    if not isinstance(query_text, str) or not query_text.strip():
        raise ValidationError("Query text must not be empty")
    if isinstance(k, bool) or not isinstance(k, int):
        raise ValidationError(f"k must be an int, got {type(k).__name__}")


def search_by_text(
    store: VectorStore,
    query_text: str,
    k: int,
    embed_fn: EmbedFn,
    *,
    timeout: float | None = None,
) -> List[ScoredChunk]:
    """Embed ``query_text`` and return the top ``k`` chunks of ``store``."""
    _validate_query(query_text, k)
    if k <= 0:
        return []
    query_vector = call_embed(embed_fn, query_text, Deadline(timeout))
    return search(store, query_vector, k)


def query_store_file(
    path: str | os.PathLike,
    query_text: str,
    k: int,
    embed_fn: EmbedFn,
    *,
    timeout: float | None = None,
) -> List[ScoredChunk]:
    """
    Embed the query, then load the store at ``path`` and search it.

    The embedding happens first so an unreachable gateway is reported before
    any file is read.
    """
    _validate_query(query_text, k)
    if k <= 0:
        return []
    query_vector = call_embed(embed_fn, query_text, Deadline(timeout))
    return search(load_store(path), query_vector, k)


def assemble_context(results: Sequence[ScoredChunk], max_chars: int) -> ContextWindow:
    """
    Render ranked chunks into a context block of at most ``max_chars`` characters.

    Chunks are taken best first. The first chunk that does not fit whole is cut
    from its end (the top-ranked chunk always keeps what fits, lower-ranked ones
    only if at least MIN_PARTIAL_CHARS remain) and everything after it is dropped.
    """
    if max_chars <= 0:
        raise ValidationError(f"max_chars must be positive, got {max_chars}")

    blocks: List[str] = []
    included: List[ScoredChunk] = []
    used = 0
    truncated = False

    for item in results:
        separator = len(CHUNK_SEPARATOR) if blocks else 0
        block = CHUNK_TEMPLATE.format(score=item.score, content=item.chunk.content)
        if used + separator + len(block) <= max_chars:
            blocks.append(block)
            included.append(item)
            used += separator + len(block)
            continue

        truncated = True
        prefix = CHUNK_TEMPLATE.format(score=item.score, content="")
        room = max_chars - used - separator - len(prefix)
        min_room = MIN_PARTIAL_CHARS if blocks else 1
        if room >= min_room:
            blocks.append(prefix + item.chunk.content[:room])
            included.append(item)
        break

    if truncated:
        logger.info(
            "Context truncated to budget",
            extra={"max_chars": max_chars, "included": len(included), "candidates": len(results)},
        )
    return ContextWindow(text=CHUNK_SEPARATOR.join(blocks), included=included, truncated=truncated)


def build_context(results: Sequence[ScoredChunk], max_chars: int) -> str:
    return assemble_context(results, max_chars).text


def build_prompt(question: str, context: str) -> str:
    return PROMPT_TEMPLATE.format(question=question, context=context or EMPTY_CONTEXT)


def run_rag(
    store: VectorStore,
    query_text: str,
    k: int,
    embed_fn: EmbedFn,
    generate_fn: GenerateFn,
    *,
    max_context_chars: int | None = None,
    timeout: float | None = None,
) -> RAGResult:
    """
    Single linear pass: embed, search, assemble context, prompt, generate.

    ``k <= 0`` skips embedding and search and asks the generator with an empty
    context. Gateway failures propagate as ``EmbeddingError`` /
    ``GenerationError``; the store is never written.
    """
    _validate_query(query_text, k)
    deadline = Deadline(timeout)
    budget = settings.max_context_chars if max_context_chars is None else max_context_chars

    if k > 0:
        query_vector = call_embed(embed_fn, query_text, deadline)
        results = search(store, query_vector, k)
    else:
        results = []

    context = assemble_context(results, budget)
    prompt = build_prompt(query_text, context.text)
    answer = call_generate(generate_fn, prompt, deadline)

    logger.info(
        "RAG query answered",
        extra={
            "k": k,
            "retrieved": len(results),
            "context_chunks": len(context.included),
            "context_chars": len(context.text),
            "top_score": round(results[0].score, 3) if results else None,
        },
    )
    return RAGResult(answer=answer, prompt=prompt, context=context, results=results)


def rag_query(
    store: VectorStore,
    query_text: str,
    k: int,
    embed_fn: EmbedFn,
    generate_fn: GenerateFn,
    *,
    max_context_chars: int | None = None,
    timeout: float | None = None,
) -> str:
    """Answer ``query_text`` from the ``k`` most similar chunks of ``store``."""
    return run_rag(
        store,
        query_text,
        k,
        embed_fn,
        generate_fn,
        max_context_chars=max_context_chars,
        timeout=timeout,
    ).answer


class RAGService:
    """RAG facade bound to one loaded store and a pair of gateway clients."""

    def __init__(
        self,
        vector_store: VectorStore,
        embeddings_client: EmbeddingsClient,
        llm_client: LLMClient,
        config: Settings | None = None,
        logger_: logging.Logger | None = None,
        request_id: str | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embeddings_client = embeddings_client
        self.llm_client = llm_client
        self.config = config or settings
        self.logger = logger_ or logging.getLogger(__name__)
        self.request_id = request_id

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "RAGService":
        config = config or settings
        return cls(
            vector_store=get_vector_store(config.vector_store_path),
            embeddings_client=EmbeddingsClient(
                model=config.embedding_model_name, batch_size=config.embed_batch_size
            ),
            llm_client=LLMClient(model=config.llm_model_name, temperature=config.llm_temperature),
            config=config,
        )

    # --- Public API ---
    def answer_question(self, request: AskRequest) -> AskResponse:
        question = self.normalize_question(request.question)
        k = self.config.default_top_k if request.top_k is None else request.top_k

        result = run_rag(
            self.vector_store,
            question,
            k,
            self.embeddings_client.embed,
            self.llm_client.generate,
            max_context_chars=(
                self.config.max_context_chars if request.max_context_chars is None else request.max_context_chars
            ),
            timeout=self.config.request_timeout_sec,
        )
        self.logger.info(
            "Question answered",
            extra={
                "request_id": self.request_id,
                "context_chunks": len(result.context.included),
                "truncated": result.context.truncated,
            },
        )
        return AskResponse(
            answer=result.answer,
            context_chunks=[
                ContextChunk(chunk_id=item.chunk.id, text=item.chunk.content, metadata=dict(item.chunk.metadata))
                for item in result.context.included
            ],
            raw_scores=[
                RetrievalScore(chunk_id=item.chunk.id, score=item.score, rank=item.rank)
                for item in result.results
            ],
        )

    def retrieve(self, question: str, k: int | None = None) -> List[ScoredChunk]:
        return search_by_text(
            self.vector_store,
            self.normalize_question(question),
            self.config.default_top_k if k is None else k,
            self.embeddings_client.embed,
            timeout=self.config.request_timeout_sec,
        )

    @staticmethod
    def normalize_question(text: str) -> str:
        """Trim and collapse whitespace."""
        return " ".join(text.strip().split())


__all__ = [
    "PROMPT_TEMPLATE",
    "EMPTY_CONTEXT",
    "MIN_PARTIAL_CHARS",
    "ContextWindow",
    "RAGResult",
    "RAGService",
    "assemble_context",
    "build_context",
    "build_prompt",
    "query_store_file",
    "rag_query",
    "run_rag",
    "search_by_text",
]
