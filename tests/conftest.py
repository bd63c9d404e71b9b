"""
Shared test fixtures: fake gateways and small stores.
"""

from typing import Dict, List, Optional, Sequence

import pytest

from docrag.errors import EmbeddingError, GenerationError
from docrag.vector_store import VectorStore


class FakeEmbedder:
    """Deterministic embedding gateway backed by a text -> vector table."""

    def __init__(self, table: Dict[str, List[float]], default: Optional[List[float]] = None):
        self.table = table
        self.default = default
        self.calls: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, text: str, timeout: Optional[float] = None) -> List[float]:
        self.calls.append(text)
        self.timeouts.append(timeout)
        if self.fail_with is not None:
            raise self.fail_with
        if text in self.table:
            return list(self.table[text])
        if self.default is not None:
            return list(self.default)
        raise EmbeddingError(f"no vector for {text!r}", retryable=False)

    def batch(self, texts: Sequence[str], timeout: Optional[float] = None) -> List[List[float]]:
        return [self(text, timeout=timeout) for text in texts]


class FakeGenerator:
    """Generation gateway that records prompts and echoes a fixed answer."""

    def __init__(self, answer: str = "stub answer"):
        self.answer = answer
        self.prompts: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, prompt: str, timeout: Optional[float] = None) -> str:
        self.prompts.append(prompt)
        self.timeouts.append(timeout)
        if self.fail_with is not None:
            raise self.fail_with
        return self.answer


@pytest.fixture
def three_chunk_store() -> VectorStore:
    """Store with embeddings [1,0], [0,1], [1,1] in that order."""
    store = VectorStore.create()
    store.add_chunk("first chunk about apples", [1.0, 0.0], {"source": "book.epub", "chunk_index": "0"})
    store.add_chunk("second chunk about rivers", [0.0, 1.0], {"source": "book.epub", "chunk_index": "1"})
    store.add_chunk("third chunk about apple rivers", [1.0, 1.0], {"source": "book.epub", "chunk_index": "2"})
    return store


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(
        {
            "apples": [1.0, 0.0],
            "rivers": [0.0, 1.0],
            "nothing": [0.0, 0.0],
        }
    )


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def failing_generator() -> FakeGenerator:
    gen = FakeGenerator()
    gen.fail_with = GenerationError("model overloaded", retryable=True)
    return gen
