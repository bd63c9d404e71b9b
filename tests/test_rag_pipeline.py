"""
Unit tests for context assembly and the RAG orchestration.
"""

import pytest

from conftest import FakeEmbedder
from docrag.errors import DimensionMismatch, EmbeddingError, GenerationError, ValidationError
from docrag.models.schemas import AskRequest
from docrag.rag.pipeline import (
    EMPTY_CONTEXT,
    MIN_PARTIAL_CHARS,
    RAGService,
    assemble_context,
    build_context,
    build_prompt,
    query_store_file,
    rag_query,
    run_rag,
    search_by_text,
)
from docrag.vector_store import VectorStore, save_store, search


def _store_with(contents):
    store = VectorStore.create()
    for i, text in enumerate(contents):
        # Decreasing similarity to the query [1, 0] in insertion order.
        store.add_chunk(text, [1.0, float(i)])
    return store


class TestAssembleContext:
    def test_all_chunks_fit(self, three_chunk_store):
        results = search(three_chunk_store, [1.0, 0.0], 3)

        window = assemble_context(results, 10_000)

        assert window.truncated is False
        assert len(window.included) == 3
        assert window.text.split("\n\n")[0] == "(Score: 1.000) first chunk about apples"
        assert "(Score: 0.707) third chunk about apple rivers" in window.text

    def test_budget_is_respected(self):
        store = _store_with(["a" * 300, "b" * 300, "c" * 300])
        results = search(store, [1.0, 0.0], 3)

        for budget in (1, 20, 100, 315, 400, 650, 1000):
            assert len(build_context(results, budget)) <= budget

    def test_lowest_ranked_dropped_first(self):
        store = _store_with(["a" * 300, "b" * 300, "c" * 300])
        results = search(store, [1.0, 0.0], 3)

        window = assemble_context(results, 680)

        assert window.truncated is True
        assert [item.chunk.content[0] for item in window.included] == ["a", "b"]
        assert "ccc" not in window.text

    def test_partial_chunk_cut_from_end(self):
        store = _store_with(["alpha " * 10, "0123456789" * 30])
        results = search(store, [1.0, 0.0], 2)
        first_block = f"(Score: {results[0].score:.3f}) " + results[0].chunk.content
        prefix = f"(Score: {results[1].score:.3f}) "
        budget = len(first_block) + 2 + len(prefix) + 120

        window = assemble_context(results, budget)

        second_block = window.text.split("\n\n")[1]
        assert second_block == prefix + ("0123456789" * 30)[:120]
        assert len(window.text) == budget

    def test_small_remainder_drops_lower_chunk(self):
        store = _store_with(["x" * 100, "y" * 300])
        results = search(store, [1.0, 0.0], 2)
        first_len = len(f"(Score: {results[0].score:.3f}) ") + 100
        prefix_len = len(f"(Score: {results[1].score:.3f}) ")

        window = assemble_context(results, first_len + 2 + prefix_len + MIN_PARTIAL_CHARS - 1)

        assert len(window.included) == 1
        assert "yyy" not in window.text

    def test_top_chunk_kept_even_under_tiny_budget(self):
        store = _store_with(["important " * 100])
        results = search(store, [1.0, 0.0], 1)

        window = assemble_context(results, 40)

        assert len(window.included) == 1
        assert window.text.startswith("(Score: 1.000) important")
        assert len(window.text) == 40

    def test_empty_results(self):
        window = assemble_context([], 100)

        assert window.text == ""
        assert window.included == []

    def test_non_positive_budget(self):
        with pytest.raises(ValidationError):
            assemble_context([], 0)


class TestBuildPrompt:
    def test_template(self):
        prompt = build_prompt("Who is Ishmael?", "(Score: 0.900) Call me Ishmael.")

        assert prompt == (
            "Based on the following context from a document, answer the question: Who is Ishmael?\n\n"
            "Context:\n(Score: 0.900) Call me Ishmael.\n\n"
            "Answer:"
        )

    def test_empty_context_placeholder(self):
        assert f"Context:\n{EMPTY_CONTEXT}\n\n" in build_prompt("q", "")


class TestRagQuery:
    def test_answer_from_generator(self, three_chunk_store, embedder, generator):
        answer = rag_query(three_chunk_store, "apples", 2, embedder, generator)

        assert answer == "stub answer"
        assert embedder.calls == ["apples"]
        prompt = generator.prompts[0]
        assert "answer the question: apples" in prompt
        assert "first chunk about apples" in prompt
        assert "third chunk about apple rivers" in prompt
        assert "second chunk about rivers" not in prompt

    def test_context_ordered_by_similarity(self, three_chunk_store, embedder, generator):
        rag_query(three_chunk_store, "rivers", 3, embedder, generator)

        prompt = generator.prompts[0]
        assert prompt.index("second chunk") < prompt.index("third chunk") < prompt.index("first chunk")

    def test_zero_k_is_context_free_and_deterministic(self, three_chunk_store, embedder, generator):
        first = rag_query(three_chunk_store, "apples", 0, embedder, generator)
        second = rag_query(three_chunk_store, "apples", 0, embedder, generator)

        assert first == second == "stub answer"
        assert embedder.calls == []
        assert generator.prompts[0] == generator.prompts[1]
        assert EMPTY_CONTEXT in generator.prompts[0]

    def test_embedding_error_stops_pipeline(self, three_chunk_store, embedder, generator):
        embedder.fail_with = EmbeddingError("service down", retryable=True)

        with pytest.raises(EmbeddingError) as exc_info:
            rag_query(three_chunk_store, "apples", 2, embedder, generator)

        assert exc_info.value.retryable is True
        assert generator.prompts == []

    def test_unexpected_embedding_failure_is_wrapped(self, three_chunk_store, embedder, generator):
        embedder.fail_with = ConnectionError("reset by peer")

        with pytest.raises(EmbeddingError) as exc_info:
            rag_query(three_chunk_store, "apples", 2, embedder, generator)

        assert exc_info.value.retryable is False
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_generation_error_propagates(self, three_chunk_store, embedder, failing_generator):
        with pytest.raises(GenerationError) as exc_info:
            rag_query(three_chunk_store, "apples", 2, embedder, failing_generator)

        assert exc_info.value.retryable is True
        assert len(failing_generator.prompts) == 1

    def test_unexpected_generation_failure_is_wrapped(self, three_chunk_store, embedder, generator):
        generator.fail_with = RuntimeError("boom")

        with pytest.raises(GenerationError):
            rag_query(three_chunk_store, "apples", 2, embedder, generator)

    def test_non_finite_query_embedding_stops_pipeline(self, three_chunk_store, generator):
        broken = FakeEmbedder({}, default=[float("nan"), 1.0])

        with pytest.raises(EmbeddingError, match="non-finite"):
            rag_query(three_chunk_store, "apples", 3, broken, generator)

        assert generator.prompts == []

    def test_explicit_zero_budget_is_not_replaced_by_default(self, three_chunk_store, embedder, generator):
        with pytest.raises(ValidationError):
            rag_query(three_chunk_store, "apples", 2, embedder, generator, max_context_chars=0)

        assert generator.prompts == []

    def test_query_dimension_mismatch(self, three_chunk_store, generator):
        wrong = FakeEmbedder({}, default=[1.0, 0.0, 0.0])

        with pytest.raises(DimensionMismatch):
            rag_query(three_chunk_store, "apples", 2, wrong, generator)
        assert generator.prompts == []

    def test_blank_query_rejected(self, three_chunk_store, embedder, generator):
        with pytest.raises(ValidationError):
            rag_query(three_chunk_store, "   ", 2, embedder, generator)

    def test_non_int_k_rejected(self, three_chunk_store, embedder, generator):
        with pytest.raises(ValidationError):
            rag_query(three_chunk_store, "apples", "3", embedder, generator)

    def test_timeout_threaded_to_gateways(self, three_chunk_store, embedder, generator):
        rag_query(three_chunk_store, "apples", 2, embedder, generator, timeout=30.0)

        assert 0.0 < embedder.timeouts[0] <= 30.0
        assert 0.0 < generator.timeouts[0] <= embedder.timeouts[0]

    def test_no_timeout_means_unbounded(self, three_chunk_store, embedder, generator):
        rag_query(three_chunk_store, "apples", 2, embedder, generator)

        assert embedder.timeouts == [None]
        assert generator.timeouts == [None]

    def test_expired_deadline_skips_calls(self, three_chunk_store, embedder, generator):
        with pytest.raises(EmbeddingError) as exc_info:
            rag_query(three_chunk_store, "apples", 2, embedder, generator, timeout=0.0)

        assert exc_info.value.retryable is True
        assert embedder.calls == []

    def test_store_not_mutated(self, three_chunk_store, embedder, generator):
        before = list(three_chunk_store)

        rag_query(three_chunk_store, "apples", 3, embedder, generator)

        assert list(three_chunk_store) == before

    def test_context_budget_override(self, three_chunk_store, embedder, generator):
        result = run_rag(three_chunk_store, "apples", 3, embedder, generator, max_context_chars=40)

        assert len(result.context.text) <= 40
        assert [item.chunk.content for item in result.context.included] == ["first chunk about apples"]
        assert len(result.results) == 3


class TestSearchByText:
    def test_ranked_results(self, three_chunk_store, embedder):
        results = search_by_text(three_chunk_store, "apples", 2, embedder)

        assert [r.chunk.content for r in results] == [
            "first chunk about apples",
            "third chunk about apple rivers",
        ]

    def test_zero_k_skips_embedding(self, three_chunk_store, embedder):
        assert search_by_text(three_chunk_store, "apples", 0, embedder) == []
        assert embedder.calls == []

    def test_query_store_file(self, tmp_path, three_chunk_store, embedder):
        path = tmp_path / "store.json"
        save_store(three_chunk_store, path)

        results = query_store_file(path, "rivers", 1, embedder)

        assert results[0].chunk.content == "second chunk about rivers"
        assert results[0].score == 1.0

    def test_query_store_file_embeds_before_loading(self, tmp_path, embedder):
        embedder.fail_with = EmbeddingError("offline")

        with pytest.raises(EmbeddingError):
            query_store_file(tmp_path / "absent.json", "rivers", 1, embedder)


class FakeEmbeddingsClient:
    def __init__(self, embedder):
        self.embedder = embedder

    def embed(self, text, *, timeout=None):
        return self.embedder(text, timeout=timeout)


class FakeLLMClient:
    def __init__(self, generator):
        self.generator = generator

    def generate(self, prompt, *, timeout=None):
        return self.generator(prompt, timeout=timeout)


class TestRAGService:
    def _service(self, store, embedder, generator):
        return RAGService(
            vector_store=store,
            embeddings_client=FakeEmbeddingsClient(embedder),
            llm_client=FakeLLMClient(generator),
        )

    def test_answer_question(self, three_chunk_store, embedder, generator):
        service = self._service(three_chunk_store, embedder, generator)

        response = service.answer_question(AskRequest(question="  apples \n", top_k=2))

        assert response.answer == "stub answer"
        assert embedder.calls == ["apples"]
        assert [c.text for c in response.context_chunks] == [
            "first chunk about apples",
            "third chunk about apple rivers",
        ]
        assert response.context_chunks[0].metadata["source"] == "book.epub"
        assert [s.rank for s in response.raw_scores] == [1, 2]
        assert response.raw_scores[0].score == 1.0

    def test_answer_question_with_zero_top_k(self, three_chunk_store, embedder, generator):
        service = self._service(three_chunk_store, embedder, generator)

        response = service.answer_question(AskRequest(question="apples", top_k=0))

        assert response.context_chunks == []
        assert response.raw_scores == []
        assert embedder.calls == []

    def test_retrieve(self, three_chunk_store, embedder, generator):
        service = self._service(three_chunk_store, embedder, generator)

        results = service.retrieve("rivers", k=1)

        assert results[0].chunk.content == "second chunk about rivers"

    def test_normalize_question(self):
        assert RAGService.normalize_question("  what\n is   this? ") == "what is this?"

    def test_generation_failure_propagates(self, three_chunk_store, embedder, failing_generator):
        service = self._service(three_chunk_store, embedder, failing_generator)

        with pytest.raises(GenerationError):
            service.answer_question(AskRequest(question="apples"))
