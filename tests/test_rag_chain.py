"""
Tests for RAG Chain Module

Covers context building, prompt layout and the single generation call.
"""

from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from docchat.chunker import build_chunks
from docchat.exceptions import ProviderUnavailableError
from docchat.llm_service import LLMResponse
from docchat.rag_chain import NO_CONTEXT_TEXT, RAGChain, format_date
from docchat.vector_store import Document, SearchResult


def make_results(texts, name="guide.pdf", scores=None):
    chunks = build_chunks("doc1", texts, {"name": name})
    document = Document(
        document_id="doc1", name=name, chunk_ids=[c.chunk_id for c in chunks]
    )
    scores = scores or [0.9 - 0.1 * i for i in range(len(texts))]
    return [
        SearchResult(chunk=chunk, score=score, document=document, rank=rank)
        for rank, (chunk, score) in enumerate(zip(chunks, scores), 1)
    ]


@pytest.fixture
def llm_service():
    service = Mock()
    service.provider_name = "mock"
    service.generate = AsyncMock(return_value=LLMResponse(content=" The answer. ", model="m"))
    return service


@pytest.fixture
def chain(llm_service):
    return RAGChain(llm_service=llm_service, max_context_length=4000)


class TestBuildContext:
    """Tests for the context block."""

    def test_format(self, chain):
        context = chain.build_context(make_results(["First chunk.", "Second chunk."]))

        assert context == (
            "[Document 1: guide.pdf]\nFirst chunk."
            "\n\n---\n\n"
            "[Document 2: guide.pdf]\nSecond chunk."
        )

    def test_no_results(self, chain):
        assert chain.build_context([]) == NO_CONTEXT_TEXT

    def test_truncates_at_chunk_boundary(self, llm_service):
        chain = RAGChain(llm_service=llm_service, max_context_length=60)

        context = chain.build_context(make_results(["a" * 30, "b" * 30]))

        assert "a" * 30 in context
        assert "b" not in context
        assert len(context) <= 60

    def test_first_chunk_cut_when_too_long(self, llm_service):
        chain = RAGChain(llm_service=llm_service, max_context_length=50)

        context = chain.build_context(make_results(["x" * 500]))

        assert len(context) == 50
        assert context.startswith("[Document 1: guide.pdf]")


class TestPrompt:
    """Tests for prompt assembly."""

    def test_format_date(self):
        assert format_date(datetime(2024, 3, 5)) == "Tuesday, March 5, 2024"

    def test_format_history(self):
        history = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
        ]

        assert RAGChain.format_history(history) == "User: Hi\nAssistant: Hello!"
        assert RAGChain.format_history(None) == ""

    def test_prompt_sections_in_order(self, chain):
        prompt = chain.build_prompt(
            "What is covered?",
            make_results(["Chapter one covers setup."]),
            [{"role": "user", "content": "Earlier question"}],
            now=datetime(2024, 3, 5),
        )

        positions = [
            prompt.index("Current date: Tuesday, March 5, 2024"),
            prompt.index("[Document 1: guide.pdf]"),
            prompt.index("Previous conversation:\nUser: Earlier question"),
            prompt.index("Question: What is covered?"),
        ]
        assert positions == sorted(positions)
        assert prompt.endswith("Answer:")
        assert "general knowledge" in prompt

    def test_prompt_without_history_or_results(self, chain):
        prompt = chain.build_prompt("Anything?", [])

        assert NO_CONTEXT_TEXT in prompt
        assert "Previous conversation:" not in prompt


class TestAnswer:
    """Tests for the generation call."""

    @pytest.mark.asyncio
    async def test_single_generation_call(self, chain, llm_service):
        answer = await chain.answer("What is covered?", make_results(["Setup."]))

        assert answer == "The answer."
        llm_service.generate.assert_awaited_once()
        prompt = llm_service.generate.call_args.args[0]
        assert "Setup." in prompt

    @pytest.mark.asyncio
    async def test_empty_output_raises(self, chain, llm_service):
        llm_service.generate.return_value = LLMResponse(content="   ", model="m")

        with pytest.raises(ProviderUnavailableError):
            await chain.answer("Question?", [])

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, chain, llm_service):
        llm_service.generate.side_effect = ProviderUnavailableError("down", provider_name="mock")

        with pytest.raises(ProviderUnavailableError):
            await chain.answer("Question?", make_results(["Setup."]))

        assert llm_service.generate.await_count == 1
