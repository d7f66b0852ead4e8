"""
Tests for AnswerSynthesizer and the end-to-end RAGPipeline.
"""

import asyncio

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from conftest import FakeChatModel, FakeVectorStore, make_unit
from ragline.config.prompt_templates import NO_MATCHES_RESPONSE, SYSTEM_PROMPT
from ragline.src.core.context import assemble
from ragline.src.core.exceptions import InvalidQuery, SynthesisFailed
from ragline.src.core.models import EMPTY_CONTEXT
from ragline.src.core.rag_engine import AnswerSynthesizer, RAGPipeline
from ragline.src.core.retriever import Retriever


class TestNoContext:

    @pytest.mark.asyncio
    async def test_empty_context_skips_model(self, fake_llm):
        answer = await AnswerSynthesizer(fake_llm).synthesize("anything?", EMPTY_CONTEXT)

        assert answer.text == NO_MATCHES_RESPONSE == "No matches found."
        assert answer.grounded is False
        assert answer.source_units == ()
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_empty_context_ignores_broken_model(self):
        llm = FakeChatModel(error=RuntimeError("must not be called"))

        answer = await AnswerSynthesizer(llm).synthesize("anything?", assemble([]))

        assert answer.grounded is False


class TestHasContext:

    @pytest.mark.asyncio
    async def test_grounded_answer(self, fake_llm):
        units = [make_unit("brown fox ", 0.95)]

        answer = await AnswerSynthesizer(fake_llm).synthesize("fox", assemble(units))

        assert answer.grounded is True
        assert answer.text == "The fox jumps."
        assert answer.source_units == tuple(units)

    @pytest.mark.asyncio
    async def test_messages_layout(self, fake_llm):
        await AnswerSynthesizer(fake_llm).synthesize("What is A?", assemble([make_unit("A", 0.9), make_unit("B", 0.8)]))

        system, user = fake_llm.calls[0]
        assert isinstance(system, SystemMessage)
        assert isinstance(user, HumanMessage)
        assert system.content == SYSTEM_PROMPT
        assert user.content == "Context:\nA\n\nContext:\nB\n\nQuestion: What is A?"

    def test_system_prompt_constrains_to_context(self):
        assert "only" in SYSTEM_PROMPT.lower()
        assert "context" in SYSTEM_PROMPT.lower()

    @pytest.mark.asyncio
    async def test_completion_is_stripped(self):
        llm = FakeChatModel(reply="  answer with padding \n")

        answer = await AnswerSynthesizer(llm).synthesize("q", assemble([make_unit("c", 0.9)]))

        assert answer.text == "answer with padding"

    @pytest.mark.asyncio
    async def test_content_parts_are_joined(self):
        llm = FakeChatModel(reply=[{"type": "text", "text": "part one, "}, "part two"])

        answer = await AnswerSynthesizer(llm).synthesize("q", assemble([make_unit("c", 0.9)]))

        assert answer.text == "part one, part two"


class TestFailures:

    @pytest.mark.asyncio
    async def test_model_error_becomes_synthesis_failed(self):
        cause = ConnectionError("rate limited")
        synthesizer = AnswerSynthesizer(FakeChatModel(error=cause))

        with pytest.raises(SynthesisFailed) as exc_info:
            await synthesizer.synthesize("q", assemble([make_unit("c", 0.9)]))

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.stage == "synthesis"

    @pytest.mark.asyncio
    async def test_timeout_becomes_synthesis_failed(self):
        class SlowModel(FakeChatModel):
            async def ainvoke(self, messages, **kwargs):
                await asyncio.sleep(1)

        synthesizer = AnswerSynthesizer(SlowModel(), timeout=0.05)

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize("q", assemble([make_unit("c", 0.9)]))

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        synthesizer = AnswerSynthesizer(FakeChatModel(reply=object()))

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize("q", assemble([make_unit("c", 0.9)]))

    @pytest.mark.asyncio
    async def test_empty_completion(self):
        synthesizer = AnswerSynthesizer(FakeChatModel(reply="   "))

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize("q", assemble([make_unit("c", 0.9)]))


class TestRAGPipeline:

    @pytest.mark.asyncio
    async def test_fox_end_to_end(self, fake_store, fake_llm):
        pipeline = RAGPipeline(store=fake_store, llm=fake_llm)

        result = pipeline.ingestion.ingest_text("The quick brown fox jumps over the lazy dog", "fox.txt", chunk_size=10, overlap=0)
        assert result.chunk_count == 5
        assert [c.sequence_index for c in fake_store.chunks] == [0, 1, 2, 3, 4]
        assert all(len(c.text) <= 10 for c in fake_store.chunks)

        answer = await pipeline.answer("fox", limit=3, similarity_threshold=0.7)

        assert answer.grounded is True
        assert len(answer.source_units) == 1
        assert "fox" in answer.source_units[0].chunk_text
        assert answer.source_units[0].similarity_score == 0.95
        assert len(fake_llm.calls) == 1

    @pytest.mark.asyncio
    async def test_no_match_end_to_end(self, fake_store, fake_llm):
        pipeline = RAGPipeline(store=fake_store, llm=fake_llm)
        pipeline.ingestion.ingest_text("The quick brown fox", "fox.txt", chunk_size=10)

        answer = await pipeline.answer("elephant", similarity_threshold=0.7)

        assert answer.grounded is False
        assert answer.text == "No matches found."
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_store_ignoring_threshold_is_refiltered(self, fake_llm):
        store = FakeVectorStore()
        store.preset = [make_unit("a", 0.9), make_unit("b", 0.75), make_unit("c", 0.6)]
        pipeline = RAGPipeline(store=store, llm=fake_llm)

        answer = await pipeline.answer("q", limit=3, similarity_threshold=0.7)

        assert [u.chunk_text for u in answer.source_units] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_invalid_query_never_reaches_model(self, fake_store, fake_llm):
        pipeline = RAGPipeline(store=fake_store, llm=fake_llm)

        with pytest.raises(InvalidQuery):
            await pipeline.answer("   ")
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_injected_components_are_used(self, fake_store, fake_llm):
        retriever = Retriever(fake_store, timeout=2.0)
        pipeline = RAGPipeline(store=fake_store, llm=fake_llm, retriever=retriever)

        assert pipeline.retriever is retriever

    def test_close_closes_store(self, fake_store, fake_llm):
        RAGPipeline(store=fake_store, llm=fake_llm).close()

        assert fake_store.closed is True
