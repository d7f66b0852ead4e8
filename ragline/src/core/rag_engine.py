"""
Ragline - RAG Engine
=====================
Answer synthesis and end-to-end query orchestration.

Architecture (OOP)
------------------
``AnswerSynthesizer``
    Two-state synthesis over an ``AssembledContext``:
      • **NoContext** (``EMPTY_CONTEXT``) → ``"No matches found."``,
        ``grounded=False``, no model call.
      • **HasContext** → system instruction + user message (context then
        question) sent to the chat model at temperature 0.
    Any model failure (timeout, provider error, malformed or empty
    response) raises ``SynthesisFailed`` with the cause chained.  No
    fallback answer is ever fabricated.

``RAGPipeline``
    Process-wide handle bundle: vector store, retriever, synthesizer and
    ingestion pipeline.  Flow for a query:
        1. Retrieve → validated similarity search + threshold
        2. Assemble → deterministic context block
        3. Synthesize → grounded answer or the no-match answer

``build_pipeline()``
    Creates the embedder, chat model and LanceDB connection once at
    startup.  ``RAGPipeline.close()`` releases them at shutdown.

Usage:
    from ragline.src.core.rag_engine import build_pipeline
    pipeline = build_pipeline()
    answer = await pipeline.answer("What does the fox do?")
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol, runtime_checkable

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from ragline.config.prompt_templates import NO_MATCHES_RESPONSE, SYSTEM_PROMPT, USER_PROMPT_TEMPLATE
from ragline.config.settings import settings
from ragline.src.core.context import assemble
from ragline.src.core.exceptions import SynthesisFailed
from ragline.src.core.ingestor import IngestionPipeline
from ragline.src.core.models import Answer, AssembledContext
from ragline.src.core.retriever import Retriever
from ragline.src.database.vector_store import VectorStoreClient
from ragline.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Anything with LangChain's async ``ainvoke(messages)`` chat interface."""

    async def ainvoke(self, input: list[BaseMessage], **kwargs: Any) -> Any: ...


# ══════════════════════════════════════════════════════════════════════
#  ANSWER SYNTHESIZER
# ══════════════════════════════════════════════════════════════════════


class AnswerSynthesizer:
    """
    Parameters
    ----------
    llm
        A chat model configured with ``temperature=0`` (injected).
    timeout
        Seconds to wait for the model.  Defaults to ``settings.LLM_TIMEOUT_SECONDS``.
    """

    __slots__ = ("_llm", "_timeout")

    def __init__(self, llm: ChatModel, timeout: float | None = None) -> None:
        self._llm = llm
        self._timeout = timeout or settings.LLM_TIMEOUT_SECONDS


    @staticmethod
    def build_messages(query: str, context: AssembledContext) -> list[BaseMessage]:
        return [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=USER_PROMPT_TEMPLATE.format(context=context.text, question=query))]


    async def synthesize(self, query: str, context: AssembledContext) -> Answer:
        if not context:
            logger.info("[SYNTH] No context — returning no-match answer without a model call.")
            return Answer(text=NO_MATCHES_RESPONSE, grounded=False, source_units=())

        messages = self.build_messages(query, context)

        t_llm = time.perf_counter()
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[SYNTH] Language model timed out after %.1fs.", self._timeout)
            raise SynthesisFailed(f"language model did not respond within {self._timeout}s") from exc
        except Exception as exc:
            logger.error("[SYNTH] Language model call failed: %s", exc)
            raise SynthesisFailed(f"language model call failed: {type(exc).__name__}", details={"cause": str(exc)}) from exc

        text = self._extract_text(response)
        llm_ms = (time.perf_counter() - t_llm) * 1000
        logger.info("[SYNTH] Model answered in %.1fms (%d chars, %d source unit(s)).", llm_ms, len(text), len(context.units))
        return Answer(text=text, grounded=True, source_units=context.units)


    @staticmethod
    def _extract_text(response: Any) -> str:
        """Pull the completion text out of a chat response, or raise ``SynthesisFailed``."""
        content = getattr(response, "content", None)
        if isinstance(content, list):
            parts = [part if isinstance(part, str) else part.get("text", "") for part in content if isinstance(part, (str, dict))]
            content = "".join(parts)
        if not isinstance(content, str):
            logger.error("[SYNTH] Malformed model response: %r", type(response).__name__)
            raise SynthesisFailed("malformed language model response", details={"response_type": type(response).__name__})
        text = content.strip()
        if not text:
            raise SynthesisFailed("language model returned an empty completion")
        return text


# ══════════════════════════════════════════════════════════════════════
#  RAG PIPELINE
# ══════════════════════════════════════════════════════════════════════


class RAGPipeline:
    """
    Bundle of the process-wide pipeline components.

    Holds no request state; one instance serves every request.
    """

    __slots__ = ("store", "retriever", "synthesizer", "ingestion")

    def __init__(self, store: VectorStoreClient, llm: ChatModel, retriever: Retriever | None = None, synthesizer: AnswerSynthesizer | None = None, ingestion: IngestionPipeline | None = None) -> None:
        self.store = store
        self.retriever = retriever or Retriever(store)
        self.synthesizer = synthesizer or AnswerSynthesizer(llm)
        self.ingestion = ingestion or IngestionPipeline(store)


    async def answer(self, query_text: str, limit: int | None = None, similarity_threshold: float | None = None) -> Answer:
        """Retrieve → assemble → synthesize.  Threshold defaults to ``settings.SIMILARITY_THRESHOLD``."""
        t_start = time.perf_counter()
        limit = settings.SEARCH_RESULTS_LIMIT if limit is None else limit
        threshold = settings.SIMILARITY_THRESHOLD if similarity_threshold is None else similarity_threshold

        units = await self.retriever.retrieve(query_text, limit=limit, similarity_threshold=threshold)
        context = assemble(units)
        answer = await self.synthesizer.synthesize(query_text, context)

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Query answered in %.1fms (grounded=%s, sources=%d).", total_ms, answer.grounded, len(answer.source_units))
        return answer


    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if callable(close):
            close()
        logger.info("[RAG] Pipeline closed.")


def build_embedder() -> Any:
    """Google Generative AI embeddings, configured from settings."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


def build_llm() -> Any:
    """Gemini chat model at the pinned temperature."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f)", settings.LLM_MODEL, settings.LLM_TEMPERATURE)
    return llm


def build_pipeline() -> RAGPipeline:
    """Create the process-wide pipeline: embedder, LanceDB store, chat model."""
    from ragline.src.database.vector_store import RagVectorStore

    store = RagVectorStore(embedder=build_embedder())
    return RAGPipeline(store=store, llm=build_llm())
