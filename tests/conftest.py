"""
Shared test fixtures.

Provides: required environment for settings, an in-memory vector store,
a deterministic embedder for LanceDB tests, and a scripted chat model.
"""

import hashlib
import math
import os
import re
from typing import Sequence

os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("ENV", "dev")

import pytest
from langchain_core.messages import AIMessage

from ragline.src.core.models import Chunk, RetrievedUnit


class FakeVectorStore:
    """
    In-memory ``VectorStoreClient``.

    Scoring: a stored chunk whose text contains the query (case-insensitive)
    scores ``match_score``; every other chunk scores ``miss_score``.
    ``preset`` bypasses scoring and is returned verbatim, threshold ignored,
    to model a store that does not enforce thresholds.
    """

    def __init__(self, match_score: float = 0.95, miss_score: float = 0.1) -> None:
        self.chunks: list[Chunk] = []
        self.match_score = match_score
        self.miss_score = miss_score
        self.preset: list[RetrievedUnit] | None = None
        self.error: Exception | None = None
        self.query_calls: list[tuple[str, int, float | None]] = []
        self.closed = False

    def upsert(self, chunks: Sequence[Chunk]) -> int:
        if self.error is not None:
            raise self.error
        self.chunks.extend(chunks)
        return len(chunks)

    def query(self, text: str, limit: int, similarity_threshold: float | None = None) -> list[RetrievedUnit]:
        self.query_calls.append((text, limit, similarity_threshold))
        if self.error is not None:
            raise self.error
        if self.preset is not None:
            return list(self.preset)

        units = []
        for chunk in self.chunks:
            score = self.match_score if text.lower() in chunk.text.lower() else self.miss_score
            if similarity_threshold is not None and score < similarity_threshold:
                continue
            units.append(RetrievedUnit(chunk_text=chunk.text, similarity_score=score, source_metadata={"id": chunk.id, "source_name": chunk.source_name}))
        units.sort(key=lambda u: u.similarity_score, reverse=True)
        return units[:limit]

    def list_tables(self) -> list[str]:
        return ["fake_chunks"]

    def close(self) -> None:
        self.closed = True


class FakeChatModel:
    """Async chat model stub that records every call."""

    def __init__(self, reply: object = "The fox jumps.", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[list] = []

    async def ainvoke(self, messages, **kwargs):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if isinstance(self.reply, (str, list)):
            return AIMessage(content=self.reply)
        return self.reply


class FakeEmbedder:
    """Deterministic hashed bag-of-words embedding (unit length)."""

    dimension = 32

    def __init__(self) -> None:
        self.fail = False

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        vector[0] = 0.1
        for token in re.findall(r"\w+", text.lower()):
            slot = 1 + int(hashlib.md5(token.encode()).hexdigest(), 16) % (self.dimension - 1)
            vector[slot] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if self.fail:
            raise ConnectionError("embedding service unreachable")
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        if self.fail:
            raise ConnectionError("embedding service unreachable")
        return self._embed(text)


def make_unit(text: str, score: float) -> RetrievedUnit:
    return RetrievedUnit(chunk_text=text, similarity_score=score, source_metadata={})


@pytest.fixture
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def fake_llm() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
