"""
Ragline - Retriever
====================
Validates a retrieval request, runs the similarity query against the
vector store and enforces the relevance threshold.

The threshold is always re-applied here, whatever the store does, so a
store that ignores or loosely applies it can never leak low-similarity
units into the prompt.  Results keep the store's descending-score order
and are cut to ``limit``.

The store call is blocking; it runs in a worker thread under
``asyncio.wait_for`` so a hung backend surfaces as ``StoreUnavailable``.
"""

from __future__ import annotations

import asyncio
import time

from ragline.config.settings import settings
from ragline.src.core.exceptions import InvalidQuery, RaglineError, StoreUnavailable
from ragline.src.core.models import RetrievalQuery, RetrievedUnit
from ragline.src.database.vector_store import VectorStoreClient
from ragline.src.utils.logger import get_logger

logger = get_logger(__name__)


class Retriever:
    """
    Parameters
    ----------
    vector_store
        Any ``VectorStoreClient`` (injected).
    timeout
        Seconds to wait for the store.  Defaults to ``settings.STORE_TIMEOUT_SECONDS``.
    """

    __slots__ = ("_store", "_timeout")

    def __init__(self, vector_store: VectorStoreClient, timeout: float | None = None) -> None:
        self._store = vector_store
        self._timeout = timeout or settings.STORE_TIMEOUT_SECONDS


    async def retrieve(self, query_text: str, limit: int = 3, similarity_threshold: float | None = None) -> list[RetrievedUnit]:
        """
        Return at most *limit* units, most similar first.

        Raises
        ------
        InvalidQuery
            Empty query, ``limit <= 0`` or threshold outside [0, 1].
        StoreUnavailable
            The store failed or did not answer within the timeout.
        """
        query = self.validate(query_text, limit, similarity_threshold)

        t_search = time.perf_counter()
        try:
            raw_units = await asyncio.wait_for(asyncio.to_thread(self._store.query, query.text, query.limit, query.similarity_threshold), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[RETRIEVE] Vector store timed out after %.1fs.", self._timeout)
            raise StoreUnavailable(f"vector store did not respond within {self._timeout}s", stage="retrieval") from exc
        except RaglineError:
            raise
        except Exception as exc:
            logger.error("[RETRIEVE] Vector store query failed: %s", exc)
            raise StoreUnavailable("vector store query failed", stage="retrieval") from exc

        units = self.apply_threshold(raw_units, query.similarity_threshold)[: query.limit]
        search_ms = (time.perf_counter() - t_search) * 1000
        logger.info("[RETRIEVE] '%s' → %d raw, %d kept (threshold=%s) in %.1fms.", query.text[:50], len(raw_units), len(units), query.similarity_threshold, search_ms)
        return units


    @staticmethod
    def validate(query_text: str, limit: int, similarity_threshold: float | None) -> RetrievalQuery:
        """Build a ``RetrievalQuery`` or raise ``InvalidQuery``."""
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidQuery("query text must be a non-empty string")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidQuery(f"limit must be a positive integer, got {limit!r}", details={"limit": limit})
        if similarity_threshold is not None and not 0.0 <= similarity_threshold <= 1.0:
            raise InvalidQuery(f"similarity_threshold must be in [0, 1], got {similarity_threshold!r}", details={"similarity_threshold": similarity_threshold})
        return RetrievalQuery(text=query_text.strip(), limit=limit, similarity_threshold=similarity_threshold)


    @staticmethod
    def apply_threshold(units: list[RetrievedUnit], similarity_threshold: float | None) -> list[RetrievedUnit]:
        """Drop units scoring under the threshold, keeping descending-score order."""
        kept = units if similarity_threshold is None else [u for u in units if u.similarity_score >= similarity_threshold]
        return sorted(kept, key=lambda u: u.similarity_score, reverse=True)
