"""
Ragline - Chunker & IngestionPipeline
======================================
Turns raw documents into bounded, ordered ``Chunk`` sequences and persists
them through a ``VectorStoreClient``.

Chunking algorithm (``chunk_text``):
    1. Normalise whitespace — every run collapses to one space, ends trimmed.
    2. Slide a window of ``chunk_size`` characters over the normalised text,
       advancing ``chunk_size - overlap`` characters per step.
    3. Emit one ``Chunk`` per non-empty window with a strictly increasing
       ``sequence_index`` and id ``"{source}-{timestamp_ms}-{index}"``.

    With ``overlap == 0`` the chunk texts concatenate back to the
    normalised text.  The final window may be shorter than ``chunk_size``.
    No window starts after a previous window already reached the end.

Key design decisions:
    • **Pure chunker** – ``chunk_text`` has no side effects and is safe to
      call from any thread.
    • **Dependency Injection** – the pipeline receives the vector store.
    • **Concurrency** – directory ingestion processes files in parallel via
      ``ThreadPoolExecutor`` (embedding calls are I/O-bound).
    • **No cross-batch atomicity** – a failing upsert may leave earlier
      documents persisted; each document is its own unit of work.

Usage:
    from ragline.src.core.ingestor import IngestionPipeline, chunk_text
    chunks   = chunk_text(text, "notes.txt", chunk_size=500, overlap=0)
    pipeline = IngestionPipeline(vector_store)
    result   = pipeline.ingest_text(text, "notes.txt")
"""

from __future__ import annotations

import hashlib
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from ragline.config.settings import settings
from ragline.src.core.exceptions import InvalidConfiguration
from ragline.src.core.models import Chunk, Document, IngestionResult
from ragline.src.database.vector_store import VectorStoreClient
from ragline.src.utils.logger import get_logger
from ragline.src.utils.text_utils import content_type_for, normalize_whitespace, safe_source_name, supported_suffixes

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  CHUNKER
# ══════════════════════════════════════════════════════════════════════


def validate_chunking(chunk_size: int, overlap: int) -> None:
    """Raise ``InvalidConfiguration`` unless ``chunk_size > 0`` and ``0 <= overlap < chunk_size``."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise InvalidConfiguration(f"chunk_size must be a positive integer, got {chunk_size!r}", details={"chunk_size": chunk_size})
    if isinstance(overlap, bool) or not isinstance(overlap, int) or overlap < 0:
        raise InvalidConfiguration(f"overlap must be a non-negative integer, got {overlap!r}", details={"overlap": overlap})
    if overlap >= chunk_size:
        raise InvalidConfiguration(f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})", details={"chunk_size": chunk_size, "overlap": overlap})


def window_starts(length: int, chunk_size: int, overlap: int) -> list[int]:
    """
    Start offsets of every window over a text of *length* characters.

    Stops after the first window that reaches the end of the text.
    """
    step = chunk_size - overlap
    starts: list[int] = []
    start = 0
    while start < length:
        starts.append(start)
        if start + chunk_size >= length:
            break
        start += step
    return starts


def chunk_text(raw_text: str, source_name: str, chunk_size: int, overlap: int = 0, document_id: str | None = None) -> list[Chunk]:
    """
    Split *raw_text* into ordered, bounded chunks.

    Raises
    ------
    InvalidConfiguration
        ``chunk_size <= 0``, ``overlap < 0`` or ``overlap >= chunk_size``.
    """
    validate_chunking(chunk_size, overlap)

    normalised = normalize_whitespace(raw_text)
    if not normalised:
        return []

    timestamp_ms = int(time.time() * 1000)
    # the digest keeps sources that sanitise to the same name apart
    source_digest = hashlib.sha1(source_name.encode("utf-8")).hexdigest()[:8]
    id_prefix = f"{safe_source_name(source_name)}-{source_digest}-{timestamp_ms}"
    doc_id = document_id or source_name

    chunks: list[Chunk] = []
    for start in window_starts(len(normalised), chunk_size, overlap):
        window = normalised[start : start + chunk_size]
        if not window:
            continue
        index = len(chunks)
        chunks.append(Chunk(id=f"{id_prefix}-{index}", document_id=doc_id, text=window, sequence_index=index, source_name=source_name))

    logger.debug("[CHUNK] '%s' → %d chunk(s) (size=%d, overlap=%d, %d chars).", source_name, len(chunks), chunk_size, overlap, len(normalised))
    return chunks


# ══════════════════════════════════════════════════════════════════════
#  INGESTION PIPELINE
# ══════════════════════════════════════════════════════════════════════


class IngestionPipeline:
    """
    Document ingestion: chunk → embed → store.

    Parameters
    ----------
    vector_store
        Any ``VectorStoreClient`` (injected).
    chunk_size
        Window width.  Defaults to ``settings.CHUNK_SIZE``.
    overlap
        Window overlap.  Defaults to ``settings.CHUNK_OVERLAP``.
    max_workers
        Thread pool size for ``ingest_directory``.
    """

    __slots__ = ("_store", "_chunk_size", "_overlap", "_max_workers")

    def __init__(self, vector_store: VectorStoreClient, chunk_size: int | None = None, overlap: int | None = None, max_workers: int | None = None) -> None:
        self._store = vector_store
        self._chunk_size = settings.CHUNK_SIZE if chunk_size is None else chunk_size
        self._overlap = settings.CHUNK_OVERLAP if overlap is None else overlap
        self._max_workers = max_workers or settings.MAX_WORKERS
        validate_chunking(self._chunk_size, self._overlap)


    def ingest_document(self, document: Document, chunk_size: int | None = None, overlap: int | None = None) -> IngestionResult:
        """
        Chunk *document* and upsert its chunks.

        Per-call ``chunk_size`` / ``overlap`` override the pipeline defaults.
        A document that normalises to nothing yields zero chunks and never
        touches the store.
        """
        size = self._chunk_size if chunk_size is None else chunk_size
        step_overlap = self._overlap if overlap is None else overlap

        t_start = time.perf_counter()
        chunks = chunk_text(document.raw_text, document.source_name, size, step_overlap, document_id=document.id)

        if not chunks:
            logger.warning("[INGEST] Document '%s' (%s) is empty — nothing to store.", document.source_name, document.id)
            return IngestionResult(document_id=document.id, source_name=document.source_name, chunk_count=0, inserted_count=0, elapsed_ms=(time.perf_counter() - t_start) * 1000)

        inserted = self._store.upsert(chunks)
        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[INGEST] '%s' → %d chunk(s), %d stored in %.1fms.", document.source_name, len(chunks), inserted, elapsed_ms)
        return IngestionResult(document_id=document.id, source_name=document.source_name, chunk_count=len(chunks), inserted_count=inserted, elapsed_ms=elapsed_ms)


    def ingest_text(self, raw_text: str, source_name: str, content_type: str = "text/plain", chunk_size: int | None = None, overlap: int | None = None) -> IngestionResult:
        document = Document(id=uuid.uuid4().hex, raw_text=raw_text, source_name=source_name, content_type=content_type)
        return self.ingest_document(document, chunk_size=chunk_size, overlap=overlap)

    # ══════════════════════════════════════════════════════════════════
    #  DIRECTORY INGESTION
    # ══════════════════════════════════════════════════════════════════

    def ingest_directory(self, source_dir: Path | None = None) -> dict[str, Any]:
        """
        Ingest every supported file in *source_dir* concurrently.

        Per-file failures are logged and counted; they do not abort the run.

        Returns
        -------
        dict
            ``total_files``, ``files_processed``, ``files_failed``,
            ``total_chunks``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()
        source = Path(source_dir or settings.DATA_RAW_DIR)

        if not source.exists():
            logger.warning("Source directory does not exist: %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        suffixes = supported_suffixes()
        files = sorted(f for f in source.iterdir() if f.is_file() and f.suffix.lower() in suffixes)

        if not files:
            logger.warning("No supported files found in %s", source)
            return self._summary(0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("[INGEST] Starting — %d file(s) found in %s", len(files), source)

        total_chunks = 0
        files_processed = 0
        files_failed = 0

        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            future_to_path = {pool.submit(self._ingest_file, fp): fp for fp in files}

            for future in as_completed(future_to_path):
                filepath = future_to_path[future]
                try:
                    result = future.result()
                    total_chunks += result.inserted_count
                    files_processed += 1
                except Exception:
                    files_failed += 1
                    logger.exception("[INGEST] Failed to ingest file: %s", filepath.name)

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Complete — %d file(s) processed, %d failed, %d chunk(s) stored in %.2fs.", files_processed, files_failed, total_chunks, elapsed)
        return self._summary(len(files), files_processed, files_failed, total_chunks, elapsed)


    def _ingest_file(self, filepath: Path) -> IngestionResult:
        raw_text = self._read_file(filepath)
        return self.ingest_text(raw_text, filepath.name, content_type=content_type_for(filepath.name))


    @staticmethod
    def _read_file(filepath: Path) -> str:
        """Read a text file as UTF-8, falling back to latin-1."""
        try:
            return filepath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return filepath.read_text(encoding="latin-1")


    @staticmethod
    def _summary(total: int, processed: int, failed: int, chunks: int, elapsed: float) -> dict[str, Any]:
        return {
            "total_files": total,
            "files_processed": processed,
            "files_failed": failed,
            "total_chunks": chunks,
            "elapsed_seconds": round(elapsed, 2),
        }
