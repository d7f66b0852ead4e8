"""
Ragline - Database Setup & Ingestion Script
=============================================
CLI entry point that orchestrates:
    1. Load settings (fail-fast on a missing ``GOOGLE_API_KEY``).
    2. Initialise ``RagVectorStore`` (optionally drop the existing table).
    3. Run ``IngestionPipeline.ingest_directory``.
    4. Print a structured execution summary with timing breakdown.

Flags:
    --source DIR   Directory of .txt / .md files (default: settings.DATA_RAW_DIR).
    --drop         Drop the LanceDB table before ingesting.
    --drop-only    Drop the table and exit immediately (no ingestion).

Usage:
    python -m ragline.scripts.setup_db
    python -m ragline.scripts.setup_db --source ./docs --drop
    python -m ragline.scripts.setup_db --drop-only
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="Ragline — initialise the vector database and ingest a directory of documents.")
    parser.add_argument("--source", type=Path, default=None, help="Directory of .txt / .md files to ingest.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table before ingesting.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the LanceDB table and exit (no ingestion).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from ragline.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    # Settings are loaded, so the logger can be imported safely
    from ragline.src.utils.logger import get_logger
    logger = get_logger(__name__)

    _print_header(settings, args.source or settings.DATA_RAW_DIR)

    # ── 1. Embedder + store (timed) ────────────────────────────────────
    from ragline.src.core.exceptions import RaglineError
    from ragline.src.core.ingestor import IngestionPipeline
    from ragline.src.core.rag_engine import build_embedder
    from ragline.src.database.vector_store import RagVectorStore

    t_init = time.perf_counter()
    try:
        embedder = build_embedder()
    except Exception as exc:
        logger.error("Failed to initialise the embedding model: %s", exc)
        return 1
    try:
        store = RagVectorStore(embedder=embedder)
    except RaglineError as exc:
        logger.error("Vector store unavailable: %s", exc)
        return 1
    init_ms = (time.perf_counter() - t_init) * 1000
    logger.info("Settings loaded in %.1fms, store ready in %.1fms.", settings_ms, init_ms)

    try:
        if args.drop or args.drop_only:
            logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
            store.drop_table()
            if args.drop_only:
                _print_footer({"total_files": 0, "files_processed": 0, "files_failed": 0, "total_chunks": 0}, time.perf_counter() - t_start)
                return 0

        # ── 2. Ingest ──────────────────────────────────────────────────
        try:
            pipeline = IngestionPipeline(vector_store=store)
        except RaglineError as exc:
            logger.error("Invalid chunking configuration: %s", exc)
            return 1
        summary = pipeline.ingest_directory(args.source)
    finally:
        store.close()

    _print_footer(summary, time.perf_counter() - t_start)
    return 0 if summary["files_failed"] == 0 else 2


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, source: Path) -> None:
    print()
    print("=" * 60)
    print("  RAGLINE — Vector Database Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                       # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")           # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")              # type: ignore[attr-defined]
    print(f"  Table        : {settings.LANCEDB_TABLE_NAME}")        # type: ignore[attr-defined]
    print(f"  Id policy    : {settings.DUPLICATE_ID_POLICY}")       # type: ignore[attr-defined]
    print(f"  Source dir   : {source}")
    print(f"  Chunk size   : {settings.CHUNK_SIZE} chars (overlap {settings.CHUNK_OVERLAP})")  # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(summary: dict, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Total files scanned  : {summary['total_files']}")
    print(f"  Files ingested       : {summary['files_processed']}")
    print(f"  Files failed         : {summary['files_failed']}")
    print(f"  Total chunks stored  : {summary['total_chunks']}")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


if __name__ == "__main__":
    sys.exit(main())
