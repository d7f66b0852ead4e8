"""
Ragline - RagVectorStore
=========================
OOP wrapper around LanceDB implementing the vector-store contract the
pipeline depends on:
  • ``upsert(chunks)``  → embed + persist, returns the number written
  • ``query(text, limit, similarity_threshold)`` → ranked ``RetrievedUnit`` list

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock contention.
  • **Dependency Injection** — the embedder is injected, never built
    here, so tests run against a deterministic fake embedder.
  • **Lazy table creation** — the vector column is a fixed-size list, so
    the table is created on the first upsert once the embedding
    dimension is known.  Queries against a missing table return ``[]``.
  • **Shared tables** — reads use strong consistency and re-check the
    table list, so a server sees rows and drops made by the ingestion CLI.
  • **Cosine similarity** — searches use cosine distance;
    ``similarity = 1 - distance`` clamped to [0, 1].
  • **Explicit id policy** — ``"reject"`` raises ``DuplicateId`` and
    writes nothing; ``"overwrite"`` uses ``merge_insert`` on ``id``.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from ragline.src.database.vector_store import RagVectorStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    store = RagVectorStore(embedder)
    store.upsert(chunks)
    units = store.query("query text", limit=3, similarity_threshold=0.7)
"""

from __future__ import annotations

import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Literal, Protocol, Sequence, runtime_checkable

import lancedb
import pyarrow as pa

from ragline.config.settings import settings
from ragline.src.core.exceptions import DuplicateId, RaglineError, StoreUnavailable
from ragline.src.core.models import Chunk, RetrievedUnit
from ragline.src.utils.logger import get_logger

logger = get_logger(__name__)

DuplicatePolicy = Literal["reject", "overwrite"]
ChunkRecord = dict[str, str | int | list[float]]


# ── Protocols ─────────────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


@runtime_checkable
class VectorStoreClient(Protocol):
    """The two operations the retrieval and ingestion pipelines rely on."""

    def upsert(self, chunks: Sequence[Chunk]) -> int: ...

    def query(self, text: str, limit: int, similarity_threshold: float | None = None) -> list[RetrievedUnit]: ...


# ── Constants ──────────────────────────────────────────────────────────
_EMBED_BATCH_SIZE = 64
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}
_METADATA_FIELDS = ("id", "document_id", "source_name", "sequence_index", "created_at")


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                # Every read checks for the latest version so writes from the
                # ingestion CLI are visible to a long-running server.
                _db_connection_cache[db_path] = lancedb.connect(db_path, read_consistency_interval=timedelta(0))
    return _db_connection_cache[db_path]


def _release_connection(db_path: str) -> None:
    with _DB_LOCK:
        _db_connection_cache.pop(db_path, None)


def _table_names(db: lancedb.DBConnection) -> list[str]:
    """Every table name in *db*, following pagination."""
    names: list[str] = []
    page_token: str | None = None
    while True:
        response = db.list_tables(page_token=page_token)
        names.extend(response.tables)
        page_token = response.page_token
        if not page_token:
            return names


def build_schema(dimension: int) -> pa.Schema:
    """Arrow schema for the chunk table with a ``dimension``-wide vector column."""
    return pa.schema([
        pa.field("id", pa.utf8()),
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("text", pa.utf8()),
        pa.field("document_id", pa.utf8()),
        pa.field("source_name", pa.utf8()),
        pa.field("sequence_index", pa.int32()),
        pa.field("created_at", pa.utf8()),
    ])


def _sql_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class RagVectorStore:
    """
    High-level abstraction over a LanceDB chunk table.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    duplicate_policy
        ``"reject"`` or ``"overwrite"``.  Defaults to ``settings.DUPLICATE_ID_POLICY``.
    """

    __slots__ = ("embedder", "_db_path", "_table_name", "_policy", "_write_lock", "db", "table")

    def __init__(self, embedder: Embedder, db_path: str | None = None, table_name: str | None = None, duplicate_policy: DuplicatePolicy | None = None) -> None:
        self.embedder: Embedder = embedder
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._policy: DuplicatePolicy = duplicate_policy or settings.DUPLICATE_ID_POLICY
        self._write_lock = threading.Lock()
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the LanceDB connection and open the table if present."""
        try:
            self.db = _get_connection(self._db_path)
            if self._sync_table() is not None:
                logger.info("Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                logger.info("Table '%s' does not exist yet; it is created on first upsert.", self._table_name)
        except Exception as exc:
            logger.exception("Failed to connect to LanceDB at %s.", self._db_path)
            raise StoreUnavailable(f"cannot open vector store at {self._db_path}", stage="ingestion") from exc


    def _sync_table(self) -> lancedb.table.Table | None:
        """
        Align ``self.table`` with the database.

        Another handle (typically the ingestion CLI) may create or drop the
        table after this one connected: open it once it appears and forget
        it once it is gone.
        """
        if self.db is None:
            return None
        exists = self._table_name in _table_names(self.db)
        if not exists:
            if self.table is not None:
                logger.warning("Table '%s' was dropped by another handle.", self._table_name)
            self.table = None
        elif self.table is None:
            self.table = self.db.open_table(self._table_name)
            logger.debug("Opened table '%s'.", self._table_name)
        return self.table


    def _ensure_table(self, dimension: int) -> lancedb.table.Table:
        if self.db is None:
            raise StoreUnavailable("vector store connection is closed", stage="ingestion")
        if self._sync_table() is None:
            self.table = self.db.create_table(self._table_name, schema=build_schema(dimension), exist_ok=True)
            logger.info("Created table '%s' (dimension=%d).", self._table_name, dimension)
        return self.table

    # ══════════════════════════════════════════════════════════════════
    #  WRITE PATH
    # ══════════════════════════════════════════════════════════════════

    def upsert(self, chunks: Sequence[Chunk]) -> int:
        """
        Embed a batch of chunks and persist them.

        Returns
        -------
        int
            Number of rows written.

        Raises
        ------
        DuplicateId
            Policy is ``"reject"`` and an id repeats in the batch or already
            exists in the table.  Nothing is written.
        StoreUnavailable
            Embedding or LanceDB write failed.  Earlier embedding batches are
            never written on failure; the single table write is the commit point.
        """
        if not chunks:
            return 0

        ids = [chunk.id for chunk in chunks]
        repeated = sorted(i for i, n in Counter(ids).items() if n > 1)
        if repeated:
            if self._policy == "reject":
                logger.warning("[STORE] Batch contains repeated ids: %s", repeated[:5])
                raise DuplicateId(repeated)
            # overwrite: last occurrence wins, as it would across two upserts
            chunks = list({chunk.id: chunk for chunk in chunks}.values())
            ids = [chunk.id for chunk in chunks]

        logger.info("[STORE] Embedding %d chunks in batches of %d …", len(chunks), _EMBED_BATCH_SIZE)
        vectors = self._embed_chunks([chunk.text for chunk in chunks])

        created_at = datetime.now(timezone.utc).isoformat()
        records: list[ChunkRecord] = [
            {"id": chunk.id, "vector": vec, "text": chunk.text, "document_id": chunk.document_id, "source_name": chunk.source_name, "sequence_index": chunk.sequence_index, "created_at": created_at}
            for chunk, vec in zip(chunks, vectors)
        ]

        with self._write_lock:
            try:
                table = self._ensure_table(len(vectors[0]))
                data = pa.Table.from_pylist(records, schema=table.schema)

                if self._policy == "reject":
                    existing = self._existing_ids(table, ids)
                    if existing:
                        logger.warning("[STORE] %d id(s) already stored; rejecting batch.", len(existing))
                        raise DuplicateId(existing)
                    table.add(data)
                else:
                    table.merge_insert("id").when_matched_update_all().when_not_matched_insert_all().execute(data)
            except RaglineError:
                raise
            except Exception as exc:
                logger.error("[STORE] Failed to write %d records to LanceDB: %s", len(records), exc)
                raise StoreUnavailable("vector store write failed", stage="ingestion", details={"table": self._table_name}) from exc

        logger.info("[STORE] Upserted %d chunks into '%s' (policy=%s).", len(records), self._table_name, self._policy)
        return len(records)


    def _embed_chunks(self, texts: list[str]) -> list[list[float]]:
        all_vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                all_vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("[STORE] Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise StoreUnavailable("embedding service failed", stage="ingestion") from exc
        if len(all_vectors) != len(texts):
            raise StoreUnavailable(f"embedding service returned {len(all_vectors)} vectors for {len(texts)} texts", stage="ingestion")
        return all_vectors


    @staticmethod
    def _existing_ids(table: lancedb.table.Table, ids: list[str]) -> list[str]:
        where = f"id IN ({', '.join(_sql_quote(i) for i in ids)})"
        if table.count_rows(where) == 0:
            return []
        rows = table.search().where(where).limit(len(ids)).to_list()
        return sorted({str(row["id"]) for row in rows})

    # ══════════════════════════════════════════════════════════════════
    #  READ PATH
    # ══════════════════════════════════════════════════════════════════

    def query(self, text: str, limit: int, similarity_threshold: float | None = None) -> list[RetrievedUnit]:
        """
        Cosine similarity search.

        Returns at most *limit* units in descending similarity order, each
        with ``similarity_score >= similarity_threshold`` when one is given.
        An empty list means nothing matched; it is not an error.
        """
        try:
            table = self._sync_table()
        except Exception as exc:
            logger.error("[STORE] Cannot read table list: %s", exc)
            raise StoreUnavailable("vector store query failed", stage="retrieval", details={"table": self._table_name}) from exc
        if table is None:
            logger.info("[STORE] Query against empty store, no table yet.")
            return []

        try:
            query_vector = self.embedder.embed_query(text)
            rows = table.search(query_vector).distance_type("cosine").limit(limit).to_list()
        except Exception as exc:
            logger.error("[STORE] Similarity search failed: %s", exc)
            raise StoreUnavailable("vector store query failed", stage="retrieval", details={"table": self._table_name}) from exc

        units: list[RetrievedUnit] = []
        for row in rows:
            score = max(0.0, min(1.0, 1.0 - float(row["_distance"])))
            if similarity_threshold is not None and score < similarity_threshold:
                continue
            metadata = {name: row[name] for name in _METADATA_FIELDS if name in row}
            units.append(RetrievedUnit(chunk_text=str(row["text"]), similarity_score=score, source_metadata=metadata))

        units.sort(key=lambda u: u.similarity_score, reverse=True)
        logger.info("[STORE] Search returned %d row(s), %d above threshold %s.", len(rows), len(units), similarity_threshold)
        return units

    # ══════════════════════════════════════════════════════════════════
    #  ADMIN
    # ══════════════════════════════════════════════════════════════════

    def count(self) -> int:
        """Return the total number of rows in the table."""
        table = self._sync_table()
        if table is None:
            return 0
        return table.count_rows()


    def list_tables(self) -> list[str]:
        """Names of every table in the connected database."""
        if self.db is None:
            raise StoreUnavailable("vector store connection is closed", stage="retrieval")
        try:
            return sorted(_table_names(self.db))
        except Exception as exc:
            raise StoreUnavailable("failed to list collections", stage="retrieval") from exc


    def drop_table(self) -> None:
        """Drop the chunk table (re-ingestion / tests)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            logger.info("Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("Table '%s' does not exist — nothing to drop.", self._table_name)
        finally:
            self.table = None


    def close(self) -> None:
        """Release the table handle and the cached connection for this path."""
        self.table = None
        self.db = None
        _release_connection(self._db_path)
        logger.info("Closed LanceDB connection: %s", self._db_path)


    def __repr__(self) -> str:
        return f"RagVectorStore(db='{self._db_path}', table='{self._table_name}', policy='{self._policy}', rows={self.count()})"
