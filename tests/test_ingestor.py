"""
Tests for the chunker and IngestionPipeline.
"""

import re

import pytest

from conftest import FakeVectorStore
from ragline.src.core.exceptions import InvalidConfiguration, StoreUnavailable
from ragline.src.core.ingestor import IngestionPipeline, chunk_text, window_starts
from ragline.src.core.models import Document
from ragline.src.utils.text_utils import normalize_whitespace

FOX = "The quick brown fox jumps over the lazy dog"

LONG_TEXT = (
    "Retrieval augmented generation  combines search with generation.\n\n"
    "\tDocuments are split into windows,   embedded, and stored.  " * 40
)


class TestChunkText:

    def test_concatenation_reproduces_normalized_text(self):
        chunks = chunk_text(LONG_TEXT, "notes.txt", chunk_size=500, overlap=0)

        assert len(chunks) > 1
        assert "".join(c.text for c in chunks) == normalize_whitespace(LONG_TEXT)

    @pytest.mark.parametrize("size,overlap", [(1, 0), (7, 3), (10, 0), (50, 49), (64, 16), (500, 100)])
    def test_bounded_length_and_fixed_stride(self, size, overlap):
        normalized = normalize_whitespace(LONG_TEXT)
        chunks = chunk_text(LONG_TEXT, "notes.txt", chunk_size=size, overlap=overlap)
        starts = window_starts(len(normalized), size, overlap)

        assert len(chunks) == len(starts)
        assert all(len(c.text) <= size for c in chunks)
        assert all(b - a == size - overlap for a, b in zip(starts, starts[1:]))
        for start, chunk in zip(starts, chunks):
            assert normalized[start : start + size] == chunk.text

    def test_last_window_reaches_end_once(self):
        chunks = chunk_text("abcdefghij", "s", chunk_size=4, overlap=2)

        assert [c.text for c in chunks] == ["abcd", "cdef", "efgh", "ghij"]

    def test_final_partial_window_is_emitted(self):
        chunks = chunk_text("abcdefghij", "s", chunk_size=4, overlap=0)

        assert [c.text for c in chunks] == ["abcd", "efgh", "ij"]

    @pytest.mark.parametrize("text", ["", "   ", "\n\t \r\n"])
    def test_empty_text_yields_no_chunks(self, text):
        assert chunk_text(text, "empty.txt", chunk_size=10, overlap=0) == []

    @pytest.mark.parametrize("size,overlap", [(10, 10), (10, 11), (0, 0), (-5, 0), (10, -1)])
    def test_invalid_configuration(self, size, overlap):
        with pytest.raises(InvalidConfiguration):
            chunk_text(FOX, "fox.txt", chunk_size=size, overlap=overlap)

    def test_invalid_configuration_is_rejected_before_processing(self):
        with pytest.raises(InvalidConfiguration):
            chunk_text("", "empty.txt", chunk_size=5, overlap=5)

    def test_whitespace_is_collapsed(self):
        chunks = chunk_text("  a \n\n b\t\tc  ", "s", chunk_size=100, overlap=0)

        assert [c.text for c in chunks] == ["a b c"]

    def test_fox_sentence(self):
        chunks = chunk_text(FOX, "fox.txt", chunk_size=10, overlap=0)

        assert len(chunks) == 5
        assert [c.sequence_index for c in chunks] == [0, 1, 2, 3, 4]
        assert all(len(c.text) <= 10 for c in chunks)
        assert chunks[1].text == "brown fox "

    def test_ids_are_unique_and_derived_from_source(self):
        chunks = chunk_text(FOX, "my notes.txt", chunk_size=10, overlap=0)
        ids = [c.id for c in chunks]

        assert len(set(ids)) == len(ids)
        for index, chunk_id in enumerate(ids):
            assert re.fullmatch(rf"my_notes\.txt-[0-9a-f]{{8}}-\d+-{index}", chunk_id)

    def test_ids_keep_similar_sources_apart(self):
        spaced = chunk_text(FOX, "a b.txt", chunk_size=10)
        underscored = chunk_text(FOX, "a_b.txt", chunk_size=10)

        assert spaced[0].id.startswith("a_b.txt-")
        assert underscored[0].id.startswith("a_b.txt-")
        assert spaced[0].id.rsplit("-", 2)[0] != underscored[0].id.rsplit("-", 2)[0]
        assert not {c.id for c in spaced} & {c.id for c in underscored}

    def test_document_id_defaults_to_source_name(self):
        chunks = chunk_text(FOX, "fox.txt", chunk_size=10)

        assert {c.document_id for c in chunks} == {"fox.txt"}
        assert {c.source_name for c in chunks} == {"fox.txt"}

    def test_explicit_document_id(self):
        chunks = chunk_text(FOX, "fox.txt", chunk_size=10, document_id="doc-1")

        assert {c.document_id for c in chunks} == {"doc-1"}


class TestIngestionPipeline:

    @pytest.fixture
    def pipeline(self, fake_store):
        return IngestionPipeline(fake_store, chunk_size=10, overlap=0, max_workers=2)

    def test_ingest_document(self, pipeline, fake_store):
        document = Document(id="doc-1", raw_text=FOX, source_name="fox.txt")

        result = pipeline.ingest_document(document)

        assert result.document_id == "doc-1"
        assert result.chunk_count == 5
        assert result.inserted_count == 5
        assert [c.sequence_index for c in fake_store.chunks] == [0, 1, 2, 3, 4]

    def test_empty_document_skips_store(self, pipeline, fake_store):
        fake_store.error = AssertionError("store must not be called")

        result = pipeline.ingest_text("   ", "blank.txt")

        assert result.chunk_count == 0
        assert result.inserted_count == 0

    def test_per_call_overrides(self, pipeline, fake_store):
        result = pipeline.ingest_text(FOX, "fox.txt", chunk_size=20, overlap=5)

        assert result.chunk_count == len(window_starts(len(FOX), 20, 5))
        assert all(len(c.text) <= 20 for c in fake_store.chunks)

    def test_invalid_override_raises(self, pipeline):
        with pytest.raises(InvalidConfiguration):
            pipeline.ingest_text(FOX, "fox.txt", chunk_size=10, overlap=10)

    def test_invalid_defaults_rejected_at_construction(self, fake_store):
        with pytest.raises(InvalidConfiguration):
            IngestionPipeline(fake_store, chunk_size=10, overlap=10)

    def test_store_errors_propagate(self, pipeline, fake_store):
        fake_store.error = StoreUnavailable("down", stage="ingestion")

        with pytest.raises(StoreUnavailable):
            pipeline.ingest_text(FOX, "fox.txt")

    def test_ingest_text_assigns_fresh_document_ids(self, pipeline):
        first = pipeline.ingest_text(FOX, "fox.txt")
        second = pipeline.ingest_text(FOX, "fox.txt")

        assert first.document_id != second.document_id


class TestIngestDirectory:

    def test_ingests_supported_files(self, tmp_path):
        (tmp_path / "a.txt").write_text(FOX, encoding="utf-8")
        (tmp_path / "b.md").write_text("# Title\n\nSome markdown body.", encoding="utf-8")
        (tmp_path / "ignored.pdf").write_bytes(b"%PDF")
        store = FakeVectorStore()

        summary = IngestionPipeline(store, chunk_size=10, overlap=0, max_workers=2).ingest_directory(tmp_path)

        assert summary["total_files"] == 2
        assert summary["files_processed"] == 2
        assert summary["files_failed"] == 0
        assert summary["total_chunks"] == len(store.chunks)
        assert {c.source_name for c in store.chunks} == {"a.txt", "b.md"}

    def test_missing_directory(self, tmp_path):
        summary = IngestionPipeline(FakeVectorStore()).ingest_directory(tmp_path / "nope")

        assert summary["total_files"] == 0

    def test_failures_are_counted_not_raised(self, tmp_path):
        (tmp_path / "a.txt").write_text(FOX, encoding="utf-8")
        store = FakeVectorStore()
        store.error = StoreUnavailable("down", stage="ingestion")

        summary = IngestionPipeline(store, chunk_size=10).ingest_directory(tmp_path)

        assert summary["files_failed"] == 1
        assert summary["files_processed"] == 0

    def test_latin1_fallback(self, tmp_path):
        (tmp_path / "legacy.txt").write_bytes("caf\xe9 au lait".encode("latin-1"))
        store = FakeVectorStore()

        IngestionPipeline(store, chunk_size=50).ingest_directory(tmp_path)

        assert store.chunks[0].text == "café au lait"
