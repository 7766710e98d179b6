"""Tests for the upload adapter."""

from __future__ import annotations

import pytest

from tagvault.db.models import SourceFile
from tagvault.errors import ExtractionError, ValidationError
from tagvault.ingest.extractor import TextExtractor
from tagvault.ingest.pipeline import ChunkingPipeline
from tagvault.ingest.splitter import TokenTextSplitter
from tagvault.ingest.upload import UploadIngestor
from tagvault.ingest.writer import VectorStoreWriter

_TEXT = b"Tagvault stores tagged chunks for retrieval."


def _ingestor(store, registry, strict=False):
    pipeline = ChunkingPipeline(TextExtractor(), TokenTextSplitter())
    return UploadIngestor(pipeline, VectorStoreWriter(store), registry, strict=strict)


def test_single_file_upload_registers_tag(store, registry):
    summary = _ingestor(store, registry).ingest("docs", [SourceFile.from_bytes("a.txt", _TEXT)])
    assert summary.processed_count == 1
    assert summary.chunk_count >= 1
    assert registry.list() == {"docs"}
    assert "1 file(s)" in summary.describe()


def test_empty_file_list_is_nothing_to_do(store, registry, fake_embedding):
    summary = _ingestor(store, registry).ingest("docs", [])
    assert summary.nothing_to_do is True
    assert "Nothing to do" in summary.describe()
    assert registry.list() == set()
    fake_embedding.assert_not_called()


def test_blank_tag_rejected_before_io(store, registry, fake_embedding):
    with pytest.raises(ValidationError):
        _ingestor(store, registry).ingest("  ", [SourceFile.from_bytes("a.txt", _TEXT)])
    fake_embedding.assert_not_called()


def test_zero_byte_file_skipped(store, registry):
    summary = _ingestor(store, registry).ingest(
        "docs", [SourceFile.from_bytes("empty.txt", b""), SourceFile.from_bytes("a.txt", _TEXT)]
    )
    assert summary.skipped == ["empty.txt"]
    assert summary.processed_count == 1


def test_failing_file_is_reported_and_skipped(store, registry):
    files = [
        SourceFile.from_bytes("broken.pdf", b"not a pdf"),
        SourceFile.from_bytes("a.txt", _TEXT),
    ]
    summary = _ingestor(store, registry).ingest("docs", files)
    assert summary.failed == ["broken.pdf"]
    assert summary.processed_count == 1
    assert "Failed: broken.pdf" in summary.describe()
    assert registry.list() == {"docs"}


def test_strict_mode_aborts_with_partial_summary(store, registry):
    files = [
        SourceFile.from_bytes("a.txt", _TEXT),
        SourceFile.from_bytes("broken.pdf", b"not a pdf"),
    ]
    with pytest.raises(ExtractionError) as info:
        _ingestor(store, registry, strict=True).ingest("docs", files)
    assert info.value.partial.processed_count == 1
    assert registry.list() == set()


def test_all_files_failing_does_not_register_tag(store, registry):
    summary = _ingestor(store, registry).ingest("docs", [SourceFile.from_bytes("x.pdf", b"junk")])
    assert summary.processed_count == 0
    assert registry.list() == set()


def test_duplicate_upload_doubles_chunks(store, registry):
    ingestor = _ingestor(store, registry)
    first = ingestor.ingest("docs", [SourceFile.from_bytes("a.txt", _TEXT)])
    ingestor.ingest("docs", [SourceFile.from_bytes("a.txt", _TEXT)])
    assert store.repository.count_chunks("docs") == 2 * first.chunk_count
    assert registry.list() == {"docs"}
