"""Tests for the retrieval assembler."""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock

import openai
import pytest

from tagvault.db.models import Document
from tagvault.errors import InfrastructureError, ModelError
from tagvault.rag.retriever import NO_DOCUMENTS_FOUND, RetrievalAssembler


def _doc(text, tag="docs", index=0):
    return Document(text, {"knowledge": tag, "source": "a.md", "chunk_index": index})


def test_unknown_tag_returns_sentinel(store):
    store.write([_doc("alpha beta")])
    ctx = RetrievalAssembler(store).retrieve("nonexistent", "query")
    assert ctx.found is False
    assert ctx.text == NO_DOCUMENTS_FOUND
    assert "not found" in ctx.text
    assert ctx.documents == []


def test_context_joins_chunks_best_first(store):
    store.write([_doc("hhhh hhhh"), _doc("aaaa aaaa", index=1)])
    ctx = RetrievalAssembler(store).retrieve("docs", "aaa")
    assert ctx.found is True
    assert ctx.text == "aaaa aaaa\n\nhhhh hhhh"


def test_blank_tag_searches_all_tags(store):
    store.write([_doc("aaaa", tag="docs"), _doc("aaaa", tag="code")])
    ctx = RetrievalAssembler(store).retrieve("  ", "aaaa")
    assert ctx.tag == ""
    assert {d.metadata["knowledge"] for d in ctx.documents} == {"docs", "code"}


def test_top_k_limits_documents(store):
    store.write([_doc(f"chunk {i}", index=i) for i in range(8)])
    ctx = RetrievalAssembler(store, top_k=3).retrieve("docs", "chunk")
    assert len(ctx.documents) == 3
    assert len(RetrievalAssembler(store).retrieve("docs", "chunk", top_k=6).documents) == 6


def test_token_budget_drops_tail_but_keeps_best(store):
    store.write([_doc("a" * 400), _doc("a" * 399 + "b", index=1)])
    ctx = RetrievalAssembler(store, token_budget=50).retrieve("docs", "aaaa")
    assert len(ctx.documents) == 1


def test_store_error_becomes_infrastructure_error():
    store = MagicMock()
    store.table = "vec_chunks_x"
    store.similarity_search.side_effect = sqlite3.OperationalError("no such table")
    with pytest.raises(InfrastructureError) as info:
        RetrievalAssembler(store).retrieve("docs", "q")
    assert info.value.operation == "retrieve"


def test_embedding_error_becomes_model_error():
    store = MagicMock()
    store.similarity_search.side_effect = openai.OpenAIError("quota")
    with pytest.raises(ModelError):
        RetrievalAssembler(store).retrieve("docs", "q")


def test_top_k_must_be_positive(store):
    with pytest.raises(ValueError):
        RetrievalAssembler(store, top_k=0)
