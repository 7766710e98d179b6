"""Tests for LiteLLM client wrapper."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tagvault.rag.llm_client import (
    astream_completion,
    delta_text,
    embed,
    embed_many,
    stream_completion,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o-mini")  # should not raise


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


def test_validate_api_key_bare_model_treated_as_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("gpt-4o-mini")


# ------------------------------------------------------------------
# Embeddings
# ------------------------------------------------------------------


def test_embed_many_orders_by_index():
    response = SimpleNamespace(data=[
        {"index": 1, "embedding": [0.2]},
        {"index": 0, "embedding": [0.1]},
    ])
    with patch("tagvault.rag.llm_client.litellm.embedding", return_value=response) as mock:
        vectors = embed_many("openai/text-embedding-3-small", ["a", "b"])
    assert vectors == [[0.1], [0.2]]
    assert mock.call_args.kwargs["num_retries"] == 3


def test_embed_many_accepts_attribute_objects():
    item = MagicMock(index=0, embedding=[1.0, 2.0])
    with patch("tagvault.rag.llm_client.litellm.embedding", return_value=SimpleNamespace(data=[item])):
        assert embed("openai/text-embedding-3-small", "q") == [1.0, 2.0]


def test_embed_many_empty_skips_call():
    with patch("tagvault.rag.llm_client.litellm.embedding") as mock:
        assert embed_many("m", []) == []
    mock.assert_not_called()


# ------------------------------------------------------------------
# Streaming
# ------------------------------------------------------------------


def test_stream_completion_requests_stream():
    with patch("tagvault.rag.llm_client.litellm.completion", return_value=iter([])) as mock:
        stream_completion("openai/gpt-4o-mini", [{"role": "user", "content": "hi"}], temperature=0.2)
    kwargs = mock.call_args.kwargs
    assert kwargs["stream"] is True
    assert kwargs["temperature"] == 0.2


def test_astream_completion_awaits_acompletion():
    sentinel = object()
    with patch("tagvault.rag.llm_client.litellm.acompletion", new=AsyncMock(return_value=sentinel)) as mock:
        result = asyncio.run(astream_completion("m", [{"role": "user", "content": "hi"}]))
    assert result is sentinel
    assert mock.await_args.kwargs["stream"] is True


def test_delta_text():
    chunk = {"choices": [{"delta": {"content": "Hel"}}]}
    assert delta_text(chunk) == "Hel"
    assert delta_text({"choices": [{"delta": {"content": None}}]}) == ""
    assert delta_text({"choices": []}) == ""
    assert delta_text(SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="lo"))])) == "lo"
