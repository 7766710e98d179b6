"""Shared pytest fixtures."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from tagvault.db.connection import Database
from tagvault.db.schema import initialize
from tagvault.db.vector_store import SqliteVectorStore
from tagvault.tags import TagRegistry

EMBED_MODEL = "openai/text-embedding-3-small"
EMBED_DIMS = 8


def fake_vector(text: str) -> list[float]:
    """Deterministic 8-dim embedding: letter counts for a..h, never all-zero."""
    lowered = text.lower()
    return [float(lowered.count(c)) + 0.01 for c in "abcdefgh"]


def _fake_embedding(model, input, **kwargs):
    return SimpleNamespace(
        data=[{"index": i, "embedding": fake_vector(t)} for i, t in enumerate(input)]
    )


class FakeRedis:
    """In-memory stand-in for the two redis.Redis set commands the registry uses."""

    def __init__(self) -> None:
        self.sets: dict[str, set[str]] = {}

    def sadd(self, key: str, *members: str) -> int:
        bucket = self.sets.setdefault(key, set())
        added = [m for m in members if m not in bucket]
        bucket.update(added)
        return len(added)

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".tagvault.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_embedding():
    """Patch the LiteLLM embedding call with fake_vector()."""
    with patch("tagvault.rag.llm_client.litellm.embedding", side_effect=_fake_embedding) as mock:
        yield mock


@pytest.fixture
def store(tmp_db, fake_embedding):
    return SqliteVectorStore(tmp_db, EMBED_MODEL, EMBED_DIMS)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def registry(fake_redis):
    return TagRegistry(fake_redis)
