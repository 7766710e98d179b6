"""Vector store: embeds tagged documents and answers similarity searches.

What is embedded is the chunk text exactly as stored. The store performs no
deduplication: writing the same documents twice yields twice the rows.
"""

from __future__ import annotations

import logging
import sqlite3

from tagvault.db.models import Chunk, Document
from tagvault.db.repository import Repository
from tagvault.db.vectors import ensure_vec_table, model_to_slug
from tagvault.rag import llm_client

logger = logging.getLogger(__name__)


class SqliteVectorStore:
    """sqlite-vec backed store keyed by embedding model.

    Args:
        conn: Open connection with schema initialised.
        embedding_model: LiteLLM embedding model string.
        dimensions: Vector size produced by *embedding_model*.
    """

    def __init__(self, conn: sqlite3.Connection, embedding_model: str, dimensions: int) -> None:
        self._repo = Repository(conn)
        self._model = embedding_model
        self._table = ensure_vec_table(conn, model_to_slug(embedding_model), dimensions)

    @property
    def table(self) -> str:
        return self._table

    @property
    def repository(self) -> Repository:
        return self._repo

    def write(self, documents: list[Document]) -> list[int]:
        """Embed and persist *documents*. Returns the new chunk rowids."""
        if not documents:
            return []
        chunks = [Chunk.from_document(doc) for doc in documents]
        embeddings = llm_client.embed_many(self._model, [c.text for c in chunks])
        rowids = self._repo.add_chunks(self._table, chunks, embeddings)
        logger.debug("store write: table=%s, rows=%d", self._table, len(rowids))
        return rowids

    def similarity_search(
        self, query: str, top_k: int = 5, knowledge: str | None = None
    ) -> list[Document]:
        """Return up to *top_k* documents nearest to *query*, best first.

        Args:
            query: Free-text query; embedded with the store's model.
            top_k: Maximum number of documents returned.
            knowledge: Restrict results to this tag; ``None`` searches all tags.
        """
        embedding = llm_client.embed(self._model, query)
        chunks = self._repo.search_similar(self._table, embedding, limit=top_k, knowledge=knowledge)
        documents = []
        for chunk in chunks:
            doc = chunk.to_document()
            doc.metadata["distance"] = chunk.distance
            documents.append(doc)
        return documents
