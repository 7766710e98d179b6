"""Vector store writer — hands tagged chunk batches to the vector store."""

from __future__ import annotations

import logging
import sqlite3

import openai

from tagvault.db.models import Document
from tagvault.db.vector_store import SqliteVectorStore
from tagvault.errors import InfrastructureError, ModelError

logger = logging.getLogger(__name__)


class VectorStoreWriter:
    """Persist chunk batches; no dedup, no upsert.

    Writing the same chunks twice stores them twice. Store failures surface as
    InfrastructureError naming the table; embedding failures as ModelError.
    """

    def __init__(self, store: SqliteVectorStore) -> None:
        self._store = store

    def write(self, chunks: list[Document]) -> int:
        """Store *chunks* and return how many rows were written."""
        if not chunks:
            return 0
        try:
            rowids = self._store.write(chunks)
        except sqlite3.Error as exc:
            logger.error("BIZ_ERROR: op=storeWrite, table=%s", self._store.table, exc_info=True)
            raise InfrastructureError(
                f"Vector store write failed: {exc}", operation="storeWrite", target=self._store.table
            ) from exc
        except openai.OpenAIError as exc:
            logger.error("BIZ_ERROR: op=embed, table=%s", self._store.table, exc_info=True)
            raise ModelError(
                f"Embedding call failed: {exc}", operation="embed", target=self._store.table
            ) from exc
        return len(rowids)
