"""Retrieval assembler: similarity search → bounded context block for one query.

The context is the retrieved chunk texts, best-first, joined with blank lines
and cut to a token budget. When nothing is found the context is the
``NO_DOCUMENTS_FOUND`` sentinel, never an empty string, so the prompt's
DOCUMENTS section is always populated.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

import openai

from tagvault.db.models import Document
from tagvault.db.vector_store import SqliteVectorStore
from tagvault.errors import InfrastructureError, ModelError
from tagvault.ingest.splitter import TokenTextSplitter

logger = logging.getLogger(__name__)

NO_DOCUMENTS_FOUND = "Relevant documents not found."


@dataclass
class RetrievalContext:
    """Per-query context; discarded after one generation call.

    Attributes:
        tag: Tag the search was restricted to ("" when all tags were searched).
        query: The user query that was embedded.
        text: Context block for the prompt, or the sentinel.
        documents: Chunks that made it into *text*, best-first.
        found: False when the search returned nothing.
    """

    tag: str
    query: str
    text: str
    documents: list[Document] = field(default_factory=list)
    found: bool = False


class RetrievalAssembler:
    def __init__(self, store: SqliteVectorStore, top_k: int = 5, token_budget: int = 4_096) -> None:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        self._store = store
        self.top_k = top_k
        self.token_budget = token_budget

    def retrieve(self, tag: str | None, query: str, top_k: int | None = None) -> RetrievalContext:
        """Search *tag* (all tags when blank) for chunks similar to *query*.

        Raises:
            InfrastructureError: If the vector store cannot be queried.
            ModelError: If the query cannot be embedded.
        """
        tag = (tag or "").strip()
        limit = top_k or self.top_k
        logger.info("BIZ_BEGIN: op=retrieve, tag=%s, topK=%d", tag or "<all>", limit)
        try:
            documents = self._store.similarity_search(query, top_k=limit, knowledge=tag or None)
        except sqlite3.Error as exc:
            logger.error("BIZ_ERROR: op=retrieve, table=%s", self._store.table, exc_info=True)
            raise InfrastructureError(
                f"Similarity search failed: {exc}", operation="retrieve", target=self._store.table
            ) from exc
        except openai.OpenAIError as exc:
            logger.error("BIZ_ERROR: op=embedQuery, tag=%s", tag, exc_info=True)
            raise ModelError(
                f"Query embedding failed: {exc}", operation="embedQuery", target=tag or None
            ) from exc

        selected = _apply_token_budget(documents, self.token_budget)
        if not selected:
            logger.info("BIZ_END: op=retrieve, tag=%s, size=0, fallback=sentinel", tag or "<all>")
            return RetrievalContext(tag=tag, query=query, text=NO_DOCUMENTS_FOUND)

        text = "\n\n".join(doc.text for doc in selected)
        logger.info(
            "BIZ_END: op=retrieve, tag=%s, size=%d, dropped=%d",
            tag or "<all>", len(selected), len(documents) - len(selected),
        )
        return RetrievalContext(tag=tag, query=query, text=text, documents=selected, found=True)


# ------------------------------------------------------------------
# Token budget
# ------------------------------------------------------------------


def _apply_token_budget(documents: list[Document], budget: int) -> list[Document]:
    """Keep documents, best-first, while they fit within *budget* tokens.

    The best match is always kept, even when it alone exceeds the budget.
    """
    selected: list[Document] = []
    total = 0
    for doc in documents:
        tokens = TokenTextSplitter.count_tokens(doc.text)
        if selected and total + tokens > budget:
            break
        selected.append(doc)
        total += tokens
    return selected
