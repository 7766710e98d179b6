"""Repository for chunk rows and their embeddings.

Vec tables are model-managed (ensure_vec_table); the repository handles read +
write. All writes go through one lock so concurrent ingest requests sharing a
connection never interleave a chunk row with another request's embedding.
"""

from __future__ import annotations

import json
import sqlite3
import threading

from tagvault.db.models import Chunk


class Repository:
    """Data access layer for chunks and vec embeddings.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see tagvault.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(
        self, table: str, chunks: list[Chunk], embeddings: list[list[float]]
    ) -> list[int]:
        """Insert chunk rows and their embeddings in one transaction. Returns new rowids."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
            )
        rowids: list[int] = []
        with self._lock:
            try:
                for chunk, embedding in zip(chunks, embeddings):
                    cur = self._conn.execute(
                        """
                        INSERT INTO chunks (knowledge, document_name, chunk_index, text, metadata)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            chunk.knowledge,
                            chunk.document_name,
                            chunk.chunk_index,
                            chunk.text,
                            chunk.metadata,
                        ),
                    )
                    rowid = cur.lastrowid
                    self._conn.execute(
                        f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
                        (rowid, json.dumps(embedding)),
                    )
                    chunk.rowid = rowid
                    rowids.append(rowid)
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise
        return rowids

    def count_chunks(self, knowledge: str | None = None) -> int:
        """Return the number of stored chunks, optionally for one knowledge tag."""
        if knowledge is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE knowledge = ?", (knowledge,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Similarity search
    # ------------------------------------------------------------------

    def search_similar(
        self,
        table: str,
        embedding: list[float],
        limit: int = 5,
        knowledge: str | None = None,
    ) -> list[Chunk]:
        """Cosine nearest-neighbour search, optionally restricted to one tag.

        The tag filter is applied before ranking, so a tag with few chunks
        still gets its best matches rather than losing them to other tags.
        Returns chunks ordered by ascending distance with ``distance`` set.
        """
        sql = f"""
            SELECT c.rowid AS rowid, c.knowledge, c.document_name, c.chunk_index,
                   c.text, c.metadata, c.created_at,
                   vec_distance_cosine(v.embedding, ?) AS distance
            FROM {table} v
            JOIN chunks c ON c.rowid = v.rowid
        """
        params: list[object] = [json.dumps(embedding)]
        if knowledge is not None:
            sql += " WHERE c.knowledge = ?"
            params.append(knowledge)
        sql += " ORDER BY distance LIMIT ?"
        params.append(limit)

        results: list[Chunk] = []
        for row in self._conn.execute(sql, params).fetchall():
            chunk = _row_to_chunk(row)
            chunk.distance = row["distance"]
            results.append(chunk)
        return results


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        knowledge=row["knowledge"],
        document_name=row["document_name"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )
