"""Per-embedding-model sqlite-vec virtual table management."""

from __future__ import annotations

import re
import sqlite3


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "ollama/nomic-embed-text"       -> "ollama_nomic_embed_text"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} if missing and return its name.

    One table per embedding model keeps vectors of different models (and
    dimensions) from being compared with each other.

    Raises:
        ValueError: If *model_slug* is not sanitised, *dimensions* is below 1,
            or an existing table was created with different dimensions.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()
    elif f"float[{dimensions}]" not in (existing[0] or ""):
        raise ValueError(
            f"Vec table '{table}' exists with different dimensions than {dimensions}"
        )

    return table
