"""Tagvault persistence layer: SQLite + sqlite-vec."""

from tagvault.db.connection import Database
from tagvault.db.migrations import MIGRATIONS, run_migrations
from tagvault.db.schema import initialize
from tagvault.db.vector_store import SqliteVectorStore
from tagvault.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "SqliteVectorStore",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
