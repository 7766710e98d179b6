"""Knowledge service — the operations callers use, wired from one TagvaultConfig.

    list_tags()                                 → sorted tag names
    upload_file(tag, files)                     → summary string
    analyze_repository(url, username, token)    → summary string
    generate_stream(model, tag, message)        → lazy fragment stream
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from tagvault.config import TagvaultConfig
from tagvault.db.connection import Database
from tagvault.db.models import SourceFile
from tagvault.db.schema import initialize
from tagvault.db.vector_store import SqliteVectorStore
from tagvault.ingest.extractor import TextExtractor
from tagvault.ingest.git_repo import GitCloner, RepositoryAnalyzer
from tagvault.ingest.pipeline import ChunkingPipeline
from tagvault.ingest.splitter import TokenTextSplitter
from tagvault.ingest.upload import UploadIngestor
from tagvault.ingest.walker import FileWalker, IngestBudget
from tagvault.ingest.writer import VectorStoreWriter
from tagvault.observability import TraceContext
from tagvault.rag.generator import AsyncResponseStream, ResponseStream, StreamingGenerator
from tagvault.rag.retriever import RetrievalAssembler
from tagvault.tags import TagRegistry

logger = logging.getLogger(__name__)


class KnowledgeService:
    def __init__(
        self,
        registry: TagRegistry,
        uploader: UploadIngestor,
        analyzer: RepositoryAnalyzer,
        generator: StreamingGenerator,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self.registry = registry
        self.uploader = uploader
        self.analyzer = analyzer
        self.generator = generator
        self._conn = conn

    def list_tags(self) -> list[str]:
        return sorted(self.registry.list())

    def upload_file(self, tag: str, files: list[SourceFile]) -> str:
        return self.uploader.ingest(tag, files).describe()

    def analyze_repository(self, url: str, username: str | None = "", token: str | None = "") -> str:
        return self.analyzer.analyze(url, username, token).describe()

    def generate_stream(
        self,
        model: str | None,
        tag: str | None,
        message: str,
        trace: TraceContext | None = None,
    ) -> ResponseStream:
        return self.generator.generate_stream(model, tag, message, trace)

    def agenerate_stream(
        self,
        model: str | None,
        tag: str | None,
        message: str,
        trace: TraceContext | None = None,
    ) -> AsyncResponseStream:
        return self.generator.agenerate_stream(model, tag, message, trace)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def build_service(
    config: TagvaultConfig,
    *,
    registry: TagRegistry | None = None,
    base_dir: Path | None = None,
) -> KnowledgeService:
    """Open the store and wire every component from *config*.

    Args:
        config: Merged configuration.
        registry: Tag registry to use instead of one connected to
            ``config.cache.redis_url``.
        base_dir: Directory that relative ``db_path`` and ``scratch_root``
            resolve against. Defaults to CWD.
    """
    base = base_dir if base_dir is not None else Path.cwd()

    conn = Database(base / config.store.db_path).connect()
    initialize(conn)
    store = SqliteVectorStore(conn, config.embedding.model, config.embedding.dimensions)

    if registry is None:
        registry = TagRegistry.from_url(config.cache.redis_url, config.cache.tags_key)

    splitter = TokenTextSplitter(
        chunk_size=config.splitter.chunk_size,
        min_chunk_chars=config.splitter.min_chunk_chars,
        min_chunk_length_to_embed=config.splitter.min_chunk_length_to_embed,
        max_chunks=config.splitter.max_chunks,
    )
    pipeline = ChunkingPipeline(TextExtractor(), splitter)
    writer = VectorStoreWriter(store)

    uploader = UploadIngestor(pipeline, writer, registry, strict=config.ingest.strict_upload)
    walker = FileWalker(
        config.ingest.extensions,
        IngestBudget(config.ingest.max_files, config.ingest.max_total_bytes),
    )
    analyzer = RepositoryAnalyzer(
        GitCloner(timeout=config.ingest.clone_timeout),
        pipeline,
        writer,
        registry,
        walker,
        scratch_root=base / config.ingest.scratch_root,
    )

    retriever = RetrievalAssembler(
        store, top_k=config.retrieval.top_k, token_budget=config.retrieval.token_budget
    )
    generator = StreamingGenerator(
        retriever,
        default_model=config.generation.model,
        system_prompt=config.generation.system_prompt,
        temperature=config.generation.temperature,
    )
    logger.debug(
        "service ready: db=%s, table=%s, tags_key=%s", config.store.db_path, store.table, registry.key
    )
    return KnowledgeService(registry, uploader, analyzer, generator, conn=conn)
