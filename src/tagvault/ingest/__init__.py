"""Ingestion: text extraction, token splitting, tagging, walking, writing."""

from tagvault.ingest.extractor import TextExtractor
from tagvault.ingest.pipeline import ChunkingPipeline
from tagvault.ingest.splitter import TokenTextSplitter
from tagvault.ingest.git_repo import GitCloner, RepositoryAnalyzer, RepositorySummary
from tagvault.ingest.upload import UploadIngestor, UploadSummary
from tagvault.ingest.walker import FileWalker, IngestBudget, WalkResult
from tagvault.ingest.writer import VectorStoreWriter

__all__ = [
    "ChunkingPipeline",
    "FileWalker",
    "GitCloner",
    "IngestBudget",
    "RepositoryAnalyzer",
    "RepositorySummary",
    "TextExtractor",
    "TokenTextSplitter",
    "UploadIngestor",
    "UploadSummary",
    "VectorStoreWriter",
    "WalkResult",
]
