"""Chunking & tagging pipeline: extract → split → stamp the knowledge tag."""

from __future__ import annotations

import logging

from tagvault.db.models import KNOWLEDGE_KEY, Document, SourceFile
from tagvault.ingest.extractor import TextExtractor
from tagvault.ingest.splitter import TokenTextSplitter

logger = logging.getLogger(__name__)


class ChunkingPipeline:
    """Turn one source file into tagged chunk documents.

    The tag is written to the extracted (pre-split) documents as well as to
    every chunk, so consumers reading whole documents see the same provenance
    as consumers reading chunks.
    """

    def __init__(self, extractor: TextExtractor, splitter: TokenTextSplitter) -> None:
        self._extractor = extractor
        self._splitter = splitter

    def process(self, source: SourceFile, tag: str) -> list[Document]:
        """Return tagged chunks for *source*; ``[]`` when extraction finds no text.

        Raises:
            ExtractionError: If the file cannot be parsed.
        """
        documents = self._extractor.extract(source)
        if not documents:
            logger.warning("BIZ_WARN: op=process, reason=empty-docs, file=%s", source.name)
            return []

        for doc in documents:
            doc.metadata[KNOWLEDGE_KEY] = tag
        # Each chunk copies its parent metadata, tag included
        chunks = self._splitter.split(documents)

        logger.debug(
            "process: file=%s, docs=%d, chunks=%d", source.name, len(documents), len(chunks)
        )
        return chunks
