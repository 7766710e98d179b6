"""Upload adapter — ingest a batch of directly uploaded files under one tag.

Failure policy: by default a file that fails to extract is logged, recorded
in ``UploadSummary.failed`` and skipped, matching the repository walk. Any
other failure aborts the call. With ``strict=True`` an extraction failure
aborts it too, and the work completed so far is attached to the raised error
as ``partial``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tagvault.db.models import SourceFile
from tagvault.errors import ExtractionError
from tagvault.ingest.pipeline import ChunkingPipeline
from tagvault.ingest.writer import VectorStoreWriter
from tagvault.observability import mask
from tagvault.tags import TagRegistry, validate_tag

logger = logging.getLogger(__name__)


@dataclass
class UploadSummary:
    tag: str
    processed_count: int = 0
    chunk_count: int = 0
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    nothing_to_do: bool = False

    def describe(self) -> str:
        if self.nothing_to_do:
            return f"Nothing to do: no files were uploaded for tag '{self.tag}'."
        text = (
            f"Uploaded {self.processed_count} file(s) to '{self.tag}', "
            f"{self.chunk_count} chunk(s) stored."
        )
        if self.skipped:
            text += f" Skipped: {', '.join(self.skipped)}."
        if self.failed:
            text += f" Failed: {', '.join(self.failed)}."
        return text


class UploadIngestor:
    """Run the chunking pipeline and writer over uploaded files, then register the tag."""

    def __init__(
        self,
        pipeline: ChunkingPipeline,
        writer: VectorStoreWriter,
        registry: TagRegistry,
        strict: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._writer = writer
        self._registry = registry
        self._strict = strict

    def ingest(self, tag: str, files: list[SourceFile]) -> UploadSummary:
        """Ingest *files* under *tag*.

        Raises:
            ValidationError: If *tag* is blank or too long.
            ExtractionError: In strict mode, when any file fails.
            InfrastructureError: If the tag registry or the store is unavailable.
        """
        tag = validate_tag(tag)
        summary = UploadSummary(tag=tag)
        if not files:
            logger.info("BIZ_END: op=upload, tag=%s, reason=no-files", tag)
            summary.nothing_to_do = True
            return summary

        logger.info("BIZ_BEGIN: op=upload, tag=%s, files=%d", tag, len(files))
        for source in files:
            if source.size == 0:
                logger.warning("BIZ_WARN: op=upload, reason=empty-file, file=%s", mask(source.name))
                summary.skipped.append(source.name)
                continue
            try:
                chunks = self._pipeline.process(source, tag)
                written = self._writer.write(chunks)
            except ExtractionError as exc:
                self._on_failure(summary, source, exc)
                continue
            if written == 0:
                summary.skipped.append(source.name)
                continue
            summary.processed_count += 1
            summary.chunk_count += written
            logger.info(
                "BIZ_PROCESS: op=upload, file=%s, chunks=%d", mask(source.name), written
            )

        if summary.processed_count > 0:
            self._registry.ensure(tag)
        logger.info(
            "BIZ_END: op=upload, tag=%s, processed=%d, chunks=%d, failed=%d",
            tag, summary.processed_count, summary.chunk_count, len(summary.failed),
        )
        return summary

    def _on_failure(self, summary: UploadSummary, source: SourceFile, exc: ExtractionError) -> None:
        if self._strict:
            logger.error("BIZ_ERROR: op=upload, file=%s", mask(source.name), exc_info=True)
            exc.partial = summary
            raise exc
        logger.warning(
            "BIZ_WARN: op=upload, reason=extract-failed, file=%s, err=%s", mask(source.name), exc
        )
        summary.failed.append(source.name)
