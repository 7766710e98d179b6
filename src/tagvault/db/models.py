"""Domain models shared by the ingest, store and retrieval layers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Metadata key that carries the knowledge tag on documents and chunks.
KNOWLEDGE_KEY = "knowledge"


@dataclass
class SourceFile:
    """One ingestible file: an upload (``content``) or a walked file (``path``).

    Discarded once its chunks are stored; never persisted itself.
    """

    name: str
    size: int
    path: Path | None = None
    content: bytes | None = None

    @classmethod
    def from_path(cls, path: Path, size: int | None = None) -> "SourceFile":
        return cls(name=path.name, size=path.stat().st_size if size is None else size, path=path)

    @classmethod
    def from_bytes(cls, name: str, content: bytes) -> "SourceFile":
        return cls(name=name, size=len(content), content=content)

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower()

    def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ValueError(f"SourceFile '{self.name}' has neither content nor path")
        return self.path.read_bytes()


@dataclass
class Document:
    """Extracted text plus metadata — both whole documents and chunks use this shape."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def knowledge(self) -> str | None:
        return self.metadata.get(KNOWLEDGE_KEY)


@dataclass
class Chunk:
    """A stored chunk row."""

    knowledge: str
    document_name: str
    chunk_index: int
    text: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks
    distance: float | None = None  # set by similarity search

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)

    @classmethod
    def from_document(cls, doc: Document) -> "Chunk":
        """Build an unsaved row from a tagged chunk Document."""
        knowledge = doc.knowledge
        if not knowledge:
            raise ValueError("Chunk document has no knowledge tag in its metadata")
        return cls(
            knowledge=knowledge,
            document_name=str(doc.metadata.get("source", "")),
            chunk_index=int(doc.metadata.get("chunk_index", 0)),
            text=doc.text,
            metadata=json.dumps(doc.metadata, default=str),
        )

    def to_document(self) -> Document:
        return Document(text=self.text, metadata=self.metadata_dict)
