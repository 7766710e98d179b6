"""Token-bounded text splitter.

Token counting uses a 4-chars-per-token approximation; no external tokenizer
dependency is required.
"""

from __future__ import annotations

import logging

from tagvault.db.models import Document

logger = logging.getLogger(__name__)

_BOUNDARY_CHARS = (".", "?", "!", "\n")


class TokenTextSplitter:
    """Split documents into chunks of at most ``chunk_size`` tokens.

    Strategy:
    - Take a window of ``chunk_size`` tokens (``chunk_size * 4`` characters).
    - If more text follows, pull the window back to the last sentence
      boundary (``. ? !`` or newline), but only when that keeps at least
      ``min_chunk_chars`` characters; otherwise cut at the window edge.
    - Drop pieces no longer than ``min_chunk_length_to_embed`` characters.
    - Stop after ``max_chunks`` pieces per document.
    """

    def __init__(
        self,
        chunk_size: int = 800,
        min_chunk_chars: int = 350,
        min_chunk_length_to_embed: int = 5,
        max_chunks: int = 10_000,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if min_chunk_chars < 0 or min_chunk_length_to_embed < 0:
            raise ValueError("minimum lengths must be >= 0")
        if max_chunks < 1:
            raise ValueError("max_chunks must be >= 1")
        self.chunk_size = chunk_size
        self.min_chunk_chars = min_chunk_chars
        self.min_chunk_length_to_embed = min_chunk_length_to_embed
        self.max_chunks = max_chunks

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    def split(self, documents: list[Document]) -> list[Document]:
        """Split every document; each chunk inherits its parent's metadata plus ``chunk_index``."""
        chunks: list[Document] = []
        for doc in documents:
            for index, text in enumerate(self.split_text(doc.text)):
                metadata = dict(doc.metadata)
                metadata["chunk_index"] = index
                chunks.append(Document(text=text, metadata=metadata))
        return chunks

    def split_text(self, text: str) -> list[str]:
        if not text.strip():
            return []

        char_size = self.chunk_size * 4
        pieces: list[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            if len(pieces) >= self.max_chunks:
                logger.warning(
                    "splitter: max_chunks=%d reached, %d chars dropped",
                    self.max_chunks, length - pos,
                )
                break
            window = text[pos:pos + char_size]
            if pos + char_size < length:
                cut = max(window.rfind(c) for c in _BOUNDARY_CHARS)
                if cut + 1 > self.min_chunk_chars:
                    window = window[:cut + 1]
            pos += len(window)
            piece = window.strip()
            if len(piece) > self.min_chunk_length_to_embed:
                pieces.append(piece)

        return pieces
