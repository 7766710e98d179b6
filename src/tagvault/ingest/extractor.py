"""Text extraction — one Document per source file.

Format dispatch by suffix:
  .pdf          → pypdf, page text joined with blank lines
  .docx         → python-docx paragraphs
  .html / .htm  → BeautifulSoup cleanup + html2text
  anything else → decoded as UTF-8 text (undecodable bytes replaced)

Empty or binary-looking input yields ``[]`` rather than an error; a parser
failure raises ExtractionError naming the file.
"""

from __future__ import annotations

import io
import logging

import docx
import html2text
import pypdf
from bs4 import BeautifulSoup

from tagvault.db.models import Document, SourceFile
from tagvault.errors import ExtractionError

logger = logging.getLogger(__name__)

_HTML_EXTS = {".html", ".htm"}
_SNIFF_BYTES = 8192

_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0  # no line wrapping


class TextExtractor:
    """Extract raw text from uploaded or walked files."""

    def extract(self, source: SourceFile) -> list[Document]:
        """Return the extracted document(s) for *source*; ``[]`` when nothing is readable.

        Raises:
            ExtractionError: If the file cannot be read or parsed.
        """
        try:
            raw = source.read_bytes()
            text = self._to_text(source.suffix, raw)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                f"Could not extract text: {exc}", operation="extract", target=source.name
            ) from exc

        if not text.strip():
            return []
        return [Document(text=text, metadata={"source": source.name})]

    def _to_text(self, suffix: str, raw: bytes) -> str:
        if suffix == ".pdf":
            return _pdf_text(raw)
        if suffix == ".docx":
            return _docx_text(raw)
        if suffix in _HTML_EXTS:
            return _html_text(_decode(raw))
        if b"\x00" in raw[:_SNIFF_BYTES]:
            logger.debug("extract: binary content under text suffix %s, skipped", suffix)
            return ""
        return _decode(raw)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _pdf_text(raw: bytes) -> str:
    """Extract all page text; pages without text (scans) are skipped."""
    reader = pypdf.PdfReader(io.BytesIO(raw))
    parts: list[str] = []
    for page in reader.pages:
        stripped = (page.extract_text() or "").strip()
        if stripped:
            parts.append(stripped)
    return "\n\n".join(parts)


def _docx_text(raw: bytes) -> str:
    document = docx.Document(io.BytesIO(raw))
    lines = [p.text.strip() for p in document.paragraphs]
    return "\n".join(line for line in lines if line)


def _html_text(html: str) -> str:
    """Strip HTML markup and return plain text via html2text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()
