"""Tests for CLI error rendering."""

from __future__ import annotations

import io

from rich.console import Console

from tagvault.cli.errors import err_file_not_found, render_error
from tagvault.config import ConfigError
from tagvault.errors import ExtractionError, NetworkError, NotFoundError
from tagvault.ingest.upload import UploadSummary


def test_render_not_found():
    text = render_error(NotFoundError("fatal: repository not found"))
    assert text.startswith("[red]Error:[/]")
    assert "does not exist" in text
    assert "fatal" not in text


def test_render_retryable_hint():
    assert "run the command again" in render_error(NetworkError("timeout"))


def test_render_partial_summary():
    exc = ExtractionError("bad pdf", partial=UploadSummary(tag="docs", processed_count=2, chunk_count=5))
    text = render_error(exc)
    assert "Completed before the failure" in text
    assert "Uploaded 2 file(s)" in text


def test_render_config_error():
    assert "Config error" in render_error(ConfigError("retrieval.top_k must be an integer"))


def test_render_unknown_exception():
    assert "internal error" in render_error(KeyError("x"))


def test_err_file_not_found():
    assert "missing.txt" in err_file_not_found("missing.txt")


def test_render_partial_summary_escapes_file_names():
    summary = UploadSummary(tag="docs", processed_count=1, chunk_count=1, failed=["notes[/b].md"])
    text = render_error(ExtractionError("bad pdf", partial=summary))
    Console(file=io.StringIO()).print(text)
    assert "notes\\[/b].md" in text


def test_err_file_not_found_escapes_markup():
    buf = io.StringIO()
    Console(file=buf).print(err_file_not_found("a[/red].txt"))
    assert "a[/red].txt" in buf.getvalue()
