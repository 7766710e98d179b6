"""Tests for the tagvault CLI commands."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from tagvault.cli.main import app
from tagvault.errors import AuthorizationError, InfrastructureError, NetworkError, ValidationError

runner = CliRunner()


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for name in ("TAGVAULT_GENERATION_MODEL", "TAGVAULT_EMBEDDING_MODEL", "TAGVAULT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    # setup_logging() replaces the root handlers
    with patch("tagvault.cli.main.setup_logging"):
        yield


@pytest.fixture
def service():
    svc = MagicMock()
    with patch("tagvault.cli.main.build_service", return_value=svc):
        yield svc


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("tagvault ")


def test_tags_lists_each_tag(service):
    service.list_tags.return_value = ["alpha", "docs"]
    result = runner.invoke(app, ["tags"])
    assert result.exit_code == 0
    assert "alpha" in result.output
    assert "docs" in result.output
    service.close.assert_called_once()


def test_tags_empty(service):
    service.list_tags.return_value = []
    result = runner.invoke(app, ["tags"])
    assert result.exit_code == 0
    assert "No knowledge tags" in result.output


def test_tags_infrastructure_error(service):
    service.list_tags.side_effect = InfrastructureError("refused", operation="queryTags")
    result = runner.invoke(app, ["tags"])
    assert result.exit_code == 1
    assert "knowledge store is unavailable" in result.output
    assert "refused" not in result.output


def test_upload_passes_files(service, tmp_path):
    path = tmp_path / "notes.md"
    path.write_text("# Notes", encoding="utf-8")
    service.upload_file.return_value = "Uploaded 1 file(s) to 'docs', 1 chunk(s) stored."

    result = runner.invoke(app, ["upload", "--tag", "docs", str(path)])
    assert result.exit_code == 0
    assert "Uploaded 1 file(s)" in result.output
    tag, sources = service.upload_file.call_args.args
    assert tag == "docs"
    assert [s.name for s in sources] == ["notes.md"]


def test_upload_missing_file(service):
    result = runner.invoke(app, ["upload", "--tag", "docs", "nope.txt"])
    assert result.exit_code == 1
    assert "File not found" in result.output
    service.upload_file.assert_not_called()


def test_upload_summary_with_bracketed_file_name(service, tmp_path):
    path = tmp_path / "notes[/b].md"
    path.write_text("# Notes", encoding="utf-8")
    service.upload_file.return_value = "Uploaded 1 file(s) to 'docs'. Failed: notes[/b].md."

    result = runner.invoke(app, ["upload", "--tag", "docs", str(path)])
    assert result.exit_code == 0
    assert "Failed: notes[/b].md." in result.output


def test_upload_missing_bracketed_file(service):
    result = runner.invoke(app, ["upload", "--tag", "docs", "gone[/red].txt"])
    assert result.exit_code == 1
    assert "gone[/red].txt" in result.output


def test_upload_validation_error_shows_detail(service, tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("x", encoding="utf-8")
    service.upload_file.side_effect = ValidationError("Knowledge tag must not be empty")
    result = runner.invoke(app, ["upload", "--tag", " ", str(path)])
    assert result.exit_code == 1
    assert "Knowledge tag must not be empty" in result.output


def test_upload_requires_api_key(service, tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    path = tmp_path / "a.txt"
    path.write_text("x", encoding="utf-8")
    result = runner.invoke(app, ["upload", "--tag", "docs", str(path)])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_analyze_reads_token_from_env(service, monkeypatch):
    monkeypatch.setenv("GIT_TOKEN", "ghp_envtoken")
    service.analyze_repository.return_value = "Repository 'repo' analyzed"
    result = runner.invoke(app, ["analyze", "https://host/u/repo.git", "--username", "alice"])
    assert result.exit_code == 0
    service.analyze_repository.assert_called_once_with("https://host/u/repo.git", "alice", "ghp_envtoken")


def test_analyze_auth_error(service):
    service.analyze_repository.side_effect = AuthorizationError("denied", operation="clone")
    result = runner.invoke(app, ["analyze", "https://host/u/repo.git"])
    assert result.exit_code == 1
    assert "Authentication failed" in result.output


def test_analyze_network_error_says_retry(service):
    service.analyze_repository.side_effect = NetworkError("timed out")
    result = runner.invoke(app, ["analyze", "https://host/u/repo.git"])
    assert result.exit_code == 1
    assert "run the command again" in result.output


def test_analyze_summary_with_bracketed_path(service):
    service.analyze_repository.return_value = "Repository 'repo' analyzed. Failed: [bold]x.md."
    result = runner.invoke(app, ["analyze", "https://host/u/repo.git"])
    assert result.exit_code == 0
    assert "Failed: [bold]x.md." in result.output


def test_chat_streams_fragments(service):
    service.generate_stream.return_value = iter(["Hel", "lo"])
    result = runner.invoke(app, ["chat", "hi", "--tag", "docs"])
    assert result.exit_code == 0
    assert "Hello" in result.output
    service.generate_stream.assert_called_once_with(None, "docs", "hi")


def test_chat_without_tag_passes_none(service):
    service.generate_stream.return_value = iter([])
    runner.invoke(app, ["chat", "hi", "--model", "openai/gpt-4o"])
    service.generate_stream.assert_called_once_with("openai/gpt-4o", None, "hi")


def test_config_error_exit_code(service, tmp_path):
    (tmp_path / "tagvault.yaml").write_text("retrieval:\n  top_k: lots\n", encoding="utf-8")
    result = runner.invoke(app, ["tags"])
    assert result.exit_code == 1
    assert "Config error" in result.output


def test_bad_clone_timeout_is_config_error(service, tmp_path):
    (tmp_path / "tagvault.yaml").write_text("ingest:\n  clone_timeout: soon\n", encoding="utf-8")
    result = runner.invoke(app, ["analyze", "https://host/u/repo.git"])
    assert result.exit_code == 1
    assert "ingest.clone_timeout" in result.output
    service.analyze_repository.assert_not_called()
