"""Tagvault CLI entry point.

  tagvault tags                      list knowledge tags
  tagvault upload --tag T FILE...    ingest files under a tag
  tagvault analyze URL               clone a repository and ingest it
  tagvault chat MESSAGE [--tag T]    stream an answer, optionally grounded in a tag
"""

from __future__ import annotations

import importlib.metadata
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from tagvault.cli.errors import err_file_not_found, err_no_api_key, render_error
from tagvault.config import ConfigError, TagvaultConfig, load_config
from tagvault.db.models import SourceFile
from tagvault.errors import TagvaultError
from tagvault.observability import TraceContext, setup_logging
from tagvault.rag import llm_client
from tagvault.service import KnowledgeService, build_service

console = Console()

app = typer.Typer(
    name="tagvault",
    help="Tagvault: tagged document knowledge base with retrieval-augmented chat.",
    add_completion=False,
)


def _version() -> str:
    try:
        return importlib.metadata.version("tagvault")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _load() -> TagvaultConfig:
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(render_error(exc))
        raise typer.Exit(1)
    setup_logging(cfg.logging.level, json_output=cfg.logging.json)
    return cfg


def _require_keys(*models: str) -> None:
    for model in models:
        try:
            llm_client.validate_api_key(model)
        except EnvironmentError as exc:
            console.print(err_no_api_key(model, str(exc)))
            raise typer.Exit(1)


def _run(cfg: TagvaultConfig, action) -> None:
    """Build the service, run *action* inside a fresh trace, map errors to exit 1."""
    service: KnowledgeService | None = None
    with TraceContext.new().bound():
        try:
            service = build_service(cfg)
            action(service)
        except TagvaultError as exc:
            console.print(render_error(exc))
            raise typer.Exit(1)
        finally:
            if service is not None:
                service.close()


@app.command("tags")
def tags_cmd() -> None:
    """List every knowledge tag."""
    cfg = _load()

    def action(service: KnowledgeService) -> None:
        tags = service.list_tags()
        if not tags:
            console.print("[yellow]No knowledge tags yet.[/]  Run:  tagvault upload --tag <tag> FILE")
            return
        for tag in tags:
            console.print(tag, markup=False)

    _run(cfg, action)


@app.command("upload")
def upload_cmd(
    files: Annotated[list[Path], typer.Argument(help="Files to ingest.")],
    tag: Annotated[str, typer.Option("--tag", "-t", help="Knowledge tag to file them under.")],
) -> None:
    """Ingest FILES under a knowledge tag."""
    cfg = _load()
    for path in files:
        if not path.is_file():
            console.print(err_file_not_found(str(path)))
            raise typer.Exit(1)
    _require_keys(cfg.embedding.model)

    sources = [SourceFile.from_path(path) for path in files]
    _run(cfg, lambda service: console.print(service.upload_file(tag, sources), markup=False))


@app.command("analyze")
def analyze_cmd(
    url: Annotated[str, typer.Argument(help="Repository URL (https://, http:// or git@).")],
    username: Annotated[str, typer.Option("--username", "-u", help="Git user name.")] = "",
    token: Annotated[
        str,
        typer.Option("--token", envvar="GIT_TOKEN", help="Access token (or set GIT_TOKEN)."),
    ] = "",
) -> None:
    """Clone a repository and ingest its files under the project name."""
    cfg = _load()
    _require_keys(cfg.embedding.model)

    def action(service: KnowledgeService) -> None:
        # Summaries carry repository paths; print them as plain text
        console.print(service.analyze_repository(url, username, token), markup=False)

    _run(cfg, action)


@app.command("chat")
def chat_cmd(
    message: Annotated[str, typer.Argument(help="Question to ask.")],
    tag: Annotated[
        Optional[str],
        typer.Option("--tag", "-t", help="Answer from this tag's documents ('' searches all tags)."),
    ] = None,
    model: Annotated[
        Optional[str], typer.Option("--model", "-m", help="Override generation.model.")
    ] = None,
) -> None:
    """Stream an answer to MESSAGE."""
    cfg = _load()
    models = [model or cfg.generation.model]
    if tag is not None:
        models.append(cfg.embedding.model)
    _require_keys(*models)

    def action(service: KnowledgeService) -> None:
        for fragment in service.generate_stream(model, tag, message):
            typer.echo(fragment, nl=False)
        typer.echo()

    _run(cfg, action)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Tagvault version."""
    typer.echo(f"tagvault {_version()}")


if __name__ == "__main__":
    app()
