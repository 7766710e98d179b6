"""Tagvault configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (TAGVAULT_GENERATION_MODEL, TAGVAULT_REDIS_URL, ...)
  3. Per-project tagvault.yaml
  4. Global ~/.tagvault/config.yaml  (defaults only — no credentials)
  5. Hardcoded defaults

Global config must never contain API keys or git tokens; use environment
variables instead. All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".tagvault"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "tagvault.yaml"

# Key names that look like credentials; forbidden in global config.
# Does NOT match legitimate keys like token_budget or max_total_bytes.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "splitter", "ingest", "cache", "store", "logging"]
)

DEFAULT_SYSTEM_PROMPT = (
    "Use the information from the DOCUMENTS section to provide accurate answers "
    "but act as if you knew this information innately.\n"
    "If unsure, simply state that you don't know.\n"
    "DOCUMENTS:\n"
    "    {documents}\n"
)

# Source, markup and document formats accepted during ingestion.
DEFAULT_EXTENSIONS: tuple[str, ...] = (
    ".txt", ".md", ".markdown", ".rst", ".adoc",
    ".java", ".kt", ".scala", ".groovy", ".gradle",
    ".py", ".js", ".jsx", ".ts", ".tsx", ".vue",
    ".go", ".rs", ".c", ".h", ".cpp", ".hpp", ".cc", ".cs",
    ".rb", ".php", ".swift", ".sh", ".sql",
    ".xml", ".json", ".yml", ".yaml", ".toml", ".ini", ".properties",
    ".html", ".htm", ".css", ".scss", ".csv",
    ".pdf", ".docx",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (tagvault.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class GenerationCfg:
    """Streaming completion configuration (tagvault.yaml: generation:).

    Attributes:
        model: Default LiteLLM model, used when a request names none.
        temperature: Sampling temperature passed to the completion call.
        system_prompt: System message template; ``{documents}`` is replaced
            with the retrieval context.
    """

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class RetrievalCfg:
    """Retrieval configuration (tagvault.yaml: retrieval:)."""

    top_k: int = 5
    token_budget: int = 4_096


@dataclass
class SplitterCfg:
    """Token splitter configuration (tagvault.yaml: splitter:)."""

    chunk_size: int = 800
    min_chunk_chars: int = 350
    min_chunk_length_to_embed: int = 5
    max_chunks: int = 10_000


@dataclass
class IngestCfg:
    """Ingestion configuration (tagvault.yaml: ingest:).

    Attributes:
        scratch_root: Directory under which repositories are cloned, one
            sub-directory per project. Each clone is deleted after its request.
        extensions: Lower-case file suffixes accepted for ingestion.
        max_files: Upper bound on files ingested by one repository walk.
        max_total_bytes: Upper bound on bytes ingested by one repository walk.
        clone_timeout: Seconds before a clone is abandoned as a network timeout.
        strict_upload: Abort an upload on the first failing file instead of
            skipping it and reporting the failure.
    """

    scratch_root: str = "git-cloned-repo"
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    max_files: int = 5_000
    max_total_bytes: int = 200 * 1024 * 1024
    clone_timeout: float = 120.0
    strict_upload: bool = False


@dataclass
class CacheCfg:
    """Redis connection for the tag registry (tagvault.yaml: cache:)."""

    redis_url: str = "redis://localhost:6379/0"
    tags_key: str = "ai:rag:tags"


@dataclass
class StoreCfg:
    """Vector store location (tagvault.yaml: store:)."""

    db_path: str = ".tagvault.db"


@dataclass
class LoggingCfg:
    level: str = "INFO"
    json: bool = False


@dataclass
class TagvaultConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    splitter: SplitterCfg = field(default_factory=SplitterCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    cache: CacheCfg = field(default_factory=CacheCfg)
    store: StoreCfg = field(default_factory=StoreCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _positive_int(value: Any, name: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if result < 1:
        raise ConfigError(f"{name} must be >= 1, got {result}")
    return result


def _number(value: Any, name: str, kind: type = float, *, positive: bool = False) -> Any:
    """Coerce *value* with *kind*; reject negatives, and zero when *positive*."""
    try:
        result = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if result < 0 or (positive and result == 0):
        bound = "> 0" if positive else ">= 0"
        raise ConfigError(f"{name} must be {bound}, got {result}")
    return result


def _normalise_extensions(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ConfigError("ingest.extensions must be a non-empty list of suffixes")
    exts = []
    for ext in raw:
        ext = str(ext).strip().lower()
        exts.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(exts)


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> TagvaultConfig:
    """Build a *TagvaultConfig* from a merged raw YAML dict."""
    cfg = TagvaultConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=_positive_int(
                e.get("dimensions", cfg.embedding.dimensions), "embedding.dimensions"
            ),
        )

    if "generation" in data:
        g = data["generation"]
        prompt = str(g.get("system_prompt", cfg.generation.system_prompt))
        if "{documents}" not in prompt:
            raise ConfigError("generation.system_prompt must contain a {documents} placeholder")
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            temperature=_number(
                g.get("temperature", cfg.generation.temperature), "generation.temperature"
            ),
            system_prompt=prompt,
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            top_k=_positive_int(r.get("top_k", cfg.retrieval.top_k), "retrieval.top_k"),
            token_budget=_positive_int(
                r.get("token_budget", cfg.retrieval.token_budget), "retrieval.token_budget"
            ),
        )

    if "splitter" in data:
        s = data["splitter"]
        cfg.splitter = SplitterCfg(
            chunk_size=_positive_int(s.get("chunk_size", cfg.splitter.chunk_size), "splitter.chunk_size"),
            min_chunk_chars=_number(
                s.get("min_chunk_chars", cfg.splitter.min_chunk_chars), "splitter.min_chunk_chars", int
            ),
            min_chunk_length_to_embed=_number(
                s.get("min_chunk_length_to_embed", cfg.splitter.min_chunk_length_to_embed),
                "splitter.min_chunk_length_to_embed",
                int,
            ),
            max_chunks=_positive_int(s.get("max_chunks", cfg.splitter.max_chunks), "splitter.max_chunks"),
        )

    if "ingest" in data:
        i = data["ingest"]
        cfg.ingest = IngestCfg(
            scratch_root=str(i.get("scratch_root", cfg.ingest.scratch_root)),
            extensions=(
                _normalise_extensions(i["extensions"]) if "extensions" in i else cfg.ingest.extensions
            ),
            max_files=_positive_int(i.get("max_files", cfg.ingest.max_files), "ingest.max_files"),
            max_total_bytes=_positive_int(
                i.get("max_total_bytes", cfg.ingest.max_total_bytes), "ingest.max_total_bytes"
            ),
            clone_timeout=_number(
                i.get("clone_timeout", cfg.ingest.clone_timeout), "ingest.clone_timeout", positive=True
            ),
            strict_upload=bool(i.get("strict_upload", cfg.ingest.strict_upload)),
        )

    if "cache" in data:
        c = data["cache"]
        cfg.cache = CacheCfg(
            redis_url=str(c.get("redis_url", cfg.cache.redis_url)),
            tags_key=str(c.get("tags_key", cfg.cache.tags_key)),
        )

    if "store" in data:
        cfg.store = StoreCfg(db_path=str(data["store"].get("db_path", cfg.store.db_path)))

    if "logging" in data:
        lg = data["logging"]
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: TagvaultConfig) -> TagvaultConfig:
    """Apply TAGVAULT_* environment variable overrides (layer 2)."""
    if model := os.environ.get("TAGVAULT_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("TAGVAULT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if url := os.environ.get("TAGVAULT_REDIS_URL") or os.environ.get("REDIS_URL"):
        cfg.cache.redis_url = url
    if db_path := os.environ.get("TAGVAULT_DB_PATH"):
        cfg.store.db_path = db_path
    if level := os.environ.get("TAGVAULT_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> TagvaultConfig:
    """Load and return a merged *TagvaultConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *tagvault.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains credential-like fields or a
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)
