"""Repository adapter — clone a remote repository and ingest its files under one tag.

Security requirements:
- shell=False always (no command injection).
- URL scheme whitelist: https://, http://, git@ only.
- Credentials are injected into the clone URL in memory; never logged, never
  in error output (git's stderr is sanitised before it is surfaced).
- The scratch clone directory is deleted before the clone and again on every
  exit path, so it never outlives one request.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path

from tagvault.errors import (
    AuthorizationError,
    ExternalServiceError,
    InfrastructureError,
    NetworkError,
    NotFoundError,
    TagvaultError,
    ValidationError,
)
from tagvault.ingest.pipeline import ChunkingPipeline
from tagvault.ingest.walker import FileWalker
from tagvault.ingest.writer import VectorStoreWriter
from tagvault.observability import mask_name, mask_token, sanitise_url
from tagvault.tags import TagRegistry, validate_tag

logger = logging.getLogger(__name__)

# URL schemes that are allowed for remote git repositories.
_ALLOWED_SCHEMES = {"https", "http"}
_GIT_SSH_PREFIX = "git@"

# Lower-cased git stderr fragments, checked in this order.
_AUTH_MARKERS = (
    "authentication failed",
    "not authorized",
    "could not read username",
    "could not read password",
    "permission denied",
    "returned error: 403",
)
_TIMEOUT_MARKERS = ("timed out", "timeout")
_NOT_FOUND_MARKERS = (
    "repository not found",
    "could not resolve host",
    "does not appear to be a git repository",
    "not found",
)


# ------------------------------------------------------------------
# URL helpers
# ------------------------------------------------------------------


def validate_url(url: str) -> None:
    """Raise ValidationError if *url* is blank or uses a disallowed scheme."""
    if not url or not url.strip():
        raise ValidationError("Repository URL must not be empty")
    if url.startswith(_GIT_SSH_PREFIX):
        return
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.netloc:
        raise ValidationError(
            f"Unsupported repository URL '{sanitise_url(url)}'. Allowed: https://, http://, git@"
        )


def derive_project_name(url: str) -> str:
    """Return the project name for *url*: its last path segment without ``.git``.

    ``https://host/user/repo.git`` → ``repo``. The name doubles as the
    knowledge tag and the scratch directory name, so it must be a valid tag
    and a single path component.

    Raises:
        ValidationError: If the URL is malformed or yields no usable name.
    """
    validate_url(url)
    if url.startswith(_GIT_SSH_PREFIX):
        path = url.split(":", 1)[1] if ":" in url else ""
    else:
        path = urllib.parse.urlparse(url).path
    name = path.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if name in ("", ".", "..") or "\\" in name:
        raise ValidationError(f"Cannot derive a project name from '{sanitise_url(url)}'")
    return validate_tag(name)


def inject_credentials(url: str, username: str | None, token: str | None) -> str:
    """Return *url* with credentials in its netloc, for HTTP(S) URLs only.

    Empty credentials leave the URL untouched (public repositories). The
    returned URL is only handed to git; it is never logged.
    """
    if not (username or token) or not url.startswith(("https://", "http://")):
        return url
    parsed = urllib.parse.urlparse(url)
    host = parsed.netloc.rsplit("@", 1)[-1]
    userinfo = urllib.parse.quote(username or "git", safe="")
    if token:
        userinfo += ":" + urllib.parse.quote(token, safe="")
    return parsed._replace(netloc=f"{userinfo}@{host}").geturl()


# ------------------------------------------------------------------
# Clone
# ------------------------------------------------------------------


class GitCloner:
    """Shallow-clone remote repositories with the git CLI.

    Failures are classified from git's stderr:

      AuthorizationError    credentials rejected
      NetworkError          timeout (retryable)
      NotFoundError         unknown repository or host
      ExternalServiceError  any other transport / protocol failure
    """

    def __init__(self, timeout: float = 120.0) -> None:
        self.timeout = timeout

    def clone(self, url: str, username: str | None, token: str | None, target_dir: Path) -> None:
        clone_url = inject_credentials(url, username, token)
        safe_url = sanitise_url(url)
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            subprocess.run(
                ["git", "clone", "--depth", "1", "--", clone_url, str(target_dir)],
                shell=False,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise NetworkError(
                f"git clone timed out after {self.timeout:g}s", operation="clone", target=safe_url
            ) from None
        except FileNotFoundError as exc:
            raise ExternalServiceError(
                f"git executable not available: {exc}", operation="clone", target=safe_url
            ) from None
        except subprocess.CalledProcessError as exc:
            # Strip credentials from stderr before surfacing in error message.
            stderr_safe = _scrub(exc.stderr or "", token).strip()
            raise classify_clone_failure(stderr_safe, safe_url) from None


def classify_clone_failure(stderr: str, safe_url: str) -> TagvaultError:
    """Map sanitised git stderr to the matching error class."""
    lowered = stderr.lower()
    message = f"git clone failed: {stderr}" if stderr else "git clone failed"
    if any(m in lowered for m in _AUTH_MARKERS):
        return AuthorizationError(message, operation="clone", target=safe_url)
    if any(m in lowered for m in _TIMEOUT_MARKERS):
        return NetworkError(message, operation="clone", target=safe_url)
    if any(m in lowered for m in _NOT_FOUND_MARKERS):
        return NotFoundError(message, operation="clone", target=safe_url)
    return ExternalServiceError(message, operation="clone", target=safe_url)


def _scrub(text: str, token: str | None) -> str:
    text = sanitise_url(text)
    if token:
        text = text.replace(token, "****")
    return text


# ------------------------------------------------------------------
# Analyze
# ------------------------------------------------------------------


@dataclass
class RepositorySummary:
    project: str
    processed_files: int = 0
    chunk_count: int = 0
    elapsed_ms: int = 0
    failed: list[str] = field(default_factory=list)
    truncated: bool = False

    def describe(self) -> str:
        text = (
            f"Repository '{self.project}' analyzed: {self.processed_files} file(s), "
            f"{self.chunk_count} chunk(s) in {self.elapsed_ms} ms."
        )
        if self.failed:
            text += f" {len(self.failed)} file(s) failed: {', '.join(self.failed)}."
        if self.truncated:
            text += " Ingestion stopped early: repository exceeds the ingestion budget."
        return text


class RepositoryAnalyzer:
    """Clone → walk → register tag → delete the clone, whatever happens."""

    def __init__(
        self,
        cloner: GitCloner,
        pipeline: ChunkingPipeline,
        writer: VectorStoreWriter,
        registry: TagRegistry,
        walker: FileWalker,
        scratch_root: Path,
    ) -> None:
        self._cloner = cloner
        self._pipeline = pipeline
        self._writer = writer
        self._registry = registry
        self._walker = walker
        self._scratch_root = Path(scratch_root)

    def scratch_dir(self, project: str) -> Path:
        return self._scratch_root / project

    def analyze(self, url: str, username: str | None = "", token: str | None = "") -> RepositorySummary:
        """Ingest every eligible file of the repository at *url*.

        Per-file failures are logged and listed in the summary; the walk
        continues. Any other failure raises, with the work done so far
        attached as ``partial``.

        Raises:
            ValidationError: If *url* is malformed.
            AuthorizationError, NotFoundError, NetworkError, ExternalServiceError:
                If the clone fails.
            InfrastructureError: If the store or tag registry is unavailable.
        """
        project = derive_project_name(url)
        safe_url = sanitise_url(url)
        started = time.monotonic()
        summary = RepositorySummary(project=project)
        scratch = self.scratch_dir(project)

        logger.info(
            "BIZ_BEGIN: op=analyzeRepository, url=%s, username=%s, token=%s",
            safe_url, mask_name(username), mask_token(token),
        )
        try:
            _remove_tree(scratch, strict=True)
            scratch.parent.mkdir(parents=True, exist_ok=True)
            self._cloner.clone(url, username, token, scratch)
            logger.info("BIZ_PROCESS: op=clone, project=%s, dir=%s", project, scratch)

            result = self._walker.walk(
                scratch, lambda source: self._writer.write(self._pipeline.process(source, project))
            )
            summary.processed_files = result.processed_files
            summary.chunk_count = result.chunk_count
            summary.failed = result.failed
            summary.truncated = result.truncated

            self._registry.ensure(project)
        except TagvaultError as exc:
            summary.elapsed_ms = _elapsed_ms(started)
            exc.partial = summary
            logger.error(
                "BIZ_ERROR: op=analyzeRepository, project=%s, kind=%s, err=%s",
                project, exc.kind.value, exc,
            )
            raise
        finally:
            _remove_tree(scratch)

        summary.elapsed_ms = _elapsed_ms(started)
        logger.info(
            "BIZ_END: op=analyzeRepository, project=%s, files=%d, chunks=%d, elapsedMs=%d",
            project, summary.processed_files, summary.chunk_count, summary.elapsed_ms,
        )
        return summary


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _remove_tree(path: Path, strict: bool = False) -> None:
    """Delete *path* if it exists.

    With *strict*, a directory that cannot be removed raises InfrastructureError
    (a stale clone would otherwise be mixed into the new one). Otherwise the
    failure is logged.
    """
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        if strict:
            raise InfrastructureError(
                f"Could not clear scratch directory: {exc}", operation="cleanup", target=str(path)
            ) from exc
        logger.error("BIZ_ERROR: op=cleanup, dir=%s, err=%s", path, exc)
