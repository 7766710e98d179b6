"""File filter & walker — ingest every eligible file under a directory tree.

A file is skipped when:
  - it is a symbolic link
  - any path segment is version-control metadata (.git, .svn, .hg)
  - its suffix is not in the allow-list
  - it is empty (0 bytes)

Version-control directories are pruned and never descended into, and
directory links are not followed.

A failure while processing one file (extract, split, embed or store) is
logged and the walk continues; so is a directory that cannot be listed.
One corrupt file never aborts a repository ingest.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator

from tagvault.db.models import SourceFile

logger = logging.getLogger(__name__)

VCS_DIRS: frozenset[str] = frozenset({".git", ".svn", ".hg"})

FileHandler = Callable[[SourceFile], int]


@dataclass(frozen=True)
class IngestBudget:
    """Resource cap for one walk; the walk stops before exceeding either limit."""

    max_files: int = 5_000
    max_total_bytes: int = 200 * 1024 * 1024


@dataclass
class WalkResult:
    """Counts accumulated during a walk.

    Attributes:
        processed_files: Files whose chunks were stored.
        chunk_count: Chunks stored across all processed files.
        skipped: Eligible files that produced no chunks.
        failed: Relative paths of files whose processing raised.
        truncated: True when the ingestion budget stopped the walk early.
        total_bytes: Bytes of eligible files handed to the handler.
    """

    processed_files: int = 0
    chunk_count: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
    truncated: bool = False
    total_bytes: int = 0


class FileWalker:
    """Walk a directory tree in sorted order and feed eligible files to a handler."""

    def __init__(self, extensions: Iterable[str], budget: IngestBudget | None = None) -> None:
        self._extensions = frozenset(e.lower() for e in extensions)
        self._budget = budget or IngestBudget()

    def is_ingestible(self, path: Path, size: int) -> bool:
        """Apply the VCS / extension / zero-size filter to one file."""
        if any(part in VCS_DIRS for part in path.parts):
            return False
        if path.suffix.lower() not in self._extensions:
            return False
        return size > 0

    def iter_files(self, root: Path) -> Iterator[SourceFile]:
        """Yield eligible files under *root* in directory-walk order."""
        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_walk_error):
            # Prune in place so os.walk never descends into VCS metadata
            dirnames[:] = sorted(d for d in dirnames if d not in VCS_DIRS)
            for name in sorted(filenames):
                path = Path(dirpath) / name
                # A link may point outside the tree being ingested
                if path.is_symlink():
                    logger.debug("walk skip: path=%s, reason=symlink", path)
                    continue
                try:
                    size = path.stat().st_size
                except OSError as exc:
                    logger.warning("walk visit-failed: path=%s, err=%s", path, exc)
                    continue
                if self.is_ingestible(path.relative_to(root), size):
                    yield SourceFile(name=name, size=size, path=path)
                else:
                    logger.debug("walk skip: path=%s", path)

    def walk(self, root: Path, handler: FileHandler) -> WalkResult:
        """Run *handler* on every eligible file; return the accumulated counts.

        *handler* returns the number of chunks it stored for the file.
        """
        result = WalkResult()
        for source in self.iter_files(root):
            attempted = result.processed_files + result.skipped + len(result.failed)
            if (
                attempted >= self._budget.max_files
                or result.total_bytes + source.size > self._budget.max_total_bytes
            ):
                logger.warning(
                    "BIZ_WARN: op=walk, reason=budget-exceeded, files=%d, bytes=%d",
                    attempted, result.total_bytes,
                )
                result.truncated = True
                break

            result.total_bytes += source.size
            rel = _relative(source, root)
            try:
                chunks = handler(source)
            except Exception:
                logger.warning("BIZ_WARN: op=walk, reason=process-error, file=%s", rel, exc_info=True)
                result.failed.append(rel)
                continue

            if chunks > 0:
                result.processed_files += 1
                result.chunk_count += chunks
            else:
                result.skipped += 1
        return result


def _relative(source: SourceFile, root: Path) -> str:
    if source.path is None:
        return source.name
    return source.path.relative_to(root).as_posix()


def _on_walk_error(exc: OSError) -> None:
    logger.warning("walk visit-failed: path=%s, err=%s", exc.filename, exc)
