"""Logging setup, request-scoped trace context, and sensitive-data masking.

Trace context is an explicit value. Entry points create a ``TraceContext`` and
bind it for the duration of a request; code that runs later on another
execution context (stream callbacks, worker threads) receives the value and
re-binds it around its own log calls:

    trace = TraceContext.current() or TraceContext.new()
    ...
    with trace.bound():
        logger.info("BIZ_END: op=generateStream")

Every record passing through ``TraceContextFilter`` gets ``trace_id`` and
``client_ip`` attributes (``"N/A"`` when nothing is bound).
"""

from __future__ import annotations

import contextvars
import json
import logging
import logging.handlers
import os
import re
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

_UNSET = "N/A"

_current_trace: contextvars.ContextVar[Optional["TraceContext"]] = contextvars.ContextVar(
    "tagvault_trace", default=None
)


@dataclass(frozen=True)
class TraceContext:
    """Identifiers that tie log lines to one request."""

    trace_id: str
    client_ip: str = _UNSET

    @classmethod
    def new(cls, client_ip: str | None = None, trace_id: str | None = None) -> "TraceContext":
        return cls(
            trace_id=trace_id or uuid.uuid4().hex,
            client_ip=client_ip or _UNSET,
        )

    @staticmethod
    def current() -> Optional["TraceContext"]:
        """Return the context bound to the running execution context, if any."""
        return _current_trace.get()

    @contextmanager
    def bound(self) -> Iterator["TraceContext"]:
        """Bind this context for the duration of the block, then restore the previous one."""
        token = _current_trace.set(self)
        try:
            yield self
        finally:
            _current_trace.reset(token)


class TraceContextFilter(logging.Filter):
    """Stamp ``trace_id`` and ``client_ip`` from the bound TraceContext on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        trace = _current_trace.get()
        record.trace_id = trace.trace_id if trace else _UNSET
        record.client_ip = trace.client_ip if trace else _UNSET
        return True


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON lines.

    Output format:
        {"ts": "2026-...", "level": "INFO", "logger": "tagvault.tags", "msg": "...", "trace_id": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "trace_id": getattr(record, "trace_id", _UNSET),
            "client_ip": getattr(record, "client_ip", _UNSET),
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure application logging.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON structured format
        log_file: Optional file path for log output (with rotation)
        max_bytes: Max file size before rotation
        backup_count: Number of rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    if json_output:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)-28s [%(trace_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    trace_filter = TraceContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(trace_filter)
    root.addHandler(console)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(trace_filter)
        root.addHandler(file_handler)

    # LiteLLM and its HTTP stack are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx", "httpcore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.debug("Logging configured: level=%s json=%s file=%s", level, json_output, log_file or "none")


# ---------------------------------------------------------------------------
# Masking
# ---------------------------------------------------------------------------

_CRED_RE = re.compile(r"(https?://)([^@/]+@)", re.IGNORECASE)


def sanitise_url(url: str) -> str:
    """Remove embedded credentials from a URL for safe logging / error messages."""
    return _CRED_RE.sub(r"\1***@", url)


def mask(value: str | None) -> str:
    """Keep the first and last 3 characters: ``sensitive_data`` → ``sen***ata``."""
    if not value:
        return ""
    if len(value) <= 6:
        return value[0] + "***"
    return f"{value[:3]}***{value[-3:]}"


def mask_token(token: str | None) -> str:
    """Keep the first 4 characters of a credential; empty tokens log as ``<empty>``."""
    if not token:
        return "<empty>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}****"


def mask_name(name: str | None) -> str:
    """Keep the first character of a user name: ``octocat`` → ``o******``."""
    if not name:
        return "<anonymous>"
    return name[0] + "*" * (len(name) - 1)
