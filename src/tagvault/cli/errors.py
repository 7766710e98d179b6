"""Rich error rendering for the CLI.

Every error shown to the user states what went wrong in user terms; internal
details stay in the log. Retryable failures say so.
"""

from __future__ import annotations

from rich.markup import escape

from tagvault.config import ConfigError
from tagvault.errors import TagvaultError, user_message


def render_error(exc: BaseException) -> str:
    """Return console markup describing *exc*.

    Example:
        [red]Error:[/] Authentication failed. Check the repository and your access token.
    """
    if isinstance(exc, ConfigError):
        return (
            f"[red]Config error:[/] {escape(str(exc))}\n"
            "  Fix tagvault.yaml or the TAGVAULT_* environment variables."
        )
    text = f"[red]Error:[/] {escape(user_message(exc))}"
    if isinstance(exc, TagvaultError):
        if exc.retryable:
            text += "\n  This failure is temporary; run the command again."
        if exc.partial is not None and hasattr(exc.partial, "describe"):
            text += f"\n  Completed before the failure: {escape(exc.partial.describe())}"
    return text


def err_no_api_key(model: str, detail: str) -> str:
    """No API key for the provider of *model*."""
    return f"[red]Error:[/] No API key for model '{escape(model)}'.\n  {escape(detail)}"


def err_file_not_found(path: str) -> str:
    return f"[red]Error:[/] File not found: '{escape(path)}'"
