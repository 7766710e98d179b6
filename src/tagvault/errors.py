"""Error taxonomy for ingestion, retrieval and generation.

Every failure a caller can see is a ``TagvaultError`` subclass. The subclass
fixes two things a caller needs to decide what to do next:

  kind       what went wrong, mapped to a user-facing message by ``USER_MESSAGES``
  retryable  whether re-issuing the same request can succeed

``operation`` and ``target`` name the failing step and the key / file / URL it
touched. Targets are masked by the raiser; they never contain credentials.
``partial`` carries the summary of work completed before the failure.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    EXTERNAL_SERVICE = "external_service"
    EXTRACTION = "extraction"
    INFRASTRUCTURE = "infrastructure"
    MODEL = "model"
    INTERNAL = "internal"


class TagvaultError(Exception):
    """Base class for all errors surfaced by tagvault operations."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        target: str | None = None,
        partial: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.target = target
        self.partial = partial

    def __str__(self) -> str:
        details = []
        if self.operation:
            details.append(f"operation={self.operation}")
        if self.target:
            details.append(f"target={self.target}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class ValidationError(TagvaultError):
    """Input rejected before any I/O (empty tag, malformed repository URL, ...)."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(TagvaultError):
    """The remote rejected the supplied credentials."""

    kind = ErrorKind.AUTHORIZATION


class NotFoundError(TagvaultError):
    """The remote repository does not exist or its URL cannot be resolved."""

    kind = ErrorKind.NOT_FOUND


class NetworkError(TagvaultError):
    """Timeout or transport failure; the caller may retry."""

    kind = ErrorKind.NETWORK
    retryable = True


class ExternalServiceError(TagvaultError):
    """An external service (git transport, protocol) failed for another reason."""

    kind = ErrorKind.EXTERNAL_SERVICE
    retryable = True


class ExtractionError(TagvaultError):
    """One file could not be parsed into text."""

    kind = ErrorKind.EXTRACTION


class InfrastructureError(TagvaultError):
    """The cache or the vector store is unreachable or rejected an operation."""

    kind = ErrorKind.INFRASTRUCTURE


class ModelError(TagvaultError):
    """The completion or embedding model call failed."""

    kind = ErrorKind.MODEL


USER_MESSAGES: Mapping[ErrorKind, str] = MappingProxyType(
    {
        ErrorKind.VALIDATION: "The request is invalid. Check the tag, files or repository URL.",
        ErrorKind.AUTHORIZATION: "Authentication failed. Check the repository and your access token.",
        ErrorKind.NOT_FOUND: "The repository does not exist or its address is wrong.",
        ErrorKind.NETWORK: "A network error occurred. Please try again later.",
        ErrorKind.EXTERNAL_SERVICE: "An external service failed. Please try again later.",
        ErrorKind.EXTRACTION: "A file could not be read. Check that it is a supported, uncorrupted document.",
        ErrorKind.INFRASTRUCTURE: "The knowledge store is unavailable. Please try again later.",
        ErrorKind.MODEL: "The AI service failed to answer. Please try again later.",
        ErrorKind.INTERNAL: "An internal error occurred.",
    }
)


def user_message(exc: BaseException) -> str:
    """Return the user-facing message for *exc*.

    Validation errors keep their own message since it names the bad input;
    other kinds use the fixed message so internals never leak to users.
    """
    if isinstance(exc, ValidationError):
        return exc.message
    if isinstance(exc, TagvaultError):
        return USER_MESSAGES[exc.kind]
    return USER_MESSAGES[ErrorKind.INTERNAL]
