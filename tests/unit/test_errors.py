"""Tests for the error taxonomy and user-facing messages."""

from __future__ import annotations

import pytest

from tagvault.errors import (
    USER_MESSAGES,
    AuthorizationError,
    ErrorKind,
    ExternalServiceError,
    InfrastructureError,
    NetworkError,
    TagvaultError,
    ValidationError,
    user_message,
)


def test_every_kind_has_a_user_message():
    assert set(USER_MESSAGES) == set(ErrorKind)


def test_user_messages_are_read_only():
    with pytest.raises(TypeError):
        USER_MESSAGES[ErrorKind.MODEL] = "changed"  # type: ignore[index]


def test_retryable_flags():
    assert NetworkError("x").retryable is True
    assert ExternalServiceError("x").retryable is True
    assert AuthorizationError("x").retryable is False
    assert ValidationError("x").retryable is False


def test_str_names_operation_and_target():
    exc = InfrastructureError("Redis read failed", operation="queryTags", target="ai:rag:tags")
    assert str(exc) == "Redis read failed (operation=queryTags, target=ai:rag:tags)"


def test_str_without_details_is_message():
    assert str(TagvaultError("boom")) == "boom"


def test_user_message_for_validation_keeps_detail():
    assert user_message(ValidationError("Knowledge tag must not be empty")) == (
        "Knowledge tag must not be empty"
    )


def test_user_message_hides_internal_detail():
    exc = InfrastructureError("connection refused on 10.0.0.3:6379")
    assert user_message(exc) == USER_MESSAGES[ErrorKind.INFRASTRUCTURE]
    assert "10.0.0.3" not in user_message(exc)


def test_user_message_for_unknown_exception_is_internal():
    assert user_message(KeyError("x")) == USER_MESSAGES[ErrorKind.INTERNAL]
