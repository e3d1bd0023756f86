#!/usr/bin/env python3
"""
Unit tests for core data models.

Tests envelope decoding, login result tagging and credential handling.
"""

import pytest

from login_shared.models import (
    AuthResponseEnvelope, Credentials, FailureReason, LoginResult, LoginUiState, UserState
)


class TestCredentials:
    """Test Credentials data model."""

    def test_wire_format(self):
        assert Credentials("alice", "s3cret").to_wire() == {"id": "alice", "pw": "s3cret"}

    def test_password_hidden_from_repr(self):
        assert "s3cret" not in repr(Credentials("alice", "s3cret"))


class TestAuthResponseEnvelope:
    """Test AuthResponseEnvelope decoding."""

    def test_from_dict(self):
        envelope = AuthResponseEnvelope.from_dict(
            {"result": "success", "data": "abc", "errorMessage": ""}
        )

        assert envelope.result == "success"
        assert envelope.data == "abc"
        assert envelope.token == "abc"
        assert envelope.error_message == ""

    def test_optional_fields(self):
        envelope = AuthResponseEnvelope.from_dict({"result": "fail"})

        assert envelope.data is None
        assert envelope.token is None
        assert envelope.error_message == ""

    def test_null_error_message(self):
        envelope = AuthResponseEnvelope.from_dict({"result": "fail", "errorMessage": None})
        assert envelope.error_message == ""

    def test_unknown_fields_ignored(self):
        envelope = AuthResponseEnvelope.from_dict({"result": "success", "data": "abc", "extra": 1})
        assert envelope.token == "abc"

    @pytest.mark.parametrize("data", [None, "", 0, ["abc"], {"token": "abc"}])
    def test_token_requires_non_empty_string(self, data):
        assert AuthResponseEnvelope(result="success", data=data).token is None

    @pytest.mark.parametrize("payload", [
        "abc",
        ["abc"],
        {},
        {"data": "abc"},
        {"result": 1, "data": "abc"},
        {"result": "success", "errorMessage": 5},
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValueError):
            AuthResponseEnvelope.from_dict(payload)


class TestLoginResult:
    """Test LoginResult tagging."""

    def test_success(self):
        result = LoginResult.success("abc")

        assert result.succeeded
        assert result.failure is None
        assert not result.reused_session

    def test_reused_session(self):
        assert LoginResult.success("abc", reused_session=True).reused_session

    def test_failed(self):
        result = LoginResult.failed(FailureReason.TRANSPORT_FAILURE, "refused")

        assert not result.succeeded
        assert result.token is None
        assert result.message == "refused"

    def test_empty_token_is_not_success(self):
        assert not LoginResult.success("").succeeded

    def test_token_hidden_from_repr(self):
        assert "abc123" not in repr(LoginResult.success("abc123"))


class TestLoginUiState:
    """Test LoginUiState snapshot."""

    def test_defaults(self):
        state = LoginUiState()

        assert state.user_id == ""
        assert state.password == ""
        assert state.status == UserState.NONE
        assert not state.in_progress
        assert state.failure_reason is None

    def test_snapshot_is_immutable(self):
        state = LoginUiState()
        with pytest.raises(AttributeError):
            state.status = UserState.LOGGED_IN

    def test_password_hidden_from_repr(self):
        assert "hunter2" not in repr(LoginUiState(password="hunter2"))
