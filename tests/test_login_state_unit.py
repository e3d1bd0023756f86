#!/usr/bin/env python3
"""
Unit tests for LoginStateHolder.

Tests state transitions driven by login attempts, startup restoration
of an existing session, change notification, and task cancellation.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from login_client.auth.repository import AuthRepository
from login_client.login_state import LoginStateHolder
from login_shared.exceptions import ErrorCode, StorageError
from login_shared.interfaces import IAuthRepository
from login_shared.models import FailureReason, LoginResult, LoginUiState, UserState

from conftest import InMemoryTokenStore


def make_repository(logged_in=False, result=None):
    repository = Mock(spec=IAuthRepository)
    repository.is_logged_in = AsyncMock(return_value=logged_in)
    repository.attempt_login = AsyncMock(return_value=result or LoginResult.success("T1"))
    return repository


class TestStartup:
    """Test the state right after construction."""

    @pytest.mark.asyncio
    async def test_initial_state(self, audit_logger):
        holder = LoginStateHolder(make_repository(), "prefill", "secret", audit_logger=audit_logger)

        assert holder.state == LoginUiState(user_id="prefill", password="secret")

        await holder.wait_idle()
        assert holder.state.status == UserState.NONE
        audit_logger.log_session_restored.assert_not_called()
        await holder.close()

    @pytest.mark.asyncio
    async def test_existing_session_restored(self, remote_client, audit_logger):
        store = InMemoryTokenStore({"token": "T0"})
        holder = LoginStateHolder(AuthRepository(store, remote_client, audit_logger), audit_logger=audit_logger)

        await holder.wait_idle()

        assert holder.state.status == UserState.LOGGED_IN
        remote_client.attempt_login.assert_not_awaited()
        audit_logger.log_session_restored.assert_called_once()
        await holder.close()

    @pytest.mark.asyncio
    async def test_storage_failure_during_restore(self, audit_logger):
        repository = make_repository()
        repository.is_logged_in = AsyncMock(
            side_effect=StorageError("unreadable", error_code=ErrorCode.STORAGE_CORRUPTED)
        )
        holder = LoginStateHolder(repository, audit_logger=audit_logger)

        await holder.wait_idle()

        assert holder.state.status == UserState.NONE
        assert holder.state.failure_reason == FailureReason.STORAGE_FAILURE
        audit_logger.log_error.assert_called_once()
        await holder.close()

    def test_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            LoginStateHolder(make_repository())


class TestIntents:
    """Test field edits and change notification."""

    @pytest.mark.asyncio
    async def test_change_fields(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)

        holder.change_user_id("alice")
        holder.change_password("pw")

        assert holder.state.user_id == "alice"
        assert holder.state.password == "pw"
        assert holder.state.status == UserState.NONE
        await holder.close()

    @pytest.mark.asyncio
    async def test_subscribe_replays_current_state(self, audit_logger):
        holder = LoginStateHolder(make_repository(), "alice", audit_logger=audit_logger)
        seen = []

        holder.subscribe(seen.append)

        assert seen == [holder.state]
        await holder.close()

    @pytest.mark.asyncio
    async def test_notifies_only_on_change(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)
        await holder.wait_idle()
        seen = []
        holder.subscribe(seen.append, replay=False)

        holder.change_user_id("alice")
        holder.change_user_id("alice")

        assert [state.user_id for state in seen] == ["alice"]
        await holder.close()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)
        seen = []
        unsubscribe = holder.subscribe(seen.append, replay=False)

        unsubscribe()
        unsubscribe()
        holder.change_user_id("alice")

        assert seen == []
        await holder.close()

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_block_others(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)
        broken = Mock(side_effect=RuntimeError("observer bug"))
        seen = []
        holder.subscribe(broken, replay=False)
        holder.subscribe(seen.append, replay=False)

        holder.change_user_id("alice")

        broken.assert_called_once()
        assert seen[-1].user_id == "alice"
        await holder.close()


class TestLogin:
    """Test login attempts and status transitions."""

    @pytest.mark.asyncio
    async def test_successful_login(self, memory_store, remote_client, audit_logger):
        remote_client.attempt_login = AsyncMock(return_value=LoginResult.success("tok-abc"))
        repository = AuthRepository(memory_store, remote_client, audit_logger)
        holder = LoginStateHolder(repository, "test", "test1234", audit_logger=audit_logger)
        await holder.wait_idle()
        seen = []
        holder.subscribe(seen.append, replay=False)

        task = holder.login()
        assert holder.state.in_progress

        result = await task

        assert result.succeeded
        assert holder.state.status == UserState.LOGGED_IN
        assert not holder.state.in_progress
        assert [state.status for state in seen] == [UserState.NONE, UserState.LOGGED_IN]
        assert await repository.get_current_token() == "tok-abc"
        await holder.close()

    @pytest.mark.asyncio
    async def test_failure_then_success(self, memory_store, remote_client, audit_logger):
        remote_client.attempt_login = AsyncMock(side_effect=[
            LoginResult.failed(FailureReason.REJECTED_CREDENTIALS, "bad credentials"),
            LoginResult.success("T1"),
        ])
        holder = LoginStateHolder(
            AuthRepository(memory_store, remote_client, audit_logger),
            "test", "wrong", audit_logger=audit_logger
        )
        await holder.wait_idle()

        await holder.login()
        assert holder.state.status == UserState.FAILED
        assert holder.state.failure_reason == FailureReason.REJECTED_CREDENTIALS
        assert memory_store.data == {}

        holder.change_password("test1234")
        await holder.login()
        assert holder.state.status == UserState.LOGGED_IN
        assert holder.state.failure_reason is None
        assert memory_store.data == {"token": "T1"}
        await holder.close()

    @pytest.mark.asyncio
    async def test_credentials_captured_when_login_starts(self, audit_logger):
        repository = make_repository()
        holder = LoginStateHolder(repository, "alice", "pw1", audit_logger=audit_logger)

        task = holder.login()
        holder.change_user_id("bob")
        holder.change_password("pw2")
        await task

        repository.attempt_login.assert_awaited_once_with("alice", "pw1")
        await holder.close()

    @pytest.mark.asyncio
    async def test_storage_failure_during_login(self, audit_logger):
        repository = make_repository()
        repository.attempt_login = AsyncMock(
            side_effect=StorageError("disk full", error_code=ErrorCode.STORAGE_WRITE_FAILED)
        )
        holder = LoginStateHolder(repository, "alice", "pw", audit_logger=audit_logger)

        result = await holder.login()

        assert not result.succeeded
        assert holder.state.status == UserState.FAILED
        assert holder.state.failure_reason == FailureReason.STORAGE_FAILURE
        assert not holder.state.in_progress
        audit_logger.log_error.assert_called_once()
        assert audit_logger.log_error.call_args.args[0].error_code == ErrorCode.STORAGE_WRITE_FAILED
        await holder.close()

    @pytest.mark.asyncio
    async def test_unexpected_repository_error(self, audit_logger):
        repository = make_repository()
        repository.attempt_login = AsyncMock(side_effect=RuntimeError("boom"))
        holder = LoginStateHolder(repository, audit_logger=audit_logger)

        await holder.login()

        assert holder.state.status == UserState.FAILED
        assert holder.state.failure_reason == FailureReason.UNEXPECTED_ERROR
        error = audit_logger.log_error.call_args.args[0]
        assert error.error_code == ErrorCode.INTERNAL_UNEXPECTED_ERROR
        assert error.context["operation"] == "login"
        await holder.close()

    @pytest.mark.asyncio
    async def test_failure_does_not_undo_logged_in(self, audit_logger):
        holder = LoginStateHolder(make_repository(logged_in=True), audit_logger=audit_logger)
        await holder.wait_idle()

        holder._apply_result(LoginResult.failed(FailureReason.TRANSPORT_FAILURE, "late"))

        assert holder.state.status == UserState.LOGGED_IN
        await holder.close()


class TestClose:
    """Test teardown."""

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_login(self, audit_logger):
        started = asyncio.Event()

        async def never_finishes(user_id, password):
            started.set()
            await asyncio.Event().wait()

        repository = make_repository()
        repository.attempt_login = AsyncMock(side_effect=never_finishes)
        holder = LoginStateHolder(repository, "alice", "pw", audit_logger=audit_logger)

        task = holder.login()
        await started.wait()
        await holder.close()

        assert task.cancelled()
        assert holder.closed
        assert not holder.state.in_progress
        assert holder.state.status == UserState.NONE

    @pytest.mark.asyncio
    async def test_login_after_close(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)
        await holder.close()

        with pytest.raises(RuntimeError):
            holder.login()

    @pytest.mark.asyncio
    async def test_no_notifications_after_close(self, audit_logger):
        holder = LoginStateHolder(make_repository(), audit_logger=audit_logger)
        seen = []
        holder.subscribe(seen.append, replay=False)
        await holder.close()

        holder.change_user_id("alice")

        assert seen == []
