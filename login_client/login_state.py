"""
Login state holder for the login session client.

This module keeps the login screen state (typed credentials and the current
authentication status), publishes every change to subscribers, and runs
login attempts as background tasks owned by the holder.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Coroutine, List, Optional, Set

from login_shared.exceptions import StorageError, handle_exception
from login_shared.interfaces import IAuthRepository
from login_shared.logging_config import AuditLogger, log_structured_error
from login_shared.models import FailureReason, LoginResult, LoginUiState, UserState

logger = logging.getLogger(__name__)

StateCallback = Callable[[LoginUiState], None]


class LoginStateHolder:
    """
    Observable login screen state plus the intents that change it.

    The snapshot is only replaced through the intent methods. Construction
    must happen inside a running event loop: it schedules a check of the
    token store and moves the status to LOGGED_IN when a session already
    exists. ``close()`` cancels in-flight work; a cancelled attempt leaves
    persisted data untouched because the token is only written after a
    successful remote response.
    """

    def __init__(
        self,
        repository: IAuthRepository,
        initial_user_id: str = "",
        initial_password: str = "",
        audit_logger: Optional[AuditLogger] = None
    ):
        self.repository = repository
        self.audit_logger = audit_logger or AuditLogger()

        self._state = LoginUiState(user_id=initial_user_id, password=initial_password)
        self._callbacks: List[StateCallback] = []
        self._tasks: Set[asyncio.Task] = set()
        self._pending_logins = 0
        self._closed = False

        self._spawn(self._restore_session(), name="login-state-restore")

    @property
    def state(self) -> LoginUiState:
        """Current state snapshot."""
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: StateCallback, replay: bool = True) -> Callable[[], None]:
        """
        Register a callback for state changes.

        Args:
            callback: Called with each new snapshot
            replay: Also call it right away with the current snapshot

        Returns:
            A function that removes the callback
        """
        self._callbacks.append(callback)
        if replay:
            self._invoke(callback, self._state)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _invoke(self, callback: StateCallback, state: LoginUiState) -> None:
        try:
            callback(state)
        except Exception as e:
            logger.error(f"Error in login state callback: {e}")

    def _update(self, **changes: Any) -> None:
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return

        self._state = new_state
        for callback in list(self._callbacks):
            self._invoke(callback, new_state)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise RuntimeError("LoginStateHolder must be used inside a running event loop")

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Intents

    def change_user_id(self, value: str) -> None:
        self._update(user_id=value)

    def change_password(self, value: str) -> None:
        self._update(password=value)

    def login(self) -> asyncio.Task:
        """
        Start a login attempt with the credentials currently in the state.

        Returns immediately; completion is observable through the state
        (``status`` and ``in_progress``) or by awaiting the returned task.

        Raises:
            RuntimeError: If the holder has been closed
        """
        if self._closed:
            raise RuntimeError("Login state holder is closed")

        user_id, password = self._state.user_id, self._state.password
        self._pending_logins += 1
        self._update(in_progress=True)
        return self._spawn(self._perform_login(user_id, password), name="login-attempt")

    # Background work

    async def _restore_session(self) -> None:
        try:
            logged_in = await self.repository.is_logged_in()
        except StorageError as e:
            log_structured_error(logger, e)
            self.audit_logger.log_error(e)
            self._update(failure_reason=FailureReason.STORAGE_FAILURE)
            return

        if logged_in:
            logger.info("Existing session found, skipping login")
            self.audit_logger.log_session_restored()
            self._update(status=UserState.LOGGED_IN, failure_reason=None)

    async def _perform_login(self, user_id: str, password: str) -> LoginResult:
        try:
            result = await self.repository.attempt_login(user_id, password)
        except StorageError as e:
            log_structured_error(logger, e)
            self.audit_logger.log_error(e)
            result = LoginResult.failed(FailureReason.STORAGE_FAILURE, e.message)
        except Exception as e:
            error = handle_exception(e, context={'operation': 'login', 'user_id': user_id})
            logger.exception("Unexpected error during login attempt")
            self.audit_logger.log_error(error)
            result = LoginResult.failed(FailureReason.UNEXPECTED_ERROR, error.message)
        finally:
            self._pending_logins -= 1

        self._apply_result(result)
        return result

    def _apply_result(self, result: LoginResult) -> None:
        in_progress = self._pending_logins > 0

        if result.succeeded:
            self._update(status=UserState.LOGGED_IN, in_progress=in_progress, failure_reason=None)
        elif self._state.status == UserState.LOGGED_IN:
            # LOGGED_IN is final for this holder; a racing failed attempt does not undo it
            self._update(in_progress=in_progress)
        else:
            self._update(status=UserState.FAILED, in_progress=in_progress, failure_reason=result.failure)

    async def wait_idle(self) -> None:
        """Wait until every in-flight task (startup check, login attempts) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight work and drop subscribers."""
        self._closed = True

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._pending_logins = 0
        self._update(in_progress=False)
        self._callbacks.clear()
        logger.debug("Login state holder closed")
