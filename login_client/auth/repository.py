"""
Auth Repository for the login session client.

This module coordinates the local token store and the remote authentication
client behind a single login / is_logged_in / get_current_token / logout
contract.
"""

import logging
from typing import Optional

from login_shared.interfaces import IAuthRepository, IRemoteAuthClient, ITokenStore
from login_shared.logging_config import AuditLogger, mask_secret
from login_shared.models import LoginResult

logger = logging.getLogger(__name__)


class AuthRepository(IAuthRepository):
    """
    Decides whether a remote login is needed and persists its token.

    A persisted non-empty token is the only "logged in" signal. It is
    trusted as-is: an existing token is never re-validated with the server.
    Storage errors propagate to the caller; remote failures do not.
    """

    def __init__(
        self,
        token_store: ITokenStore,
        remote_client: IRemoteAuthClient,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.token_store = token_store
        self.remote_client = remote_client
        self.audit_logger = audit_logger or AuditLogger()

    async def attempt_login(self, user_id: str, password: str) -> LoginResult:
        """
        Log in, describing the outcome.

        Steps run strictly in order: stored-token check, remote call,
        token write. Nothing is persisted unless the remote call produced
        a token.

        Raises:
            StorageError: If the token store cannot be read or written
        """
        current_token = await self.get_current_token()
        if current_token:
            logger.info("Already logged in, skipping remote login")
            self.audit_logger.log_authentication(user_id, success=True, reused_session=True)
            return LoginResult.success(current_token, reused_session=True)

        result = await self.remote_client.attempt_login(user_id, password)
        if not result.succeeded:
            reason = result.failure.value if result.failure else "no token"
            logger.info(f"Login failed for user {user_id}: {reason}")
            self.audit_logger.log_authentication(user_id, success=False, failure_reason=reason)
            return result

        await self.token_store.set_token(result.token)

        logger.info(f"Login successful for user {user_id}, token {mask_secret(result.token)}")
        self.audit_logger.log_authentication(user_id, success=True)
        return result

    async def login(self, user_id: str, password: str) -> bool:
        result = await self.attempt_login(user_id, password)
        return result.succeeded

    async def is_logged_in(self) -> bool:
        return bool(await self.token_store.get_token())

    async def get_current_token(self) -> Optional[str]:
        return await self.token_store.get_token()

    async def logout(self) -> None:
        """Wipe the whole session namespace."""
        logger.info("Logging out and clearing session data")
        await self.token_store.clear()
        self.audit_logger.log_logout()
