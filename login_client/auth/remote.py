"""
Remote authentication for the login session client.

Wraps the HTTP transport so that no exception crosses this boundary: every
failure becomes a tagged LoginResult, and ``login()`` flattens that result
to "token or None".
"""

import logging
from typing import Optional

from login_client.api_client import LoginAPIClient
from login_shared.exceptions import (
    AuthenticationError, NetworkError, ProtocolError
)
from login_shared.interfaces import IRemoteAuthClient
from login_shared.models import Credentials, FailureReason, LoginResult

logger = logging.getLogger(__name__)

SUCCESS_RESULTS = ('success', 'ok')


class RemoteAuthClient(IRemoteAuthClient):
    """
    Exchanges credentials for a session token with a single request.

    By default only the presence of a token in the envelope's ``data`` field
    decides success; the ``result`` field is inspected only when
    ``require_success_result`` is set.
    """

    def __init__(self, api_client: LoginAPIClient, require_success_result: bool = False):
        self.api_client = api_client
        self.require_success_result = require_success_result

    async def attempt_login(self, user_id: str, password: str) -> LoginResult:
        try:
            envelope = await self.api_client.login(Credentials(user_id=user_id, password=password))
        except AuthenticationError as e:
            logger.info(f"Login rejected for user {user_id}: {e.message}")
            return LoginResult.failed(FailureReason.REJECTED_CREDENTIALS, e.message)
        except NetworkError as e:
            logger.warning(f"Login transport failure for user {user_id}: {e.message}")
            return LoginResult.failed(FailureReason.TRANSPORT_FAILURE, e.message)
        except ProtocolError as e:
            logger.warning(f"Malformed login response for user {user_id}: {e.message}")
            return LoginResult.failed(FailureReason.MALFORMED_RESPONSE, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error during login for user {user_id}")
            return LoginResult.failed(FailureReason.UNEXPECTED_ERROR, str(e))

        if self.require_success_result and envelope.result.strip().lower() not in SUCCESS_RESULTS:
            message = envelope.error_message or f"Server reported result '{envelope.result}'"
            logger.info(f"Login rejected for user {user_id}: {message}")
            return LoginResult.failed(FailureReason.REJECTED_CREDENTIALS, message)

        token = envelope.token
        if token is None:
            message = envelope.error_message or "Server response carried no token"
            logger.info(f"Login rejected for user {user_id}: {message}")
            return LoginResult.failed(FailureReason.REJECTED_CREDENTIALS, message)

        return LoginResult.success(token)

    async def login(self, user_id: str, password: str) -> Optional[str]:
        result = await self.attempt_login(user_id, password)
        return result.token if result.succeeded else None
