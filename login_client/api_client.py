"""
HTTP API Client for the login session client.

This module provides the HTTP transport used to exchange credentials for a
session token. It performs exactly one request per call and converts every
failure into the structured exception hierarchy.
"""

import asyncio
import json
import logging
from typing import Optional, Dict, Any
from urllib.parse import urljoin

from aiohttp import ClientSession, ClientTimeout, ClientError

from login_shared.exceptions import (
    AuthenticationError, NetworkError, ProtocolError, ErrorCode
)
from login_shared.models import AuthResponseEnvelope, Credentials

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = 'application/json;charset=UTF-8'

# Statuses the server uses to refuse a login
REJECTION_STATUSES = (400, 401, 403)


class LoginAPIClient:
    """
    HTTP client for the login server.

    The session is created lazily and shared by every call made through this
    client; close it with ``close()`` or by using the client as an async
    context manager.
    """

    def __init__(
        self,
        base_url: str,
        login_path: str = 'users/login',
        timeout: float = 30.0
    ):
        # urljoin drops the last path segment unless the base ends with '/'
        self.base_url = base_url.rstrip('/') + '/'
        self.login_path = login_path.lstrip('/')
        self.timeout = ClientTimeout(total=timeout)

        self._session: Optional[ClientSession] = None

        logger.info(f"API client initialized for server: {self.base_url}")

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def login_url(self) -> str:
        return urljoin(self.base_url, self.login_path)

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is available."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                timeout=self.timeout,
                headers={
                    'User-Agent': 'LoginSessionClient/1.0',
                    'Accept': 'application/json'
                }
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _encode_body(payload: Dict[str, Any]) -> bytes:
        try:
            return json.dumps(payload, ensure_ascii=False).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise ProtocolError(
                f"Cannot serialize request body: {e}",
                error_code=ErrorCode.PROTOCOL_SERIALIZATION_FAILED,
                cause=e
            )

    @staticmethod
    def _decode_envelope(body: bytes) -> AuthResponseEnvelope:
        """
        Decode a response body into an envelope.

        Raises:
            ProtocolError: If the body is not JSON or not an envelope
        """
        try:
            payload = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(
                f"Response is not valid JSON: {e}",
                error_code=ErrorCode.PROTOCOL_INVALID_JSON,
                cause=e
            )

        try:
            return AuthResponseEnvelope.from_dict(payload)
        except ValueError as e:
            raise ProtocolError(
                f"Response is not a valid envelope: {e}",
                error_code=ErrorCode.PROTOCOL_INVALID_ENVELOPE,
                cause=e
            )

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> AuthResponseEnvelope:
        """
        Send one POST request and decode the response envelope.

        Args:
            url: Absolute request URL
            payload: JSON request body

        Returns:
            Decoded response envelope

        Raises:
            AuthenticationError: The server refused the request (400/401/403)
            NetworkError: Transport failure or any other non-2xx status
            ProtocolError: Request or response could not be (de)serialized
        """
        await self._ensure_session()
        body = self._encode_body(payload)

        logger.debug(f"Making POST request to {url}")

        try:
            async with self._session.post(
                url,
                data=body,
                headers={'Content-Type': JSON_CONTENT_TYPE}
            ) as response:
                raw = await response.read()
                status = response.status
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request to {url} timed out",
                error_code=ErrorCode.NETWORK_TIMEOUT,
                context={'url': url},
                cause=e
            )
        except (ClientError, OSError) as e:
            raise NetworkError(
                f"Request to {url} failed: {e}",
                error_code=ErrorCode.NETWORK_CONNECTION_FAILED,
                context={'url': url},
                cause=e
            )

        if 200 <= status < 300:
            return self._decode_envelope(raw)

        detail = self._error_detail(raw)
        context = {'url': url, 'status': status}

        if status in REJECTION_STATUSES:
            raise AuthenticationError(
                f"Login rejected ({status}): {detail}",
                error_code=ErrorCode.AUTH_INVALID_CREDENTIALS,
                context=context
            )

        raise NetworkError(
            f"Request failed ({status}): {detail}",
            error_code=ErrorCode.NETWORK_HTTP_ERROR,
            context=context
        )

    @staticmethod
    def _error_detail(raw: bytes) -> str:
        """Best-effort error text from a failed response body."""
        try:
            return AuthResponseEnvelope.from_dict(json.loads(raw.decode('utf-8'))).error_message or 'no detail'
        except (UnicodeDecodeError, ValueError):
            text = raw.decode('utf-8', errors='replace').strip()
            return text[:200] or 'no detail'

    async def login(self, credentials: Credentials) -> AuthResponseEnvelope:
        """
        Exchange credentials for a response envelope.

        Args:
            credentials: Login id and password

        Returns:
            The decoded envelope; ``envelope.token`` holds the session token
        """
        logger.info(f"Sending login request for user: {credentials.user_id}")
        return await self._post_json(self.login_url, credentials.to_wire())
