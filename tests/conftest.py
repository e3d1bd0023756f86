"""
Shared fixtures for the login session client tests.
"""

import logging
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from login_shared.interfaces import IRemoteAuthClient, ITokenStore
from login_shared.logging_config import AuditLogger
from login_shared.models import FailureReason, LoginResult


class InMemoryTokenStore(ITokenStore):
    """Token store keeping the namespace in a dict."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(initial or {})
        self.set_calls = 0

    async def get_token(self) -> Optional[str]:
        return self.data.get('token')

    async def set_token(self, token: str) -> None:
        self.set_calls += 1
        self.data['token'] = token

    async def clear(self) -> None:
        self.data.clear()


@pytest.fixture
def memory_store():
    return InMemoryTokenStore()


@pytest.fixture
def remote_client():
    """Remote client stub that succeeds with token 'T1' unless reconfigured."""
    client = Mock(spec=IRemoteAuthClient)
    client.attempt_login = AsyncMock(return_value=LoginResult.success("T1"))
    client.login = AsyncMock(return_value="T1")
    return client


@pytest.fixture
def rejecting_remote_client():
    client = Mock(spec=IRemoteAuthClient)
    client.attempt_login = AsyncMock(
        return_value=LoginResult.failed(FailureReason.REJECTED_CREDENTIALS, "bad credentials")
    )
    client.login = AsyncMock(return_value=None)
    return client


@pytest.fixture
def audit_logger():
    return Mock(spec=AuditLogger)


@pytest.fixture
def restore_logging():
    """Put root and audit loggers back the way the test found them."""
    root_logger = logging.getLogger()
    audit_logger = logging.getLogger("audit")
    saved_root = (root_logger.level, root_logger.handlers[:])
    saved_audit = (audit_logger.level, audit_logger.handlers[:], audit_logger.propagate, audit_logger.disabled)

    yield

    for handler in root_logger.handlers[:] + audit_logger.handlers[:]:
        if handler not in saved_root[1] and handler not in saved_audit[1]:
            handler.close()
    root_logger.setLevel(saved_root[0])
    root_logger.handlers[:] = saved_root[1]
    audit_logger.setLevel(saved_audit[0])
    audit_logger.handlers[:] = saved_audit[1]
    audit_logger.propagate = saved_audit[2]
    audit_logger.disabled = saved_audit[3]
