"""
Core data models for the login session client.

This module defines the data structures shared by the token store, the remote
authentication client, the auth repository and the login state holder.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar
from enum import Enum

T = TypeVar("T")


class UserState(Enum):
    """Authentication status published to the presentation layer."""
    NONE = "none"
    FAILED = "failed"
    LOGGED_IN = "logged_in"


class FailureReason(Enum):
    """Why a login attempt did not produce a session token."""
    REJECTED_CREDENTIALS = "rejected_credentials"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_RESPONSE = "malformed_response"
    UNEXPECTED_ERROR = "unexpected_error"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class Credentials:
    """A single login attempt's id/password pair. Never persisted."""
    user_id: str
    password: str = field(repr=False)

    def to_wire(self) -> Dict[str, str]:
        """Request body for the login endpoint."""
        return {"id": self.user_id, "pw": self.password}


@dataclass(frozen=True)
class AuthResponseEnvelope(Generic[T]):
    """
    Generic response wrapper used by the login server.

    Wire format: {"result": str, "data": T, "errorMessage": str}
    """
    result: str
    data: Optional[T] = None
    error_message: str = ""

    @classmethod
    def from_dict(cls, payload: Any) -> "AuthResponseEnvelope":
        """
        Build an envelope from decoded JSON.

        Raises:
            ValueError: If the payload does not have the envelope shape
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Envelope must be a JSON object, got {type(payload).__name__}")

        if "result" not in payload:
            raise ValueError("Envelope is missing the 'result' field")

        result = payload["result"]
        if not isinstance(result, str):
            raise ValueError("Envelope field 'result' must be a string")

        error_message = payload.get("errorMessage")
        if error_message is None:
            error_message = ""
        elif not isinstance(error_message, str):
            raise ValueError("Envelope field 'errorMessage' must be a string")

        return cls(result=result, data=payload.get("data"), error_message=error_message)

    @property
    def token(self) -> Optional[str]:
        """Session token carried in ``data``, if it is a non-empty string."""
        if isinstance(self.data, str) and self.data:
            return self.data
        return None


@dataclass(frozen=True)
class LoginResult:
    """Tagged outcome of one login attempt."""
    token: Optional[str] = field(default=None, repr=False)
    failure: Optional[FailureReason] = None
    message: str = ""
    reused_session: bool = False

    @classmethod
    def success(cls, token: str, reused_session: bool = False) -> "LoginResult":
        return cls(token=token, reused_session=reused_session)

    @classmethod
    def failed(cls, reason: FailureReason, message: str = "") -> "LoginResult":
        return cls(failure=reason, message=message)

    @property
    def succeeded(self) -> bool:
        return self.failure is None and bool(self.token)


@dataclass(frozen=True)
class LoginUiState:
    """Snapshot of the login screen state."""
    user_id: str = ""
    password: str = field(default="", repr=False)
    status: UserState = UserState.NONE
    in_progress: bool = False
    failure_reason: Optional[FailureReason] = None
