"""
Exception hierarchy for the login session client.

This module defines structured exceptions with error codes, context information,
and recovery suggestions so that every layer reports failures the same way.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(Enum):
    """Standardized error codes for the login session client."""

    # Authentication Errors (1000-1099)
    AUTH_INVALID_CREDENTIALS = "AUTH_1001"
    AUTH_LOGIN_REJECTED = "AUTH_1002"
    AUTH_NOT_LOGGED_IN = "AUTH_1003"

    # Network and Communication Errors (2000-2099)
    NETWORK_CONNECTION_FAILED = "NETWORK_2001"
    NETWORK_TIMEOUT = "NETWORK_2002"
    NETWORK_HTTP_ERROR = "NETWORK_2003"

    # Wire Protocol Errors (3000-3099)
    PROTOCOL_SERIALIZATION_FAILED = "PROTOCOL_3001"
    PROTOCOL_INVALID_JSON = "PROTOCOL_3002"
    PROTOCOL_INVALID_ENVELOPE = "PROTOCOL_3003"

    # Local Storage Errors (4000-4099)
    STORAGE_READ_FAILED = "STORAGE_4001"
    STORAGE_WRITE_FAILED = "STORAGE_4002"
    STORAGE_CORRUPTED = "STORAGE_4003"
    STORAGE_KEY_UNAVAILABLE = "STORAGE_4004"

    # Configuration Errors (8000-8099)
    CONFIG_FILE_UNREADABLE = "CONFIG_8001"
    CONFIG_INVALID_FORMAT = "CONFIG_8002"
    CONFIG_INVALID_VALUE = "CONFIG_8003"

    # Internal Errors (9000-9099)
    INTERNAL_UNEXPECTED_ERROR = "INTERNAL_9001"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(Enum):
    """Suggested recovery actions for errors."""
    RETRY = "retry"
    CHECK_CONNECTION = "check_connection"
    CHECK_CREDENTIALS = "check_credentials"
    RESET_STORAGE = "reset_storage"
    FIX_CONFIGURATION = "fix_configuration"
    CONTACT_ADMIN = "contact_admin"
    IGNORE = "ignore"


class LoginClientError(Exception):
    """
    Base exception class for all login session client errors.

    Provides structured error information including error codes, context,
    and recovery suggestions for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = context or {}
        self.recovery_actions = recovery_actions or []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'code': self.error_code.value,
                'message': self.message,
                'user_message': self.user_message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'recovery_actions': [action.value for action in self.recovery_actions],
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }


class AuthenticationError(LoginClientError):
    """The server refused the supplied credentials."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.AUTH_LOGIN_REJECTED, **kwargs):
        kwargs.setdefault('user_message', "Login failed. Check your id and password.")
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.CHECK_CREDENTIALS],
            **kwargs
        )


class NetworkError(LoginClientError):
    """Transport level failures: unreachable server, timeouts, unexpected HTTP status."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NETWORK_CONNECTION_FAILED, **kwargs):
        kwargs.setdefault('user_message', "Could not reach the login server.")
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.CHECK_CONNECTION, RecoveryAction.RETRY],
            **kwargs
        )


class ProtocolError(LoginClientError):
    """Request could not be encoded or the response envelope could not be decoded."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.PROTOCOL_INVALID_ENVELOPE, **kwargs):
        kwargs.setdefault('user_message', "The login server sent an unexpected response.")
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.CONTACT_ADMIN],
            **kwargs
        )


class StorageError(LoginClientError):
    """Local persistence failures. These are never flattened into a login result."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_READ_FAILED, **kwargs):
        kwargs.setdefault('user_message', "Local session data could not be accessed.")
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.RESET_STORAGE],
            **kwargs
        )


class ConfigurationError(LoginClientError):
    """Configuration related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_INVALID_VALUE,
        config_key: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.FIX_CONFIGURATION],
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> LoginClientError:
    """
    Convert a generic exception to a structured LoginClientError.

    Args:
        exception: The original exception
        context: Additional context information
        default_error_code: Error code used when no specific mapping applies

    Returns:
        Structured LoginClientError
    """
    if isinstance(exception, LoginClientError):
        return exception

    # Ordered most specific first: ConnectionError and TimeoutError are OSErrors too
    exception_mapping = [
        (ConnectionError, ErrorCode.NETWORK_CONNECTION_FAILED, NetworkError),
        (TimeoutError, ErrorCode.NETWORK_TIMEOUT, NetworkError),
        (PermissionError, ErrorCode.STORAGE_WRITE_FAILED, StorageError),
        (OSError, ErrorCode.STORAGE_READ_FAILED, StorageError),
        (ValueError, ErrorCode.PROTOCOL_INVALID_ENVELOPE, ProtocolError),
    ]

    for exception_type, error_code, error_class in exception_mapping:
        if isinstance(exception, exception_type):
            return error_class(
                message=str(exception),
                error_code=error_code,
                context=context,
                cause=exception
            )

    return LoginClientError(
        message=str(exception),
        error_code=default_error_code,
        context=context,
        cause=exception
    )
