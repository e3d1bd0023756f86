"""
Core interfaces for the login session client.

This module defines the abstract interfaces that components must implement
so that the repository and the state holder can be wired to real or stub
collaborators.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import LoginResult


class ITokenStore(ABC):
    """Interface for durable storage of the session token."""

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        """Read the persisted token, or None when absent."""
        pass

    @abstractmethod
    async def set_token(self, token: str) -> None:
        """Write or overwrite the persisted token."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove all persisted data in the store's namespace."""
        pass


class IRemoteAuthClient(ABC):
    """Interface for exchanging credentials for a session token."""

    @abstractmethod
    async def attempt_login(self, user_id: str, password: str) -> LoginResult:
        """Perform one login request and describe its outcome."""
        pass

    @abstractmethod
    async def login(self, user_id: str, password: str) -> Optional[str]:
        """Perform one login request, returning the token or None."""
        pass


class IAuthRepository(ABC):
    """Interface for the coordinator between the token store and the remote client."""

    @abstractmethod
    async def attempt_login(self, user_id: str, password: str) -> LoginResult:
        """Log in unless already logged in, describing the outcome."""
        pass

    @abstractmethod
    async def login(self, user_id: str, password: str) -> bool:
        """Log in unless already logged in."""
        pass

    @abstractmethod
    async def is_logged_in(self) -> bool:
        """Check whether a non-empty token is persisted."""
        pass

    @abstractmethod
    async def get_current_token(self) -> Optional[str]:
        """Return the persisted token, if any."""
        pass

    @abstractmethod
    async def logout(self) -> None:
        """Wipe the persisted session."""
        pass
