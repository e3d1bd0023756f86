"""
Authentication package for the login session client.

This package contains the encrypted token store, the remote authentication
client and the auth repository that coordinates them.
"""

from .remote import RemoteAuthClient
from .repository import AuthRepository
from .token_storage import SecureTokenStore, TokenStorageError

__all__ = ['AuthRepository', 'RemoteAuthClient', 'SecureTokenStore', 'TokenStorageError']
