"""
Secure Token Storage for the login session client.

This module persists the session namespace (a small key/value map holding the
session token) in an encrypted file. The encryption key lives in the system
keyring when one is available and in a private key file otherwise.
"""

import os
import json
import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional, Dict, Any, List, Callable, TypeVar

from cryptography.fernet import Fernet, InvalidToken

from login_shared.exceptions import StorageError, ErrorCode
from login_shared.interfaces import ITokenStore
from login_shared.logging_config import mask_secret

logger = logging.getLogger(__name__)

R = TypeVar('R')


class TokenStorageError(StorageError):
    """Raised when the session namespace cannot be read or written."""
    pass


class SecureTokenStore(ITokenStore):
    """
    Durable, encrypted storage for the session token.

    All values of one namespace are stored together as a JSON object in
    ``<storage_dir>/<namespace>.enc``. ``clear()`` removes the whole
    namespace, not only the token key, and drops the namespace encryption
    key so a damaged key cannot outlive a logout.
    """

    TOKEN_KEY = 'token'

    def __init__(
        self,
        storage_dir: Path,
        namespace: str = 'user_preferences',
        service_name: str = 'login-session-client',
        use_keyring: bool = True
    ):
        self.storage_dir = Path(storage_dir).expanduser()
        self.namespace = namespace
        self.service_name = service_name
        self.keyring_available = use_keyring and self._check_keyring_availability()

        self._encryption_key: Optional[bytes] = None
        self._lock = threading.Lock()

        logger.info(
            f"Token store initialized for namespace '{namespace}' "
            f"in {self.storage_dir} (keyring: {self.keyring_available})"
        )

    @property
    def data_path(self) -> Path:
        return self.storage_dir / f"{self.namespace}.enc"

    @property
    def key_path(self) -> Path:
        return self.storage_dir / f"{self.namespace}.key"

    @property
    def _keyring_username(self) -> str:
        return f"{self.namespace}_encryption_key"

    def _check_keyring_availability(self) -> bool:
        """Check if system keyring is available."""
        try:
            import keyring
            test_key = f"{self.service_name}_test"
            keyring.set_password(self.service_name, test_key, "test")
            result = keyring.get_password(self.service_name, test_key)
            keyring.delete_password(self.service_name, test_key)
            return result == "test"
        except Exception as e:
            logger.debug(f"Keyring not available: {e}")
            return False

    # Encryption key management

    def _get_encryption_key(self) -> bytes:
        """Get or create the namespace encryption key."""
        if self._encryption_key:
            return self._encryption_key

        key = None
        if self.keyring_available:
            key = self._get_key_from_keyring()
            source = f"keyring entry '{self._keyring_username}'"
        if key is None:
            key = self._get_key_from_file()
            source = f"key file {self.key_path}"

        try:
            Fernet(key)
        except ValueError as e:
            raise TokenStorageError(
                f"Encryption key in {source} is corrupted",
                error_code=ErrorCode.STORAGE_CORRUPTED,
                cause=e
            )

        self._encryption_key = key
        return key

    def _get_key_from_keyring(self) -> Optional[bytes]:
        """Read or create the key in the keyring; None means fall back to the key file."""
        try:
            import keyring
            stored_key = keyring.get_password(self.service_name, self._keyring_username)
            if stored_key:
                return stored_key.encode('ascii')

            key = Fernet.generate_key()
            keyring.set_password(self.service_name, self._keyring_username, key.decode('ascii'))
            logger.info("Created new storage encryption key in keyring")
            return key
        except Exception as e:
            logger.warning(f"Keyring access failed, using key file instead: {e}")
            return None

    def _get_key_from_file(self) -> bytes:
        """Read the key file, creating it with owner-only permissions on first use."""
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            try:
                fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                key = self.key_path.read_bytes().strip()
            else:
                key = Fernet.generate_key()
                with os.fdopen(fd, 'wb') as key_file:
                    key_file.write(key)
                logger.info(f"Created new storage encryption key file: {self.key_path}")
        except OSError as e:
            raise TokenStorageError(
                f"Cannot access encryption key file {self.key_path}: {e}",
                error_code=ErrorCode.STORAGE_KEY_UNAVAILABLE,
                cause=e
            )
        return key

    def _delete_key_from_keyring(self) -> None:
        try:
            import keyring
            keyring.delete_password(self.service_name, self._keyring_username)
        except Exception as e:
            logger.debug(f"No keyring encryption key removed: {e}")

    # Namespace file access (blocking, always called with the lock held)

    def _read_namespace(self) -> Dict[str, Any]:
        if not self.data_path.exists():
            return {}

        try:
            encrypted_data = self.data_path.read_bytes()
        except OSError as e:
            raise TokenStorageError(
                f"Cannot read session data {self.data_path}: {e}",
                error_code=ErrorCode.STORAGE_READ_FAILED,
                cause=e
            )

        try:
            decrypted_data = Fernet(self._get_encryption_key()).decrypt(encrypted_data)
            data = json.loads(decrypted_data.decode('utf-8'))
        except (InvalidToken, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TokenStorageError(
                f"Session data {self.data_path} is corrupted or was written with another key",
                error_code=ErrorCode.STORAGE_CORRUPTED,
                cause=e
            )

        if not isinstance(data, dict):
            raise TokenStorageError(
                f"Session data {self.data_path} is not a key/value map",
                error_code=ErrorCode.STORAGE_CORRUPTED
            )
        return data

    def _write_namespace(self, data: Dict[str, Any]) -> None:
        encrypted_data = Fernet(self._get_encryption_key()).encrypt(json.dumps(data).encode('utf-8'))
        temp_path = self.data_path.with_name(self.data_path.name + '.tmp')

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'wb') as temp_file:
                temp_file.write(encrypted_data)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            # Readers see either the old namespace or the new one, never a partial write
            os.replace(temp_path, self.data_path)
        except OSError as e:
            raise TokenStorageError(
                f"Cannot write session data {self.data_path}: {e}",
                error_code=ErrorCode.STORAGE_WRITE_FAILED,
                cause=e
            )

    def _delete_namespace(self) -> None:
        """Remove the namespace data and its encryption key; the next write starts fresh."""
        try:
            self.data_path.unlink(missing_ok=True)
            self.key_path.unlink(missing_ok=True)
        except OSError as e:
            raise TokenStorageError(
                f"Cannot remove session data {self.data_path}: {e}",
                error_code=ErrorCode.STORAGE_WRITE_FAILED,
                cause=e
            )

        self._encryption_key = None
        if self.keyring_available:
            self._delete_key_from_keyring()

    def _update_value(self, key: str, value: Any) -> None:
        data = self._read_namespace()
        data[key] = value
        self._write_namespace(data)

    def _locked(self, func: Callable[..., R], *args: Any) -> R:
        with self._lock:
            return func(*args)

    async def _run(self, func: Callable[..., R], *args: Any) -> R:
        """Run blocking storage work in a worker thread, one operation at a time."""
        return await asyncio.to_thread(self._locked, func, *args)

    # Public API

    async def get_value(self, key: str) -> Optional[Any]:
        """Read one value from the namespace."""
        data = await self._run(self._read_namespace)
        return data.get(key)

    async def set_value(self, key: str, value: Any) -> None:
        """Write one value into the namespace, keeping the others."""
        await self._run(self._update_value, key, value)

    async def keys(self) -> List[str]:
        """List the keys currently stored in the namespace."""
        data = await self._run(self._read_namespace)
        return sorted(data)

    async def get_token(self) -> Optional[str]:
        """
        Retrieve the session token.

        Returns:
            The token, or None if no token is stored

        Raises:
            TokenStorageError: If the namespace cannot be read
        """
        token = await self.get_value(self.TOKEN_KEY)
        if token is not None and not isinstance(token, str):
            raise TokenStorageError(
                f"Stored token in {self.data_path} is not a string",
                error_code=ErrorCode.STORAGE_CORRUPTED
            )
        return token

    async def set_token(self, token: str) -> None:
        """
        Store the session token, replacing any previous one.

        Raises:
            ValueError: If the token is empty
            TokenStorageError: If the namespace cannot be written
        """
        if not isinstance(token, str) or not token:
            raise ValueError("Session token must be a non-empty string")

        await self.set_value(self.TOKEN_KEY, token)
        logger.info(f"Session token stored: {mask_secret(token)}")

    async def clear(self) -> None:
        """
        Remove every value in the namespace together with its encryption key.

        Raises:
            TokenStorageError: If the namespace cannot be removed
        """
        await self._run(self._delete_namespace)
        logger.info(f"Session namespace '{self.namespace}' cleared")
