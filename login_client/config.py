"""
Configuration Management for the login session client.

This module handles client configuration including the login server URL,
local session storage and logging, with support for configuration files
and environment variables.
"""

import os
import re
import logging
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import urlparse

from login_shared.exceptions import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

_NAMESPACE_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')
_TRUE_VALUES = ('true', 'yes', 'on', '1')
_FALSE_VALUES = ('false', 'no', 'off', '0')


class ClientConfiguration:
    """
    Configuration manager for the login session client.

    Supports configuration from:
    1. Runtime overrides, e.g. command line arguments (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)
    """

    DEFAULTS: Dict[str, Dict[str, Any]] = {
        'server': {
            'url': 'http://localhost:8080/api/',
            'login_path': 'users/login',
            'timeout': 30.0,
            'require_success_result': False,
        },
        'storage': {
            'directory': '~/.login-session',
            'namespace': 'user_preferences',
            'use_keyring': True,
            'service_name': 'login-session-client',
        },
        'logging': {
            'level': 'INFO',
            'format': 'standard',
            'file': None,
            'audit_file': None,
        },
        'development': {
            'prefill_user_id': '',
            'prefill_password': '',
        },
    }

    ENV_MAPPINGS = {
        'LOGIN_CLIENT_SERVER_URL': ('server', 'url'),
        'LOGIN_CLIENT_TIMEOUT': ('server', 'timeout'),
        'LOGIN_CLIENT_STORAGE_DIR': ('storage', 'directory'),
        'LOGIN_CLIENT_NAMESPACE': ('storage', 'namespace'),
        'LOGIN_CLIENT_USE_KEYRING': ('storage', 'use_keyring'),
        'LOGIN_CLIENT_LOG_LEVEL': ('logging', 'level'),
        'LOGIN_CLIENT_PREFILL_USER_ID': ('development', 'prefill_user_id'),
        'LOGIN_CLIENT_PREFILL_PASSWORD': ('development', 'prefill_password'),
    }

    def __init__(self, config_file: Optional[str] = None):
        self._config_file = config_file or self._get_default_config_path()
        self._config_data: Dict[str, Dict[str, Any]] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    @staticmethod
    def _get_default_config_path() -> str:
        """Default configuration file path; the file itself is optional."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME')
        if xdg_config:
            config_dir = Path(xdg_config) / 'login-session'
        else:
            config_dir = Path.home() / '.config' / 'login-session'
        return str(config_dir / 'client.conf')

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if os.path.exists(self._config_file):
            self._load_from_file()
            logger.info(f"Configuration loaded from: {self._config_file}")
        else:
            logger.debug(f"Configuration file not found, using defaults: {self._config_file}")

        self._load_from_environment()
        self._set_defaults()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser(interpolation=None)
        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                config.read_file(f)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file {self._config_file}: {e}",
                error_code=ErrorCode.CONFIG_FILE_UNREADABLE,
                cause=e
            )
        except ConfigParserError as e:
            raise ConfigurationError(
                f"Invalid configuration file {self._config_file}: {e}",
                error_code=ErrorCode.CONFIG_INVALID_FORMAT,
                cause=e
            )

        for section_name in config.sections():
            section_data = self._config_data.setdefault(section_name, {})
            for key, value in config[section_name].items():
                section_data[key] = value

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._config_data.setdefault(section, {})[key] = value

    def _set_defaults(self) -> None:
        """Fill in default values for anything not configured."""
        for section, section_defaults in self.DEFAULTS.items():
            section_data = self._config_data.setdefault(section, {})
            for key, default_value in section_defaults.items():
                if key not in section_data:
                    section_data[key] = default_value

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        if '.' not in key:
            return self._config_data.get(key, default)

        section, config_key = key.split('.', 1)
        return self._config_data.get(section, {}).get(config_key, default)

    def set_config(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            value: Value to set
        """
        if '.' not in key:
            raise ConfigurationError(f"Configuration key must be 'section.key': {key}", config_key=key)

        section, config_key = key.split('.', 1)
        self._config_data.setdefault(section, {})[config_key] = value

    def set_override(self, key: str, value: Any) -> None:
        """
        Set configuration override (highest priority, never saved).

        Args:
            key: Configuration key in format 'section.key'
            value: Override value
        """
        self._overrides[key] = value

    def _get_bool(self, key: str) -> bool:
        value = self.get_config(key)
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"Expected a boolean for {key}, got {value!r}", config_key=key)

    def _get_float(self, key: str) -> float:
        value = self.get_config(key)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Expected a number for {key}, got {value!r}", config_key=key)

    def _get_optional_str(self, key: str) -> Optional[str]:
        value = self.get_config(key)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    # Convenience methods for common configuration values

    def get_server_url(self) -> str:
        """Get login server base URL, always ending with '/'."""
        return str(self.get_config('server.url')).strip().rstrip('/') + '/'

    def get_login_path(self) -> str:
        """Get the login endpoint path relative to the server URL."""
        return str(self.get_config('server.login_path')).strip().lstrip('/')

    def get_server_timeout(self) -> float:
        """Get server request timeout in seconds."""
        return self._get_float('server.timeout')

    def requires_success_result(self) -> bool:
        """Whether the envelope's 'result' field must read success/ok."""
        return self._get_bool('server.require_success_result')

    def get_storage_directory(self) -> Path:
        """Get the directory holding the session namespace."""
        return Path(str(self.get_config('storage.directory'))).expanduser()

    def get_storage_namespace(self) -> str:
        """Get the session namespace name."""
        return str(self.get_config('storage.namespace')).strip()

    def use_keyring(self) -> bool:
        """Whether the OS keyring may hold the storage encryption key."""
        return self._get_bool('storage.use_keyring')

    def get_keyring_service_name(self) -> str:
        """Get the keyring service name."""
        return str(self.get_config('storage.service_name')).strip()

    def get_log_level(self) -> str:
        """Get logging level."""
        return str(self.get_config('logging.level')).strip().upper()

    def get_log_format(self) -> str:
        """Get logging format: standard, json or detailed."""
        return str(self.get_config('logging.format')).strip().lower()

    def get_log_file(self) -> Optional[str]:
        """Get log file path."""
        return self._get_optional_str('logging.file')

    def get_audit_file(self) -> Optional[str]:
        """Get audit log file path."""
        return self._get_optional_str('logging.audit_file')

    def get_prefill_user_id(self) -> str:
        """Development-only login id prefill."""
        return str(self.get_config('development.prefill_user_id') or '')

    def get_prefill_password(self) -> str:
        """Development-only password prefill."""
        return str(self.get_config('development.prefill_password') or '')

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: On the first invalid value
        """
        parsed = urlparse(self.get_server_url())
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(
                f"server.url must be an http(s) URL, got {self.get_config('server.url')!r}",
                config_key='server.url'
            )

        if not self.get_login_path():
            raise ConfigurationError("server.login_path must not be empty", config_key='server.login_path')

        if self.get_server_timeout() <= 0:
            raise ConfigurationError("server.timeout must be greater than 0", config_key='server.timeout')

        namespace = self.get_storage_namespace()
        if not _NAMESPACE_PATTERN.match(namespace) or namespace in ('.', '..'):
            raise ConfigurationError(
                f"storage.namespace must be a simple name, got {namespace!r}",
                config_key='storage.namespace'
            )

        if self.get_log_level() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(
                f"logging.level is not a valid level: {self.get_log_level()!r}",
                config_key='logging.level'
            )

        if self.get_log_format() not in ('standard', 'json', 'detailed'):
            raise ConfigurationError(
                f"logging.format must be standard, json or detailed, got {self.get_log_format()!r}",
                config_key='logging.format'
            )

        self.requires_success_result()
        self.use_keyring()

    def save_configuration(self, include_overrides: bool = False) -> str:
        """
        Save current configuration to file.

        Args:
            include_overrides: Also write runtime overrides (e.g. command line values)

        Returns:
            Path of the written file
        """
        config = ConfigParser(interpolation=None)

        for section_name, section_data in self._config_data.items():
            config.add_section(section_name)
            for key, value in section_data.items():
                config.set(section_name, key, '' if value is None else str(value))

        if include_overrides:
            for override_key, value in self._overrides.items():
                if '.' not in override_key:
                    continue
                section_name, key = override_key.split('.', 1)
                if not config.has_section(section_name):
                    config.add_section(section_name)
                config.set(section_name, key, '' if value is None else str(value))

        config_path = Path(self._config_file)
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                config.write(f)
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            raise ConfigurationError(
                f"Cannot write configuration file {config_path}: {e}",
                error_code=ErrorCode.CONFIG_FILE_UNREADABLE,
                cause=e
            )

        logger.info(f"Configuration saved to: {config_path}")
        return str(config_path)

    def get_config_file_path(self) -> str:
        """Get configuration file path."""
        return self._config_file
