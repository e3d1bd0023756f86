"""
Main entry point for the login session client.

This module wires the token store, the HTTP transport, the remote
authentication client and the auth repository together, and provides the
``login-session`` command-line interface on top of them.
"""

import sys
import json
import asyncio
import getpass
import argparse
import logging
from dataclasses import dataclass
from typing import List, Optional

from login_client.api_client import LoginAPIClient
from login_client.auth import AuthRepository, RemoteAuthClient, SecureTokenStore
from login_client.config import ClientConfiguration
from login_client.login_state import LoginStateHolder
from login_shared.exceptions import (
    ConfigurationError, LoginClientError, StorageError, handle_exception
)
from login_shared.logging_config import (
    LogFormat, LogLevel, log_structured_error, mask_secret, setup_logging
)
from login_shared.models import FailureReason, UserState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_STORAGE_ERROR = 2
EXIT_CONFIG_ERROR = 3
EXIT_INTERRUPTED = 130


@dataclass
class LoginServices:
    """Application-lifetime collaborators shared by every login scope."""
    token_store: SecureTokenStore
    api_client: LoginAPIClient
    remote_client: RemoteAuthClient
    repository: AuthRepository

    async def close(self) -> None:
        await self.api_client.close()


def build_services(config: ClientConfiguration) -> LoginServices:
    """Create the token store, transport, remote client and repository."""
    token_store = SecureTokenStore(
        storage_dir=config.get_storage_directory(),
        namespace=config.get_storage_namespace(),
        service_name=config.get_keyring_service_name(),
        use_keyring=config.use_keyring()
    )
    api_client = LoginAPIClient(
        base_url=config.get_server_url(),
        login_path=config.get_login_path(),
        timeout=config.get_server_timeout()
    )
    remote_client = RemoteAuthClient(
        api_client,
        require_success_result=config.requires_success_result()
    )
    repository = AuthRepository(token_store, remote_client)

    return LoginServices(
        token_store=token_store,
        api_client=api_client,
        remote_client=remote_client,
        repository=repository
    )


def open_login_scope(services: LoginServices, config: ClientConfiguration) -> LoginStateHolder:
    """
    Create a fresh state holder for one activation of the login screen.

    Must be called from inside a running event loop.
    """
    return LoginStateHolder(
        services.repository,
        initial_user_id=config.get_prefill_user_id(),
        initial_password=config.get_prefill_password()
    )


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="login-session",
        description="Login session client",
        epilog="""
Examples:
  %(prog)s --login --id alice           # Prompt for the password and log in
  %(prog)s --login --id alice --password-stdin < pw.txt
  %(prog)s --status                     # Show whether a session exists
  %(prog)s --status --json              # Same, as JSON
  %(prog)s --token                      # Print the stored session token
  %(prog)s --logout                     # Clear all session data
  %(prog)s --init-config --server-url https://auth.example.com/api
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    operation_group = parser.add_mutually_exclusive_group(required=True)
    operation_group.add_argument("--login", action="store_true",
                                 help="Log in and store the session token")
    operation_group.add_argument("--logout", action="store_true",
                                 help="Clear all stored session data")
    operation_group.add_argument("--status", action="store_true",
                                 help="Show whether a session token is stored")
    operation_group.add_argument("--token", action="store_true",
                                 help="Print the stored session token")
    operation_group.add_argument("--init-config", action="store_true",
                                 help="Write the effective configuration, including overrides, to the config file")

    login_group = parser.add_argument_group('Login')
    login_group.add_argument("--id", dest="user_id", type=str, metavar="ID",
                             help="Login id")
    login_group.add_argument("--password-stdin", action="store_true",
                             help="Read the password from the first line of stdin")

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, metavar="FILE",
                              help="Path to configuration file")
    config_group.add_argument("--server-url", type=str, metavar="URL",
                              help="Override server URL")
    config_group.add_argument("--timeout", type=float, metavar="SECONDS",
                              help="Override request timeout")
    config_group.add_argument("--storage-dir", type=str, metavar="DIR",
                              help="Override session storage directory")
    config_group.add_argument("--no-keyring", action="store_true",
                              help="Keep the storage key in a file instead of the system keyring")

    output_group = parser.add_argument_group('Output')
    output_group.add_argument("--json", action="store_true",
                              help="Output status in JSON format")
    output_group.add_argument("--verbose", "-v", action="store_true",
                              help="Enable verbose output")
    output_group.add_argument("--quiet", "-q", action="store_true",
                              help="Suppress non-error output")

    debug_group = parser.add_argument_group('Debug')
    debug_group.add_argument("--debug", action="store_true",
                             help="Enable debug logging")
    debug_group.add_argument("--log-file", type=str, metavar="FILE",
                             help="Also write logs to this file")

    args = parser.parse_args(argv)

    if args.quiet and args.verbose:
        parser.error("--quiet and --verbose are mutually exclusive")

    if args.json and not args.status:
        parser.error("--json can only be used with --status")

    if (args.user_id is not None or args.password_stdin) and not args.login:
        parser.error("--id and --password-stdin can only be used with --login")

    return args


def load_configuration(args) -> ClientConfiguration:
    """Load configuration and apply command line overrides."""
    config = ClientConfiguration(args.config)

    if args.server_url:
        config.set_override('server.url', args.server_url)
    if args.timeout is not None:
        config.set_override('server.timeout', args.timeout)
    if args.storage_dir:
        config.set_override('storage.directory', args.storage_dir)
    if args.no_keyring:
        config.set_override('storage.use_keyring', False)
    if args.log_file:
        config.set_override('logging.file', args.log_file)

    config.validate()
    return config


def configure_logging(args, config: ClientConfiguration) -> None:
    """Configure logging from configuration and command line flags."""
    if args.debug:
        level = LogLevel.DEBUG
    elif args.quiet:
        level = LogLevel.ERROR
    elif args.verbose:
        level = LogLevel.INFO
    else:
        level = LogLevel(config.get_log_level())

    setup_logging(
        log_level=level,
        log_format=LogFormat(config.get_log_format()),
        log_file=config.get_log_file(),
        audit_file=config.get_audit_file()
    )


def _read_credentials(args, config: ClientConfiguration):
    user_id = args.user_id
    if user_id is None:
        user_id = config.get_prefill_user_id() or input("Login id: ")

    if args.password_stdin:
        password = sys.stdin.readline().rstrip("\r\n")
    else:
        password = config.get_prefill_password() or getpass.getpass("Password: ")

    return user_id, password


async def handle_login_command(args, services: LoginServices, config: ClientConfiguration,
                               user_id: str, password: str) -> int:
    holder = open_login_scope(services, config)
    try:
        await holder.wait_idle()
        holder.change_user_id(user_id)
        holder.change_password(password)

        result = await holder.login()
        state = holder.state
    finally:
        await holder.close()

    if state.status == UserState.LOGGED_IN:
        if not args.quiet:
            if result.reused_session:
                print("Already logged in")
            else:
                print(f"Logged in as {user_id}")
        return EXIT_OK

    if state.failure_reason == FailureReason.STORAGE_FAILURE:
        print(f"Error: {result.message}", file=sys.stderr)
        return EXIT_STORAGE_ERROR

    reason = state.failure_reason.value if state.failure_reason else "unknown"
    detail = f": {result.message}" if result.message else ""
    print(f"Login failed ({reason}){detail}", file=sys.stderr)
    return EXIT_FAILED


async def handle_logout_command(args, services: LoginServices) -> int:
    await services.repository.logout()
    if not args.quiet:
        print("Logged out")
    return EXIT_OK


async def handle_status_command(args, services: LoginServices, config: ClientConfiguration) -> int:
    token = await services.repository.get_current_token()
    logged_in = bool(token)

    if args.json:
        status_data = {
            "status": (UserState.LOGGED_IN if logged_in else UserState.NONE).name,
            "logged_in": logged_in,
            "token": mask_secret(token) if logged_in else None,
            "server_url": config.get_server_url(),
            "namespace": config.get_storage_namespace(),
        }
        print(json.dumps(status_data, indent=2))
    elif not args.quiet:
        if logged_in:
            print(f"Logged in (token {mask_secret(token)})")
        else:
            print("Not logged in")

    return EXIT_OK if logged_in else EXIT_FAILED


async def handle_token_command(args, services: LoginServices) -> int:
    token = await services.repository.get_current_token()
    if not token:
        if not args.quiet:
            print("Not logged in", file=sys.stderr)
        return EXIT_FAILED

    print(token)
    return EXIT_OK


def handle_init_config_command(args, config: ClientConfiguration) -> int:
    config_path = config.save_configuration(include_overrides=True)
    if not args.quiet:
        print(f"Configuration written to {config_path}")
    return EXIT_OK


async def run_operation(args, config: ClientConfiguration, user_id: str = "", password: str = "") -> int:
    """Run the selected operation against freshly built services."""
    services = build_services(config)
    try:
        if args.login:
            return await handle_login_command(args, services, config, user_id, password)
        if args.logout:
            return await handle_logout_command(args, services)
        if args.status:
            return await handle_status_command(args, services, config)
        return await handle_token_command(args, services)
    finally:
        await services.close()


def _operation_name(args) -> str:
    for operation in ('login', 'logout', 'status', 'token', 'init_config'):
        if getattr(args, operation, False):
            return operation
    return 'unknown'


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the client."""
    args = parse_arguments(argv)

    try:
        config = load_configuration(args)
        configure_logging(args, config)

        if args.init_config:
            return handle_init_config_command(args, config)

        user_id, password = ("", "")
        if args.login:
            user_id, password = _read_credentials(args, config)

        return asyncio.run(run_operation(args, config, user_id, password))

    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except StorageError as e:
        log_structured_error(logger, e)
        print(f"Error: {e.user_message}", file=sys.stderr)
        return EXIT_STORAGE_ERROR
    except LoginClientError as e:
        log_structured_error(logger, e)
        print(f"Error: {e.user_message}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        error = handle_exception(e, context={'operation': _operation_name(args)})
        log_structured_error(logger, error)
        print(f"Error: {error.message}", file=sys.stderr)
        return EXIT_STORAGE_ERROR if isinstance(error, StorageError) else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
