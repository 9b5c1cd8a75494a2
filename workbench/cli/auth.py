"""Authentication commands for the Workbench CLI."""

from __future__ import annotations

import getpass

from workbench.config import Config
from workbench.errors import WorkbenchError
from workbench.services.api_client import ApiClient
from workbench.services.auth_store import AuthStore


def _prompt_credentials(email: str | None) -> tuple[str, str]:
    email = email or input("Email: ").strip()
    password = getpass.getpass("Password: ")
    return email, password


async def login(config: Config, email: str | None = None) -> bool:
    """
    Log in with email and password.

    Returns True if successful, False otherwise.
    """
    email, password = _prompt_credentials(email)

    async with ApiClient(config) as api:
        auth = AuthStore(api, config)
        try:
            user = await auth.login(email, password)
        except WorkbenchError:
            print(f"Login failed: {auth.state.error}")
            return False

    print(f"Authenticated as {user.email}")
    print(f"Token saved to {config.config_file}")
    return True


async def register(config: Config, email: str | None = None, name: str | None = None) -> bool:
    """
    Create an account and log in.

    Returns True if successful, False otherwise.
    """
    email, password = _prompt_credentials(email)
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("Passwords do not match.")
        return False

    async with ApiClient(config) as api:
        auth = AuthStore(api, config)
        try:
            user = await auth.register(email, password, name)
        except WorkbenchError:
            print(f"Registration failed: {auth.state.error}")
            return False

    print(f"Registered and authenticated as {user.email}")
    return True


async def whoami(config: Config) -> bool:
    """Print the account the stored token belongs to."""
    async with ApiClient(config) as api:
        auth = AuthStore(api, config)
        if not await auth.check_auth():
            print(f"Not logged in to {config.api_url}")
            return False

    user = auth.current_user
    print(f"{user.email} ({user.name or 'no name'}) on {config.api_url}")
    return True


def logout(config: Config, logout_all: bool = False) -> bool:
    """
    Logout and clear credentials.

    Args:
        config: Config instance
        logout_all: If True, clear all environments. If False, only current.

    Returns True if successful, False otherwise.
    """
    if logout_all:
        envs = config.list_environments()
        if not envs:
            print("No authenticated environments.")
            return True

        for env in envs:
            print(f"  Logging out of {env['url']} ({env.get('email') or 'unknown'})")

        config.clear_all()
        print("Logged out of all environments.")
        return True

    if not config.is_authenticated:
        print(f"Not logged in to {config.api_url}")
        return False

    config.clear_environment()
    print(f"Logged out of {config.api_url}")
    return True
