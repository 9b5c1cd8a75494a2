"""
Configuration for the Workbench client.

Two layers:

Settings
  Environment variables, read at access time. Never hardcode secrets.

Config
  Persisted per-environment state. The client stores separate credentials
  per API URL, so a user can be logged into production and a local backend
  at the same time.

  Config structure:
  {
    "environments": {
      "http://localhost:8000/api/v1": {
        "access_token": "...",
        "refresh_token": "...",
        "auth": {"user": {...}, "is_authenticated": true},
        "chat": {"conversations": [...], "current_conversation": {...}}
      }
    },
    "default_url": "http://localhost:8000/api/v1"
  }

API URL resolution order:
  1. WORKBENCH_API_URL environment variable
  2. --api-url command line flag (passed to Config)
  3. default_url from config file
  4. Fallback: http://localhost:8000/api/v1
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000/api/v1"


class Settings:
    """Client settings from environment variables."""

    # Seconds between job status polls (matches the web client)
    DEFAULT_POLL_INTERVAL: float = 2.0
    # Give up on a job after 10 minutes
    DEFAULT_JOB_MAX_WAIT: float = 600.0
    # Page size for the conversation list
    CONVERSATION_PAGE_SIZE: int = 50

    @property
    def API_URL(self) -> str | None:
        url = os.environ.get("WORKBENCH_API_URL")
        return url.rstrip("/") if url else None

    @property
    def CONFIG_DIR(self) -> Path:
        path = os.environ.get("WORKBENCH_CONFIG_DIR")
        if path:
            return Path(path)
        return Path.home() / ".workbench"

    @property
    def TIMEOUT(self) -> float:
        return float(os.environ.get("WORKBENCH_TIMEOUT", "30"))

    @property
    def POLL_INTERVAL(self) -> float:
        return float(os.environ.get("WORKBENCH_POLL_INTERVAL", str(self.DEFAULT_POLL_INTERVAL)))

    @property
    def LOG_LEVEL(self) -> str:
        return os.environ.get("WORKBENCH_LOG_LEVEL", "WARNING").upper()


# Singleton instance
settings = Settings()


class Config:
    """Persisted credentials and state slices, keyed by API URL."""

    def __init__(self, api_url_override: str | None = None, config_dir: Path | None = None):
        """
        Initialize config.

        Args:
            api_url_override: Optional --api-url flag value
            config_dir: Directory for config.json (defaults to settings.CONFIG_DIR)
        """
        self.config_dir = config_dir or settings.CONFIG_DIR
        self.config_file = self.config_dir / "config.json"
        self._data: dict[str, Any] = {}
        self._api_url_override = api_url_override
        self._load()

    def _load(self):
        """Load config from disk."""
        if self.config_file.exists():
            try:
                with open(self.config_file) as f:
                    self._data = json.load(f)
            except (OSError, ValueError):
                logger.warning("Config: unreadable %s, starting fresh", self.config_file)
                self._data = {}

        if not isinstance(self._data.get("environments"), dict):
            self._data["environments"] = {}

    def _save(self):
        """Save config to disk with owner-only permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            json.dump(self._data, f, indent=2)

        self.config_file.chmod(0o600)

    @property
    def api_url(self) -> str:
        """Current API URL (see module docstring for resolution order)."""
        env_url = settings.API_URL
        if env_url:
            return env_url

        if self._api_url_override:
            return self._api_url_override.rstrip("/")

        return self.default_url.rstrip("/")

    @property
    def default_url(self) -> str:
        return self._data.get("default_url", DEFAULT_API_URL)

    def _get_env(self) -> dict[str, Any]:
        return self._data["environments"].get(self.api_url, {})

    def _set_env(self, key: str, value: Any):
        env = self._data["environments"].setdefault(self.api_url, {})
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
        self._save()

    @property
    def access_token(self) -> str | None:
        return self._get_env().get("access_token")

    @property
    def refresh_token(self) -> str | None:
        return self._get_env().get("refresh_token")

    def set_tokens(self, access_token: str, refresh_token: str | None):
        """Store both tokens with a single write."""
        env = self._data["environments"].setdefault(self.api_url, {})
        env["access_token"] = access_token
        if refresh_token:
            env["refresh_token"] = refresh_token
        else:
            env.pop("refresh_token", None)
        self._save()

    def clear_tokens(self):
        """Drop access and refresh tokens for the current environment."""
        env = self._data["environments"].get(self.api_url)
        if not env:
            return
        env.pop("access_token", None)
        env.pop("refresh_token", None)
        self._save()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def get_slice(self, name: str) -> dict[str, Any] | None:
        """Return a persisted state slice (e.g. "auth", "chat") or None."""
        value = self._get_env().get(name)
        return value if isinstance(value, dict) else None

    def set_slice(self, name: str, value: dict[str, Any] | None):
        """Persist a state slice for the current environment."""
        self._set_env(name, value)

    def clear_environment(self, url: str | None = None):
        """
        Clear credentials and state for one environment.

        Args:
            url: Environment URL to clear. If None, clears current environment.
        """
        target_url = (url or self.api_url).rstrip("/")
        if target_url in self._data["environments"]:
            del self._data["environments"][target_url]
            self._save()

    def clear_all(self):
        """Clear all environments and delete the config file."""
        self._data = {"environments": {}}
        if self.config_file.exists():
            self.config_file.unlink()

    def list_environments(self) -> list[dict]:
        """
        List all authenticated environments.

        Returns:
            List of dicts with url, email, is_current keys.
        """
        current = self.api_url
        result = []
        for url, env in self._data.get("environments", {}).items():
            if env.get("access_token"):
                user = (env.get("auth") or {}).get("user") or {}
                result.append({
                    "url": url,
                    "email": user.get("email"),
                    "is_current": url == current,
                })
        return result
