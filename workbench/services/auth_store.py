"""Auth state: who is logged in, persisted between runs."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, ValidationError

from workbench.config import Config
from workbench.errors import WorkbenchError, error_detail
from workbench.models import User
from workbench.services.api_client import ApiClient
from workbench.services.store import Store

logger = logging.getLogger(__name__)

PERSISTED_FIELDS = {"user", "is_authenticated"}


class AuthState(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: User | None = None
    is_authenticated: bool = False
    is_loading: bool = False
    error: str | None = None


class AuthStore(Store[AuthState]):
    """Login, registration and logout against the backend's /auth endpoints."""

    def __init__(self, api: ApiClient, config: Config):
        super().__init__(AuthState())
        self.api = api
        self.config = config
        self._restore()

    def _restore(self):
        saved = self.config.get_slice("auth")
        if not saved:
            return
        try:
            self._state = AuthState(**saved)
        except ValidationError:
            logger.warning("AuthStore: discarding unreadable persisted auth state")

    def _persist(self):
        self.config.set_slice(
            "auth", self.state.model_dump(mode="json", include=PERSISTED_FIELDS)
        )

    @property
    def current_user(self) -> User | None:
        return self.state.user

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    def _signed_in(self, user: User):
        self.set(user=user, is_authenticated=True, is_loading=False, error=None)
        self._persist()

    def _signed_out(self, error: str | None = None):
        self.set(user=None, is_authenticated=False, is_loading=False, error=error)
        self._persist()

    async def login(self, email: str, password: str) -> User:
        self.set(is_loading=True, error=None)
        try:
            await self.api.login(email, password)
            user = await self.api.get_current_user()
        except WorkbenchError as e:
            logger.error("Login failed for %s: %s", email, e)
            self._signed_out(error_detail(e, str(e) or "Login failed"))
            raise
        self._signed_in(user)
        return user

    async def register(self, email: str, password: str, name: str | None = None) -> User:
        self.set(is_loading=True, error=None)
        try:
            await self.api.register(email, password, name)
            user = await self.api.get_current_user()
        except WorkbenchError as e:
            logger.error("Registration failed for %s: %s", email, e)
            self._signed_out(error_detail(e, "Registration failed"))
            raise
        self._signed_in(user)
        return user

    def logout(self):
        self.api.logout()
        self._signed_out()

    async def check_auth(self) -> bool:
        """
        Confirm the stored token still works.

        A rejected or missing token leaves the store signed out with no
        error, and any stored tokens are dropped.
        """
        if not self.config.access_token:
            self._signed_out()
            return False

        self.set(is_loading=True)
        try:
            user = await self.api.get_current_user()
        except WorkbenchError as e:
            logger.info("Stored token rejected: %s", e)
            self.config.clear_tokens()
            self._signed_out()
            return False
        self._signed_in(user)
        return True
