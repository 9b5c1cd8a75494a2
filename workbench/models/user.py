"""User and auth models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """The authenticated account as returned by /auth/me."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str | None = None
    is_active: bool = True
    is_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str | None = None


class TokenResponse(BaseModel):
    """Tokens issued by /auth/login and /auth/register."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
