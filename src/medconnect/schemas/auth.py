"""Pydantic schemas for registration, login and sessions.

Learn: Password policy is a field_validator rather than Field(pattern=...)
because the pattern engine pydantic uses has no lookahead support.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from medconnect.schemas.common import CamelModel

_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
_PASSWORD_MESSAGE = (
    "Password must contain at least one uppercase letter, "
    "one lowercase letter, and one number"
)


def _check_password_strength(value: str) -> str:
    if not _PASSWORD_RULE.match(value):
        raise ValueError(_PASSWORD_MESSAGE)
    return value


# ─── Requests ───────────────────────────────────────────


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=2, max_length=100)
    company_name: Optional[str] = Field(None, min_length=2, max_length=200)
    phone: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


# ─── Responses ──────────────────────────────────────────


class UserRead(CamelModel):
    id: uuid.UUID
    email: str
    role: str


class AgentSummary(CamelModel):
    id: uuid.UUID
    name: str
    company_name: Optional[str] = None
    email: str


class TokenPairRead(CamelModel):
    access_token: str
    refresh_token: str


class AuthResultRead(CamelModel):
    user: UserRead
    agent: Optional[AgentSummary] = None
    tokens: TokenPairRead


class AgentProfileRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    company_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class ProfileRead(CamelModel):
    """User joined with agent profile. Never includes the password hash."""

    id: uuid.UUID
    email: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    agent: Optional[AgentProfileRead] = None


class SessionUserRead(CamelModel):
    id: uuid.UUID
    email: str
    role: str
    agent: Optional[AgentSummary] = None


class VerifyRead(CamelModel):
    user: SessionUserRead
    valid: bool = True


class CleanTokensRead(CamelModel):
    deleted_count: int
