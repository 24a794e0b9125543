"""FastAPI auth dependencies — the per-request authorization guard.

Learn: These are used as Depends() in route handlers to extract and
validate the caller identity from `Authorization: Bearer <access token>`.

- get_current_user           → 401 unless a valid access token + active user
- get_current_user_optional  → same checks, but any failure just yields None
- require_roles(...)         → 403 unless the caller's role is allowed
- require_agent / require_admin
- require_self_or_admin(p)   → admin, or path param p is the caller's user/agent id

The decision rules (authorize_*) are plain functions over a CurrentUser
so they can be tested without HTTP.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.auth.jwt import (
    ACCESS,
    TokenCodec,
    TokenExpiredError,
    TokenKindError,
    TokenSignatureError,
)
from medconnect.config import settings
from medconnect.db.engine import get_db
from medconnect.db.models import Agent, Role, User
from medconnect.errors import AppError, Forbidden, Unauthorized
from medconnect.services.credential_store import CredentialStore

_codec: Optional[TokenCodec] = None


def get_token_codec() -> TokenCodec:
    """Process-wide codec built from settings (override in tests)."""
    global _codec
    if _codec is None:
        _codec = TokenCodec.from_settings(settings)
    return _codec


@dataclass(frozen=True)
class AgentSnapshot:
    id: str
    name: str
    company_name: Optional[str]
    email: str

    @classmethod
    def from_model(cls, agent: Agent) -> "AgentSnapshot":
        return cls(
            id=str(agent.id),
            name=agent.name,
            company_name=agent.company_name,
            email=agent.email,
        )


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, attached to request.state.user.

    Learn: Built once per request from a verified access token plus a
    fresh user lookup, so a deactivation takes effect on the next call
    rather than when the access token expires.
    """

    id: str
    email: str
    role: str
    agent: Optional[AgentSnapshot] = None

    @classmethod
    def from_model(cls, user: User) -> "CurrentUser":
        return cls(
            id=str(user.id),
            email=user.email,
            role=user.role,
            agent=AgentSnapshot.from_model(user.agent) if user.agent else None,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


# ─── Authentication ─────────────────────────────────────


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Access token required")
    token = authorization[7:].strip()
    if not token:
        raise Unauthorized("Access token required")
    return token


async def authenticate(
    authorization: Optional[str],
    db: AsyncSession,
    codec: TokenCodec,
) -> CurrentUser:
    """Resolve an Authorization header to a CurrentUser or raise Unauthorized."""
    token = _bearer_token(authorization)

    try:
        payload = codec.verify(ACCESS, token)
    except TokenKindError:
        raise Unauthorized("Invalid token type")
    except TokenExpiredError:
        raise Unauthorized("Token expired")
    except TokenSignatureError:
        raise Unauthorized("Invalid token")

    user = await CredentialStore(db).find_user_by_id(payload.user_id)
    if user is None:
        raise Unauthorized("User not found")
    if not user.is_active:
        raise Unauthorized("Account is deactivated")

    return CurrentUser.from_model(user)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> CurrentUser:
    """Extract current user (required — 401 if missing or invalid)."""
    user = await authenticate(authorization, db, codec)
    request.state.user = user
    return user


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> Optional[CurrentUser]:
    """Extract current user (optional — None instead of any 401)."""
    try:
        user = await authenticate(authorization, db, codec)
    except AppError:
        return None
    request.state.user = user
    return user


# ─── Authorization rules ────────────────────────────────


def authorize_roles(user: Optional[CurrentUser], roles: tuple[str, ...]) -> CurrentUser:
    if user is None:
        raise Unauthorized("Authentication required")
    if user.role not in roles:
        raise Forbidden("Insufficient permissions for this action")
    return user


def authorize_agent(user: Optional[CurrentUser]) -> CurrentUser:
    if user is None:
        raise Unauthorized("Authentication required")
    if user.role != Role.AGENT.value:
        raise Forbidden("Agent access required")
    if user.agent is None:
        raise Forbidden("Agent profile not found")
    return user


def authorize_admin(user: Optional[CurrentUser]) -> CurrentUser:
    if user is None:
        raise Unauthorized("Authentication required")
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


def authorize_self_or_admin(user: Optional[CurrentUser], resource_id: Optional[str]) -> CurrentUser:
    if user is None:
        raise Unauthorized("Authentication required")
    if user.is_admin:
        return user
    own_ids = {user.id}
    if user.agent is not None:
        own_ids.add(user.agent.id)
    if resource_id is None or str(resource_id) not in own_ids:
        raise Forbidden("Access denied")
    return user


# ─── Dependency factories ───────────────────────────────


def _role_value(role) -> str:
    return role.value if isinstance(role, Role) else str(role)


def require_roles(*roles):
    allowed = tuple(_role_value(r) for r in roles)

    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        return authorize_roles(user, allowed)

    return _check


async def require_agent(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return authorize_agent(user)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return authorize_admin(user)


def require_self_or_admin(param: str = "id"):
    async def _check(
        request: Request, user: CurrentUser = Depends(get_current_user)
    ) -> CurrentUser:
        return authorize_self_or_admin(user, request.path_params.get(param))

    return _check
