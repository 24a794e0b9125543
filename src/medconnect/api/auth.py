"""Auth API — registration, login, token rotation, profile.

Learn: Routes for the account/session lifecycle:
- POST /auth/register        → create agent account + first session (201)
- POST /auth/login           → email/password → token pair
- POST /auth/refresh         → rotate refresh token → new pair
- POST /auth/logout          → revoke a refresh token (idempotent)
- GET  /auth/profile         → current user + agent profile
- GET  /auth/verify          → echo the authenticated identity
- PUT  /auth/change-password → new password, every session revoked
- DELETE /auth/clean-tokens  → admin: sweep expired refresh tokens

Register and login sit behind the stricter auth rate-limit bucket.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.auth.dependencies import (
    CurrentUser,
    get_current_user,
    get_token_codec,
    require_admin,
)
from medconnect.auth.jwt import TokenCodec
from medconnect.auth.rate_limit import rate_limit
from medconnect.config import settings
from medconnect.db.engine import get_db
from medconnect.schemas.auth import (
    AuthResultRead,
    ChangePasswordRequest,
    CleanTokensRead,
    LoginRequest,
    LogoutRequest,
    ProfileRead,
    RefreshRequest,
    RegisterRequest,
    VerifyRead,
)
from medconnect.schemas.common import ApiResponse, ok
from medconnect.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth")

_auth_limit = rate_limit(
    settings.rate_limit_window_ms,
    settings.auth_rate_limit_max_requests,
    scope="auth",
)


def _svc(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> AuthService:
    return AuthService(db, codec=codec)


def _result(result: AuthResult) -> AuthResultRead:
    return AuthResultRead.model_validate(
        {
            "user": result.user,
            "agent": result.agent,
            "tokens": result.tokens.as_dict(),
        }
    )


# ─── Public ─────────────────────────────────────────────


@router.post(
    "/register",
    response_model=ApiResponse[AuthResultRead],
    status_code=201,
    dependencies=[Depends(_auth_limit)],
)
async def register(body: RegisterRequest, svc: AuthService = Depends(_svc)):
    """Create a new agent account."""
    result = await svc.register(
        email=body.email,
        password=body.password,
        name=body.name,
        company_name=body.company_name,
        phone=body.phone,
        address=body.address,
    )
    return ok(_result(result), "User registered successfully")


@router.post(
    "/login",
    response_model=ApiResponse[AuthResultRead],
    dependencies=[Depends(_auth_limit)],
)
async def login(body: LoginRequest, svc: AuthService = Depends(_svc)):
    """Login with email and password → JWT tokens."""
    result = await svc.login(email=body.email, password=body.password)
    return ok(_result(result), "Login successful")


@router.post("/refresh", response_model=ApiResponse[AuthResultRead])
async def refresh(body: RefreshRequest, svc: AuthService = Depends(_svc)):
    """Exchange a refresh token for a new pair (the old one is consumed)."""
    result = await svc.refresh(body.refresh_token)
    return ok(_result(result), "Token refreshed successfully")


@router.post("/logout", response_model=ApiResponse[dict])
async def logout(body: LogoutRequest | None = None, svc: AuthService = Depends(_svc)):
    """Revoke a refresh token. Succeeds even if it is unknown or absent."""
    if body is not None and body.refresh_token:
        await svc.logout(body.refresh_token)
    return ok({}, "Logged out successfully")


# ─── Authenticated ──────────────────────────────────────


@router.get("/profile", response_model=ApiResponse[ProfileRead])
async def get_profile(
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    profile = await svc.get_profile(user.id)
    return ok(ProfileRead.model_validate(profile), "Profile retrieved successfully")


@router.get("/verify", response_model=ApiResponse[VerifyRead])
async def verify(user: CurrentUser = Depends(get_current_user)):
    """Token is valid if we got here; echo who it belongs to."""
    return ok(VerifyRead.model_validate({"user": user, "valid": True}), "Token is valid")


@router.put("/change-password", response_model=ApiResponse[dict])
async def change_password(
    body: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    await svc.change_password(user.id, body.current_password, body.new_password)
    return ok({}, "Password changed successfully")


@router.delete("/clean-tokens", response_model=ApiResponse[CleanTokensRead])
async def clean_expired_tokens(
    _admin: CurrentUser = Depends(require_admin),
    svc: AuthService = Depends(_svc),
):
    deleted = await svc.clean_expired_tokens()
    return ok(CleanTokensRead(deleted_count=deleted), "Expired tokens cleaned successfully")
