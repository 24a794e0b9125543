"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (15 min), used for API calls
- Refresh token: long-lived (7 days), used to get a new token pair

Both kinds carry the same claims {userId, email, role} plus a `type`
discriminator, and each kind is signed with its own secret. A refresh
token therefore fails signature verification when presented as an
access token, and even with shared keys the `type` check rejects it.

Verification failures are a closed set of exception classes
(TokenSignatureError, TokenExpiredError, TokenKindError) so callers
branch on the class, never on message text.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

ACCESS = "access"
REFRESH = "refresh"
TOKEN_KINDS = (ACCESS, REFRESH)


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenSignatureError(TokenError):
    """Malformed token, wrong key, or signature/content mismatch."""


class TokenExpiredError(TokenError):
    """Signature is valid but `exp` has passed."""


class TokenKindError(TokenError):
    """Token decodes fine but its `type` is not the one required."""


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims embedded in every token."""

    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class TokenPayload:
    """A verified token: its claims plus registered JWT fields."""

    user_id: str
    email: str
    role: str
    type: str
    issued_at: datetime
    expires_at: datetime
    jti: str

    @property
    def claims(self) -> TokenClaims:
        return TokenClaims(user_id=self.user_id, email=self.email, role=self.role)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict[str, str]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


class TokenCodec:
    """Issues and verifies access/refresh tokens with independent keys.

    Usage:
        codec = TokenCodec.from_settings(settings)
        pair = codec.issue_pair(TokenClaims(user_id, email, role))
        payload = codec.verify(ACCESS, pair.access_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    @property
    def refresh_ttl(self) -> timedelta:
        return self._ttls[REFRESH]

    # ─── Issue ──────────────────────────────────────────

    def issue(
        self,
        kind: str,
        claims: TokenClaims,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Create a signed token of the given kind.

        `ttl` overrides the configured lifetime (negative values produce
        already-expired tokens, which is handy in tests).
        """
        _check_kind(kind)
        now = datetime.now(timezone.utc)
        payload = {
            "userId": claims.user_id,
            "email": claims.email,
            "role": claims.role,
            "type": kind,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self._ttls[kind]),
            # Tokens minted in the same second must still differ; the
            # ledger stores refresh tokens under a unique constraint.
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def issue_pair(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue(ACCESS, claims),
            refresh_token=self.issue(REFRESH, claims),
        )

    # ─── Verify ─────────────────────────────────────────

    def verify(self, kind: str, token: str) -> TokenPayload:
        """Verify signature, expiry and kind. Returns the payload on success."""
        _check_kind(kind)
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenSignatureError(f"Invalid token: {e}")

        if payload.get("type") != kind:
            raise TokenKindError(f"Expected a {kind} token")

        try:
            return TokenPayload(
                user_id=str(payload["userId"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
                type=payload["type"],
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
                jti=str(payload.get("jti", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TokenSignatureError(f"Invalid token: missing claim {e}")

    # ─── Diagnostics (never use for authorization) ──────

    @staticmethod
    def decode_unsafe(token: str) -> Optional[dict[str, Any]]:
        """Decode claims WITHOUT checking the signature."""
        try:
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.InvalidTokenError:
            return None

    def expiry_of(self, token: str) -> Optional[datetime]:
        payload = self.decode_unsafe(token)
        if not payload or "exp" not in payload:
            return None
        try:
            return datetime.fromtimestamp(payload["exp"], timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None

    def is_expired(self, token: str) -> bool:
        """True when the embedded expiry has passed or cannot be read."""
        expiry = self.expiry_of(token)
        if expiry is None:
            return True
        return expiry < datetime.now(timezone.utc)


def _check_kind(kind: str) -> None:
    if kind not in TOKEN_KINDS:
        raise ValueError(f"Unknown token kind: {kind!r}")
