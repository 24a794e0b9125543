"""Auth service — the session lifecycle on top of the codec and the two stores.

Learn: Per user, the conceptual states are

  anonymous → authenticated (holds ≥1 live refresh-token row) → anonymous

Transitions:
- register / login   → mint a pair, insert a ledger row (sessions stack up)
- refresh            → verify, look up the row, rotate it atomically
- logout             → delete rows matching the token (idempotent)
- change_password    → new hash + delete every row for the user
- expiry             → rows past expires_at are purged on touch or by sweep

Nothing here is HTTP-aware; routes translate the AppError subclasses
raised below into responses.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.auth.jwt import (
    REFRESH,
    TokenClaims,
    TokenCodec,
    TokenError,
    TokenExpiredError,
    TokenPair,
)
from medconnect.auth.password import hash_password, verify_password
from medconnect.config import settings
from medconnect.db.models import Agent, Role, User, as_utc
from medconnect.errors import (
    AccountDeactivated,
    Conflict,
    IncorrectPassword,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    TokenExpired,
    TokenNotFound,
    UserUnavailable,
)
from medconnect.services.credential_store import CredentialStore
from medconnect.services.token_ledger import TokenLedger

logger = structlog.get_logger()


@dataclass
class AuthResult:
    """Outcome of register/login/refresh."""

    user: User
    agent: Optional[Agent]
    tokens: TokenPair


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    # Burned on unknown emails so both login failure paths cost one bcrypt check.
    return hash_password("medconnect-timing-equaliser", rounds)


class AuthService:
    """Business logic for registration, sessions and credentials."""

    def __init__(
        self,
        db: AsyncSession,
        codec: Optional[TokenCodec] = None,
        bcrypt_rounds: Optional[int] = None,
    ):
        self.db = db
        self.codec = codec or TokenCodec.from_settings(settings)
        self.bcrypt_rounds = bcrypt_rounds or settings.bcrypt_rounds
        self.users = CredentialStore(db)
        self.ledger = TokenLedger(db)

    # ─── Register ───────────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        company_name: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> AuthResult:
        """Create an AGENT user with its profile and open a first session."""
        if await self.users.find_user_by_email(email):
            raise Conflict("Email already registered")

        try:
            user, agent = await self.users.create_user_and_agent(
                user_fields={
                    "email": email,
                    "password_hash": hash_password(password, self.bcrypt_rounds),
                    "role": Role.AGENT.value,
                },
                agent_fields={
                    "name": name,
                    "email": email,
                    "company_name": company_name,
                    "phone": phone,
                    "address": address,
                },
            )
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            raise Conflict("Email already registered")

        tokens = await self._open_session(user)
        logger.info("medconnect.auth.registered", user_id=str(user.id), agent_id=str(agent.id))
        return AuthResult(user=user, agent=agent, tokens=tokens)

    # ─── Login ──────────────────────────────────────────

    async def login(self, email: str, password: str) -> AuthResult:
        """Email/password → new token pair. Prior sessions stay valid.

        Checks run existence, then password, then active flag: a deactivated
        account only says so to a caller holding the right password.
        """
        user = await self.users.find_user_by_email(email)

        if user is None:
            verify_password(password, _dummy_hash(self.bcrypt_rounds))
            logger.info("medconnect.auth.login_failed", reason="unknown_email")
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.info("medconnect.auth.login_failed", reason="bad_password", user_id=str(user.id))
            raise InvalidCredentials()

        if not user.is_active:
            logger.info("medconnect.auth.login_failed", reason="deactivated", user_id=str(user.id))
            raise AccountDeactivated()

        tokens = await self._open_session(user)
        logger.info("medconnect.auth.logged_in", user_id=str(user.id))
        return AuthResult(user=user, agent=user.agent, tokens=tokens)

    # ─── Refresh (rotation) ─────────────────────────────

    async def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new pair. The old token dies."""
        try:
            self.codec.verify(REFRESH, refresh_token)
        except TokenExpiredError:
            # Signed by us but past exp: purge whatever row is left, then fail.
            await self.ledger.delete_refresh_tokens_by_value(refresh_token)
            await self.db.commit()
            raise TokenExpired()
        except TokenError:
            raise InvalidToken()

        record = await self.ledger.find_refresh_token_by_value(refresh_token)
        if record is None:
            raise TokenNotFound()

        if as_utc(record.expires_at) < datetime.now(timezone.utc):
            await self.ledger.delete_refresh_token_by_id(record.id)
            await self.db.commit()
            raise TokenExpired()

        user = await self.users.find_user_by_id(record.user_id)
        if user is None or not user.is_active:
            raise UserUnavailable()

        user_id = str(user.id)
        tokens = self.codec.issue_pair(self._claims_for(user))
        replaced = await self.ledger.replace_refresh_token(
            old_id=record.id,
            token=tokens.refresh_token,
            user_id=user.id,
            expires_at=self._refresh_expiry(tokens),
        )
        if replaced is None:
            logger.warning("medconnect.auth.refresh_race_lost", user_id=user_id)
            raise TokenNotFound()

        logger.info("medconnect.auth.refreshed", user_id=user_id)
        return AuthResult(user=user, agent=user.agent, tokens=tokens)

    # ─── Logout ─────────────────────────────────────────

    async def logout(self, refresh_token: str) -> int:
        """Delete ledger rows for this token. Never fails on unknown tokens."""
        removed = await self.ledger.delete_refresh_tokens_by_value(refresh_token)
        await self.db.commit()
        logger.info("medconnect.auth.logged_out", revoked=removed)
        return removed

    # ─── Password ───────────────────────────────────────

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> int:
        """Replace the hash and revoke every refresh token of the user.

        Returns the number of sessions revoked.
        """
        user = await self.users.find_user_by_id(user_id)
        if user is None:
            raise NotFound("User not found")

        if not verify_password(current_password, user.password_hash):
            raise IncorrectPassword()

        await self.users.update_user_password(
            user.id, hash_password(new_password, self.bcrypt_rounds)
        )
        revoked = await self.ledger.delete_refresh_tokens_by_user(user.id)
        await self.db.commit()

        logger.info("medconnect.auth.password_changed", user_id=str(user.id), revoked=revoked)
        return revoked

    # ─── Profile ────────────────────────────────────────

    async def get_profile(self, user_id: str) -> User:
        """User joined with its agent profile (user.agent may be None)."""
        user = await self.users.find_user_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    # ─── Housekeeping ───────────────────────────────────

    async def clean_expired_tokens(self) -> int:
        """Sweep every ledger row whose expiry has passed."""
        removed = await self.ledger.delete_expired_refresh_tokens()
        await self.db.commit()
        logger.info("medconnect.auth.expired_tokens_cleaned", deleted=removed)
        return removed

    # ─── Internals ──────────────────────────────────────

    @staticmethod
    def _claims_for(user: User) -> TokenClaims:
        return TokenClaims(user_id=str(user.id), email=user.email, role=user.role)

    def _refresh_expiry(self, tokens: TokenPair) -> datetime:
        # The token's own exp is the single source of truth for the row.
        return self.codec.expiry_of(tokens.refresh_token) or (
            datetime.now(timezone.utc) + self.codec.refresh_ttl
        )

    async def _open_session(self, user: User) -> TokenPair:
        tokens = self.codec.issue_pair(self._claims_for(user))
        await self.ledger.create_refresh_token(
            token=tokens.refresh_token,
            user_id=user.id,
            expires_at=self._refresh_expiry(tokens),
        )
        await self.db.commit()
        return tokens
