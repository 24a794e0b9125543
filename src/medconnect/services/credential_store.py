"""Credential store — user identities and agent profiles.

Learn: Thin persistence layer under AuthService. Lookups and updates join
the caller's transaction; the create_* methods commit on their own.
create_user_and_agent() commits user and profile together or rolls both
back, so a user without its profile is never visible to another session.
"""

import uuid
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.db.models import Agent, User

IdLike = Union[str, uuid.UUID]


def _as_uuid(value: IdLike) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError):
        return None


class CredentialStore:
    """User + agent persistence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Users ──────────────────────────────────────────

    async def find_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def find_user_by_id(self, user_id: IdLike) -> Optional[User]:
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        result = await self.db.execute(select(User).where(User.id == uid))
        return result.scalars().first()

    async def create_user_and_agent(
        self,
        user_fields: dict[str, Any],
        agent_fields: dict[str, Any],
    ) -> tuple[User, Agent]:
        """Create a user and its agent profile in one transaction."""
        try:
            user = User(**user_fields)
            agent = Agent(user=user, **agent_fields)
            self.db.add(user)
            self.db.add(agent)
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return user, agent

    async def create_user(self, user_fields: dict[str, Any]) -> User:
        """Create a user with no agent profile (administrators)."""
        try:
            user = User(agent=None, **user_fields)
            self.db.add(user)
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return user

    async def update_user_password(self, user_id: IdLike, password_hash: str) -> None:
        """Replace the stored hash. Joins the caller's transaction."""
        user = await self.find_user_by_id(user_id)
        if user is not None:
            user.password_hash = password_hash
            await self.db.flush()

    # ─── Agents ─────────────────────────────────────────

    async def find_agent_by_id(self, agent_id: IdLike) -> Optional[Agent]:
        aid = _as_uuid(agent_id)
        if aid is None:
            return None
        result = await self.db.execute(select(Agent).where(Agent.id == aid))
        return result.scalars().first()

    async def set_agent_active(self, agent: Agent, active: bool) -> None:
        """Flip the agent profile and its owning user together."""
        agent.is_active = active
        agent.user.is_active = active
        await self.db.flush()
