"""Agent service — read, edit, list and (de)activate agent profiles.

Learn: Deactivation flips both the profile and its owning user, then
revokes the user's refresh tokens. Access tokens already handed out stop
working on their next request because the guard re-reads is_active.

Listing filters are applied conditionally, only when the caller provides
them, and the same filters feed the page query and the total count.
"""

from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.db.models import Agent
from medconnect.errors import NotFound
from medconnect.services.credential_store import CredentialStore
from medconnect.services.token_ledger import TokenLedger

logger = structlog.get_logger()

EDITABLE_FIELDS = ("name", "company_name", "phone", "address")

_SORT_COLUMNS = {
    "name": Agent.name,
    "companyName": Agent.company_name,
    "createdAt": Agent.created_at,
}


class AgentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = CredentialStore(db)
        self.ledger = TokenLedger(db)

    # ─── Read ────────────────────────────────────────────

    async def get_agent(self, agent_id: str) -> Agent:
        agent = await self.users.find_agent_by_id(agent_id)
        if agent is None:
            raise NotFound("Agent not found")
        return agent

    async def get_agent_for_user(self, user_id: str) -> Agent:
        user = await self.users.find_user_by_id(user_id)
        if user is None or user.agent is None:
            raise NotFound("Agent profile not found")
        return user.agent

    async def list_agents(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> tuple[list[Agent], int]:
        """One page of agents plus the total matching the same filters.

        `search` is a case-insensitive substring match on name, company
        name or email.
        """
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(
                or_(
                    Agent.name.ilike(pattern),
                    Agent.company_name.ilike(pattern),
                    Agent.email.ilike(pattern),
                )
            )
        if is_active is not None:
            filters.append(Agent.is_active == is_active)

        column = _SORT_COLUMNS[sort_by]
        order = column.asc() if sort_order == "asc" else column.desc()

        query = (
            select(Agent)
            .where(*filters)
            .order_by(order, Agent.id)
            .limit(limit)
            .offset(max(0, (page - 1) * limit))
        )
        agents = list((await self.db.execute(query)).scalars().all())
        total = (
            await self.db.execute(select(func.count()).select_from(Agent).where(*filters))
        ).scalar_one()
        return agents, total

    # ─── Update ──────────────────────────────────────────

    async def update_agent(self, agent_id: str, changes: dict) -> Agent:
        agent = await self.get_agent(agent_id)
        return await self._apply(agent, changes)

    async def update_agent_for_user(self, user_id: str, changes: dict) -> Agent:
        agent = await self.get_agent_for_user(user_id)
        return await self._apply(agent, changes)

    async def _apply(self, agent: Agent, changes: dict) -> Agent:
        fields = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        for key, value in fields.items():
            setattr(agent, key, value)
        await self.db.commit()
        logger.info("medconnect.agent.updated", agent_id=str(agent.id), fields=sorted(fields))
        return agent

    async def deactivate(self, agent_id: str) -> Agent:
        agent = await self.get_agent(agent_id)
        await self.users.set_agent_active(agent, False)
        revoked = await self.ledger.delete_refresh_tokens_by_user(agent.user_id)
        await self.db.commit()
        logger.info("medconnect.agent.deactivated", agent_id=str(agent.id), revoked=revoked)
        return agent

    async def reactivate(self, agent_id: str) -> Agent:
        agent = await self.get_agent(agent_id)
        await self.users.set_agent_active(agent, True)
        await self.db.commit()
        logger.info("medconnect.agent.reactivated", agent_id=str(agent.id))
        return agent
