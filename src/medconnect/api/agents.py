"""Agent API — profiles, admin listing and admin (de)activation.

Learn: Shows the guard in use:
- GET   /agents                   → admins only (paged, filterable)
- GET   /agents/me, PUT /agents/me → agents only (role AGENT + profile)
- GET   /agents/{agent_id}        → the agent itself, or an admin
- PUT   /agents/{agent_id}        → admins only
- PATCH /agents/{agent_id}/...    → admins only

Static paths are declared before /{agent_id} so "me" is never read as an id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from medconnect.auth.dependencies import (
    CurrentUser,
    require_admin,
    require_agent,
    require_self_or_admin,
)
from medconnect.db.engine import get_db
from medconnect.schemas.agent import AgentSortField, SortOrder, UpdateAgentRequest
from medconnect.schemas.auth import AgentProfileRead
from medconnect.schemas.common import ApiResponse, PagedResponse, Pagination, ok, paged
from medconnect.services.agent_service import AgentService

router = APIRouter(prefix="/agents")


def _svc(db: AsyncSession = Depends(get_db)) -> AgentService:
    return AgentService(db)


@router.get(
    "",
    response_model=PagedResponse[AgentProfileRead],
    dependencies=[Depends(require_admin)],
)
async def list_agents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    is_active: Optional[str] = Query(None, alias="isActive", description='"true" or anything else'),
    sort_by: AgentSortField = Query("createdAt", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
    svc: AgentService = Depends(_svc),
):
    agents, total = await svc.list_agents(
        page=page,
        limit=limit,
        search=search,
        is_active=None if not is_active else is_active == "true",
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return paged(
        [AgentProfileRead.model_validate(a) for a in agents],
        Pagination.of(page, limit, total),
        "Agents retrieved successfully",
    )


@router.get("/me", response_model=ApiResponse[AgentProfileRead])
async def get_my_profile(
    user: CurrentUser = Depends(require_agent),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.get_agent_for_user(user.id)
    return ok(AgentProfileRead.model_validate(agent), "Agent profile retrieved successfully")


@router.put("/me", response_model=ApiResponse[AgentProfileRead])
async def update_my_profile(
    body: UpdateAgentRequest,
    user: CurrentUser = Depends(require_agent),
    svc: AgentService = Depends(_svc),
):
    agent = await svc.update_agent_for_user(user.id, body.changes())
    return ok(AgentProfileRead.model_validate(agent), "Profile updated successfully")


@router.get(
    "/{agent_id}",
    response_model=ApiResponse[AgentProfileRead],
    dependencies=[Depends(require_self_or_admin("agent_id"))],
)
async def get_agent(agent_id: str, svc: AgentService = Depends(_svc)):
    agent = await svc.get_agent(agent_id)
    return ok(AgentProfileRead.model_validate(agent), "Agent retrieved successfully")


@router.put(
    "/{agent_id}",
    response_model=ApiResponse[AgentProfileRead],
    dependencies=[Depends(require_admin)],
)
async def update_agent(
    agent_id: str,
    body: UpdateAgentRequest,
    svc: AgentService = Depends(_svc),
):
    agent = await svc.update_agent(agent_id, body.changes())
    return ok(AgentProfileRead.model_validate(agent), "Agent profile updated successfully")


@router.patch(
    "/{agent_id}/deactivate",
    response_model=ApiResponse[AgentProfileRead],
    dependencies=[Depends(require_admin)],
)
async def deactivate_agent(agent_id: str, svc: AgentService = Depends(_svc)):
    agent = await svc.deactivate(agent_id)
    return ok(AgentProfileRead.model_validate(agent), "Agent deactivated successfully")


@router.patch(
    "/{agent_id}/reactivate",
    response_model=ApiResponse[AgentProfileRead],
    dependencies=[Depends(require_admin)],
)
async def reactivate_agent(agent_id: str, svc: AgentService = Depends(_svc)):
    agent = await svc.reactivate(agent_id)
    return ok(AgentProfileRead.model_validate(agent), "Agent reactivated successfully")
