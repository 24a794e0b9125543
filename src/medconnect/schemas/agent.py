"""Pydantic schemas for agent profile edits and the admin agent listing."""

from typing import Literal, Optional

from pydantic import Field

from medconnect.schemas.common import CamelModel

AgentSortField = Literal["name", "companyName", "createdAt"]
SortOrder = Literal["asc", "desc"]


class UpdateAgentRequest(CamelModel):
    """Partial profile update. Omitted or null fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    company_name: Optional[str] = Field(None, min_length=2, max_length=200)
    phone: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    address: Optional[str] = Field(None, max_length=500)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)
