"""Response envelope shared by every route.

Learn: Clients always get {success, message, data}; list routes add
{pagination: {page, limit, total, pages}}. Errors use the same
shape with success=false (see medconnect.api.errors), so a frontend can
branch on one field.
"""

import math
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, emits camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        page, limit = max(1, page), max(1, limit)
        return cls(page=page, limit=limit, total=total, pages=max(1, math.ceil(total / limit)))


class PagedResponse(BaseModel, Generic[T]):
    """Envelope for list routes: `data` is one page, `pagination` locates it."""

    success: bool = True
    message: str
    data: list[T]
    pagination: Pagination


def ok(data=None, message: str = "OK") -> dict:
    return {"success": True, "message": message, "data": data}


def paged(data: list, pagination: Pagination, message: str = "OK") -> dict:
    return {"success": True, "message": message, "data": data, "pagination": pagination}
