"""
Response envelope shared by every endpoint:
{success, message?, error?, code?, data?}
"""
from typing import Any, Optional
from pydantic import BaseModel


class ApiResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    data: Optional[Any] = None


def success_response(data: Any = None, message: Optional[str] = None) -> dict:
    return ApiResponse(success=True, message=message, data=data).model_dump(exclude_none=True)


def error_response(error: str, code: Optional[str] = None, data: Any = None) -> dict:
    return ApiResponse(success=False, error=error, code=code, data=data).model_dump(exclude_none=True)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    limit: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            limit=limit,
            has_next=page < total_pages,
            has_prev=page > 1,
        )
