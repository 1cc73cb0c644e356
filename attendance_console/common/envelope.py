"""Uniform response envelope: ``{"success": ..., "data": ..., "error": ...}``."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard envelope returned by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


def ok(data: T = None, message: Optional[str] = None) -> ApiResponse[T]:
    return ApiResponse(success=True, data=data, message=message)
