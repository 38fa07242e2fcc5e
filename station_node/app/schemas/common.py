"""
Shared result schemas.

Engine operations never raise for business outcomes; they return a
ServiceResult carrying either data or a typed error.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, Generic, Optional, TypeVar

from station_node.app.core.exceptions import AppException

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Typed failure of an engine operation."""
    error_code: str
    message: str
    details: Dict[str, Any] = {}
    status_code: int = Field(500, exclude=True)


class ServiceResult(BaseModel, Generic[T]):
    """Success/failure envelope returned by every engine operation."""
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def ok(cls, data: T = None) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: AppException) -> "ServiceResult[T]":
        return cls(
            success=False,
            error=ErrorDetail(
                error_code=exc.error_code,
                message=exc.message,
                details=exc.details,
                status_code=exc.status_code,
            )
        )
