"""Response envelope models.

Consistent response format for all API endpoints: ``{"data": ...}`` on
success, ``{"error": {...}}`` on failure.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    Usage:
        @router.get("/auth/me")
        async def get_me(session: CurrentSession) -> DataResponse[dict]:
            return DataResponse(data={"email": session.identity})
    """

    data: T


class ErrorDetail(BaseModel):
    """Error body inside the error envelope.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable message.
        details: Optional list of additional details.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: ErrorDetail
