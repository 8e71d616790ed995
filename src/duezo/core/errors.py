"""
Typed failures raised by the bill pipeline.

Each one is an `HTTPException`, so routers let them propagate and FastAPI renders the status
code and detail. Worker code catches them like any other exception.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class DuezoError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class ValidationError(DuezoError):
    status_code = 422
    default_detail = "Invalid input"


class AuthorizationError(DuezoError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not allowed"


class NotFoundError(DuezoError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(DuezoError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already decided"


class PersistenceConflict(DuezoError):
    """A unique constraint rejected an insert: the row already exists."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class ExternalServiceError(DuezoError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service failed"


class RateLimitedError(DuezoError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests"
