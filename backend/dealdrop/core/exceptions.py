"""
Error taxonomy for the deal engine.

Every error is an HTTPException so services can raise it directly, the same
way route handlers do, and FastAPI renders it as
``{"detail": {"code": ..., "message": ...}}``.
"""
from typing import Optional

from fastapi import HTTPException, status


class DealEngineError(HTTPException):
    """Base class for deal engine errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, headers: Optional[dict] = None):
        self.message = message or self.default_message
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": self.message},
            headers=headers
        )


class NotFoundError(DealEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class InvalidArgumentError(DealEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_argument"
    default_message = "Invalid argument"


class DealInactiveError(DealEngineError):
    """The deal is switched off, has ended, or its merchant is deactivated."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "inactive"
    default_message = "Deal is no longer available"


class ConflictError(DealEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Conflicting request"


class AlreadyClaimedError(ConflictError):
    code = "already_claimed"
    default_message = "Deal already claimed"


class DealExhaustedError(ConflictError):
    code = "exhausted"
    default_message = "Deal has reached maximum redemptions"


class UnauthorizedError(DealEngineError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(DealEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Not allowed"


class TransientError(DealEngineError):
    """The store is unavailable; the request is safe to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transient"
    default_message = "Service temporarily unavailable, please retry"
