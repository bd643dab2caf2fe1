"""Service-level exceptions translated into API error envelopes."""
from __future__ import annotations

from fastapi import status


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "server_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_payload(self) -> dict[str, dict[str, str]]:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidRequestError(ServiceError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "validation_error"


class UnauthorizedError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "forbidden"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class ConflictError(ServiceError):
    """Transition attempted from a state that does not allow it."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InvalidRequestError",
    "NotFoundError",
    "ServiceError",
    "UnauthorizedError",
]
