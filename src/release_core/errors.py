"""Domain exceptions shared by services and API routers.

Every service-level failure carries a machine readable ``code``, a human
message and an optional ``details`` dict. The API layer renders them as
``{"code", "message", "details"}`` with the HTTP status from ``STATUS_BY_CODE``.
"""
from typing import Any, Optional


STATUS_BY_CODE: dict[str, int] = {
    "NOT_FOUND": 404,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "INVALID_TRANSITION": 400,
    "UNSUPPORTED_TRANSITION": 400,
    "VALIDATION_ERROR": 400,
    "INVALID_STATE": 400,
    "MISSING_SUCCESSOR": 400,
    "INVALID_RELATION": 400,
    "CONFLICT": 409,
    "PRECONDITION_FAILED": 412,
    "UPSTREAM_ERROR": 502,
}


class ServiceError(Exception):
    """Base class for errors raised by release_core services."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class UnauthorizedError(ServiceError):
    code = "UNAUTHORIZED"


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"


class ConflictError(ServiceError):
    code = "CONFLICT"


class PreconditionFailedError(ServiceError):
    code = "PRECONDITION_FAILED"


class UpstreamError(ServiceError):
    code = "UPSTREAM_ERROR"
