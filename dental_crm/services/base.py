from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession


class ServiceError(Exception):
    """
    Business rule violation raised by services.

    The API layer renders these with the standard error envelope using
    ``status_code`` and ``error_type``.
    """

    status_code: int = 400
    error_type: str = "service_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ServiceError):
    status_code = 404
    error_type = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error_type = "conflict"


class ForbiddenError(ServiceError):
    status_code = 403
    error_type = "forbidden"


class ValidationFailed(ServiceError):
    status_code = 400
    error_type = "validation_error"


class UpstreamError(ServiceError):
    """A third-party API (Google) answered with a non-OK status."""

    status_code = 502
    error_type = "upstream_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None, details: Optional[Any] = None) -> None:
        super().__init__(message, details)
        self.upstream_status = upstream_status


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
