"""
Error envelope rendering.

Every failure leaves the API as an ``ErrorResponse``: HTTP errors raised by
routes and dependencies, ``ServiceError`` subclasses raised by services,
request validation failures and anything unexpected (500, no traceback).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dental_crm.schemas.common import ErrorInfo, ErrorResponse
from dental_crm.services.base import ServiceError

logger = logging.getLogger(__name__)


def error_response(request: Request, status_code: int, error_type: str, message: str, details: Any = None) -> JSONResponse:
    body = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def validation_details(exc: RequestValidationError) -> List[dict]:
    """Pydantic error dicts with ``ctx`` values stringified (they may hold exception objects)."""
    out = []
    for err in exc.errors():
        item = dict(err)
        if "ctx" in item:
            item["ctx"] = {key: str(value) for key, value in item["ctx"].items()}
        out.append(item)
    return out


async def _on_http_error(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, str):
        return error_response(request, exc.status_code, "http_error", exc.detail)
    return error_response(request, exc.status_code, "http_error", "HTTP Error", exc.detail)


async def _on_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.error_type, request.url.path, exc.message)
    return error_response(request, exc.status_code, exc.error_type, exc.message, exc.details)


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(request, 422, "validation_error", "Request validation failed", validation_details(exc))


async def _on_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(request, 500, "internal_error", "An unexpected error occurred")


# PUBLIC_INTERFACE
def install_error_handlers(app: FastAPI) -> None:
    """Register the envelope-producing exception handlers on ``app``."""
    app.add_exception_handler(HTTPException, _on_http_error)
    app.add_exception_handler(ServiceError, _on_service_error)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(Exception, _on_unexpected)
