from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ExportFormat = Literal["csv", "xlsx", "pdf"]

ERROR_TYPES = (
    "http_error",
    "validation_error",
    "not_found",
    "conflict",
    "forbidden",
    "upstream_error",
    "internal_error",
)


class MessageResponse(BaseModel):
    """Plain acknowledgement, optionally with counters (e.g. orders updated)."""
    message: str = Field(..., description="Human readable message")
    details: Optional[dict] = Field(default=None, description="Extra data such as affected counts")


class ErrorInfo(BaseModel):
    type: str = Field(..., description="One of: " + ", ".join(ERROR_TYPES))
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(
        default=None,
        description="Validation issues, the owner of a duplicated RUT, the distance to a client, ...",
    )


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""
    status: int = Field(..., description="HTTP status code")
    error: ErrorInfo
    correlation_id: Optional[str] = Field(default=None, description="Value echoed in X-Correlation-ID")
    path: Optional[str] = None
    method: Optional[str] = None
    timestamp: datetime = Field(..., description="UTC time the error was produced")
