from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientBase(BaseModel):
    name: str = Field(..., description="Clinic or professional name")
    rut: str = Field(..., description="Chilean RUT; normalized to <body>-<DV>")
    email: str = Field(..., description="Contact e-mail")
    phone: str = Field(..., description="Contact phone")
    address: str = Field(..., description="Street address")
    giro: str = Field(..., description="Business line (giro)")
    comuna: Optional[str] = Field(None)
    notes: Optional[str] = Field(None)
    purchase_contact: Optional[str] = Field(None, description="Purchasing contact person")
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("name", "rut", "email", "phone", "address", "giro")
    @classmethod
    def _required_text(cls, v: str) -> str:
        if v is None or not str(v).strip():
            raise ValueError("field is required")
        return str(v).strip()


class ClientCreate(ClientBase):
    """Create payload. Every field except notes, comuna and the position is mandatory."""


class ClientUpdate(ClientBase):
    """Update payload; same mandatory fields as creation."""


class ClientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    rut: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    comuna: Optional[str] = None
    zone: Optional[str] = None
    giro: Optional[str] = None
    notes: Optional[str] = None
    purchase_contact: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: str
    created_by: Optional[UUID] = None
    created_at: datetime


class ImportResult(BaseModel):
    """Outcome of a CSV client import. Successful rows are kept even when others fail."""
    success_count: int = 0
    error_count: int = 0
    messages: List[str] = Field(default_factory=list)
