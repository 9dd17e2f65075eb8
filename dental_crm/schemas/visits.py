from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class VisitStart(BaseModel):
    """Check-in request. When lat/lng are given the geofence is enforced."""
    client_id: UUID
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    notes: Optional[str] = None


class VisitEnd(BaseModel):
    """Check-out request; the position is optional."""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    notes: Optional[str] = None


class VisitRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    sales_rep_id: UUID
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    check_in_lat: Optional[float] = None
    check_in_lng: Optional[float] = None
    check_out_lat: Optional[float] = None
    check_out_lng: Optional[float] = None
    status: str
    notes: Optional[str] = None


class VisitTimerRead(BaseModel):
    elapsed_seconds: int
    remaining_seconds: int
    is_overtime: bool
    label: str = Field(..., description="MM:SS of the absolute remaining time")
    display: str


class ActiveVisitRead(BaseModel):
    """The caller's in-progress visit with its countdown; resumed flags a reused visit."""
    visit: VisitRead
    client_name: Optional[str] = None
    timer: VisitTimerRead
    resumed: bool = False


class DailyVisitRead(BaseModel):
    visit: VisitRead
    client_name: str
    client_zone: Optional[str] = None
