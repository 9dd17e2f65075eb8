from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class Position(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class GeofenceRead(BaseModel):
    """Distance between a position and a client, and whether it is inside the fence."""
    distance_km: float
    distance_m: float
    radius_m: float
    within: bool


class GeocodeRequest(BaseModel):
    address: str = Field(..., min_length=3, description="Free-text address, resolved within Chile")


class GeocodeRead(BaseModel):
    formatted_address: str
    lat: float
    lng: float
    comuna: Optional[str] = None
    place_id: Optional[str] = None
