from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class DispatchRow(BaseModel):
    """Row of a dispatch spreadsheet: client RUT and order folio (PEDIDO)."""
    RUT: str = Field(..., description="Client RUT as written in the sheet")
    PEDIDO: str = Field(..., description="Order folio")

    @field_validator("RUT", "PEDIDO", mode="before")
    @classmethod
    def _as_text(cls, v):
        # sheets and JSON clients send folios (and bare RUT bodies) as numbers
        if isinstance(v, bool):
            return v
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        if isinstance(v, (int, float)):
            return str(v)
        return v.strip() if isinstance(v, str) else v


class MatchRequest(BaseModel):
    rows: List[DispatchRow] = Field(default_factory=list)


class MatchedOrder(BaseModel):
    id: UUID
    folio: Optional[int] = None
    client_name: str
    client_address: Optional[str] = None
    client_rut: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: str
    delivery_status: str = "pending"


class MatchResult(BaseModel):
    read: int = Field(0, description="Rows read from the input")
    matched: List[MatchedOrder] = Field(default_factory=list)
    not_found: List[DispatchRow] = Field(default_factory=list)


class OptimizeRequest(BaseModel):
    orders: List[MatchedOrder] = Field(default_factory=list)


class OptimizedRoute(BaseModel):
    """Orders in visiting order; stops without coordinates are appended at the end."""
    orders: List[MatchedOrder] = Field(default_factory=list)
    optimized_indexes: List[int] = Field(default_factory=list)
    distance_meters: Optional[int] = None
    duration: Optional[str] = None
    maps_links: List[str] = Field(default_factory=list)


class RouteCreate(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1, description="Orders in stop sequence")
    driver_id: UUID = Field(..., description="Profile with role 'driver'")
    name: Optional[str] = Field(None, description="Defaults to 'Ruta <dd-mm-YYYY>'")


class RouteSummary(BaseModel):
    id: UUID
    name: str
    driver_id: UUID
    driver_email: Optional[str] = None
    status: str
    order_count: int = 0
    created_at: datetime


class RouteStop(BaseModel):
    item_id: UUID
    sequence_order: int
    status: str
    order_id: UUID
    folio: Optional[int] = None
    client_name: str
    client_address: Optional[str] = None
    client_phone: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None


class RouteDetail(RouteSummary):
    stops: List[RouteStop] = Field(default_factory=list)
    maps_links: List[str] = Field(default_factory=list)


class StartDispatchRequest(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)


class StopUpdate(BaseModel):
    status: Literal["delivered", "failed"]
    notes: Optional[str] = None
