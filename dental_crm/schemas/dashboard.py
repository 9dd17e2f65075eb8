from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ActivityEntry(BaseModel):
    """Entry of the combined activity feed (visit, digital order or call)."""
    type: str = Field(..., description="Visita | Pedido Digital | Llamada")
    time: datetime
    client_id: Optional[UUID] = None
    client_name: Optional[str] = None
    zone: Optional[str] = None
    status: Optional[str] = None


class SellerDayStats(BaseModel):
    handled_clients: int = 0
    effective_minutes: int = 0
    effective_hours: str = "0h 0m"
    zones: List[str] = Field(default_factory=list)
    recent_activity: List[ActivityEntry] = Field(default_factory=list)
    quotations_today: int = 0


class MonthlyProgress(BaseModel):
    goal: float = 0
    current_sales: float = 0
    commission_rate: float = 0.01
    commission: float = 0
    progress_percent: float = 0


class NeglectedClient(BaseModel):
    id: UUID
    name: str
    days_since_last_visit: int
    last_visit_date: Optional[datetime] = None


class TeamMemberSummary(BaseModel):
    id: UUID
    name: str
    role: str
    handled_clients: int = 0
    clients_created: int = 0
    new_client_names: List[str] = Field(default_factory=list)
    quote_amount: float = 0
    quote_count: int = 0
    hours: str = "0h 0m"
    zone: str = "N/A"
    monthly_goal: float = 0
    monthly_sales: float = 0
