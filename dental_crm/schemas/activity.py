from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Literal["low", "medium", "high"] = "medium"
    client_id: Optional[UUID] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: str
    completed: bool
    client_id: Optional[UUID] = None
    created_at: datetime


class CallCreate(BaseModel):
    client_id: UUID
    status: str = Field("completed")
    notes: Optional[str] = None


class CallRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    status: str
    notes: Optional[str] = None
    created_at: datetime


class EmailLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: Optional[UUID] = None
    recipient: str
    subject: str
    snippet: Optional[str] = None
    gmail_message_id: Optional[str] = None
    created_at: datetime


class GoalUpsert(BaseModel):
    user_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    target_amount: float = Field(..., ge=0)
    commission_rate: Optional[float] = Field(None, ge=0, le=1)


class GoalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    year: int
    month: int
    target_amount: float
    commission_rate: float


class CalendarEventCreate(BaseModel):
    summary: str = Field(..., min_length=1)
    start: datetime = Field(..., description="Event start; the event lasts one hour")
    description: Optional[str] = None
    location: Optional[str] = None


class CalendarEventRead(BaseModel):
    id: Optional[str] = None
    summary: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    html_link: Optional[str] = None
