from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

OrderStatus = Literal["pending", "approved", "rejected"]


class QuotationItemIn(BaseModel):
    code: Optional[str] = Field(None, description="Product code")
    detail: str = Field(..., min_length=1, description="Product description")
    sub_detail: Optional[str] = Field(None)
    qty: float = Field(..., gt=0)
    unit: Optional[str] = Field("UN")
    price: float = Field(..., ge=0, description="Unit price (CLP)")
    discount: float = Field(0, ge=0, le=100, description="Discount percentage")


class QuotationCreate(BaseModel):
    client_id: UUID
    visit_id: Optional[UUID] = Field(None, description="Visit the quotation was taken in; None for digital orders")
    payment_terms: Optional[str] = Field(
        None, description='Free text or JSON such as {"type": "CREDITO", "days": 30}'
    )
    comments: Optional[str] = None
    items: List[QuotationItemIn] = Field(..., min_length=1)


class QuotationItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    line_no: int
    code: Optional[str] = None
    detail: str
    sub_detail: Optional[str] = None
    qty: float
    unit: Optional[str] = None
    price: float
    discount: float
    total: float


class QuotationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    folio: int
    client_id: UUID
    user_id: Optional[UUID] = None
    visit_id: Optional[UUID] = None
    route_id: Optional[UUID] = None
    status: str
    delivery_status: str
    order_date: Optional[date] = None
    expiry_date: Optional[date] = None
    payment_terms: Optional[str] = None
    comments: Optional[str] = None
    subtotal: float
    tax: float
    total_amount: float
    created_at: datetime
    items: List[QuotationItemRead] = Field(default_factory=list)


class QuotationStatusUpdate(BaseModel):
    status: OrderStatus


class QuotationEmailRequest(BaseModel):
    """Send the quotation PDF through the caller's Gmail account."""
    to: Optional[str] = Field(None, description="Recipient; defaults to the client's e-mail")
    subject: Optional[str] = None
    body: Optional[str] = None
