from __future__ import annotations

from datetime import date
from typing import Optional
from sqlalchemy import BigInteger, Date, Float, ForeignKey, Identity, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_crm.db.base import Base, UUIDPkMixin, TimestampMixin


class Order(UUIDPkMixin, TimestampMixin, Base):
    """Quotation header. Approved quotations become dispatchable orders."""
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("folio", name="uq_orders_folio"),
    )

    folio: Mapped[int] = mapped_column(BigInteger, Identity(start=1), nullable=False)
    client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    visit_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("visits.id", ondelete="SET NULL"), nullable=True
    )
    route_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_routes.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    delivery_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    order_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")
    tax: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        primaryjoin="Order.id==OrderItem.order_id",
        order_by="OrderItem.line_no",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OrderItem(UUIDPkMixin, TimestampMixin, Base):
    """Quotation line."""
    __tablename__ = "order_items"

    order_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    detail: Mapped[str] = mapped_column(Text, nullable=False)
    sub_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qty: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    discount: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")
    total: Mapped[float] = mapped_column(Float, nullable=False)
