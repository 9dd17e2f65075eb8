from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_crm.db.base import Base, UUIDPkMixin, TimestampMixin


class DeliveryRoute(UUIDPkMixin, TimestampMixin, Base):
    """Delivery route assigned to a driver."""
    __tablename__ = "delivery_routes"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    driver_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    created_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    items: Mapped[list["RouteItem"]] = relationship(
        "RouteItem",
        primaryjoin="DeliveryRoute.id==RouteItem.route_id",
        order_by="RouteItem.sequence_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class RouteItem(UUIDPkMixin, TimestampMixin, Base):
    """Stop of a route; one order per stop."""
    __tablename__ = "route_items"
    __table_args__ = (
        UniqueConstraint("route_id", "sequence_order", name="uq_route_items_route_sequence"),
    )

    route_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("delivery_routes.id", ondelete="CASCADE"), nullable=False
    )
    order_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
