from __future__ import annotations

from typing import Optional
from sqlalchemy import Text, Float, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dental_crm.db.base import Base, UUIDPkMixin, TimestampMixin


class Client(UUIDPkMixin, TimestampMixin, Base):
    """Customer (clinic, dentist or laboratory) owned by the seller who created it."""
    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("rut", name="uq_clients_rut"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    rut: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comuna: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    zone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    giro: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purchase_contact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    created_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
