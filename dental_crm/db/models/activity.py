from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dental_crm.db.base import Base, UUIDPkMixin, TimestampMixin


class Goal(UUIDPkMixin, TimestampMixin, Base):
    """Monthly sales target of a seller."""
    __tablename__ = "goals"
    __table_args__ = (
        UniqueConstraint("user_id", "year", "month", name="uq_goals_user_period"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    target_amount: Mapped[float] = mapped_column(Float, nullable=False)
    commission_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.01, server_default="0.01")


class Task(UUIDPkMixin, TimestampMixin, Base):
    """Agenda task, optionally tied to a client."""
    __tablename__ = "tasks"

    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium", server_default="medium")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class CallLog(UUIDPkMixin, TimestampMixin, Base):
    """Phone call registered by a seller."""
    __tablename__ = "call_logs"

    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="completed", server_default="completed")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class EmailLog(UUIDPkMixin, TimestampMixin, Base):
    """E-mail sent through Gmail on behalf of a seller."""
    __tablename__ = "email_logs"

    user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    recipient: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gmail_message_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
