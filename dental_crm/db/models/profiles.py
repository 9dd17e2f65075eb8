from __future__ import annotations

from typing import Optional
from sqlalchemy import Text, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dental_crm.db.base import Base, UUIDPkMixin, TimestampMixin


class Profile(UUIDPkMixin, TimestampMixin, Base):
    """Application user. Invited profiles have no password until they register."""
    __tablename__ = "profiles"
    __table_args__ = (
        UniqueConstraint("email", name="uq_profiles_email"),
    )

    email: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="seller", server_default="seller")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    supervisor_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    hashed_password: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class RolePermission(UUIDPkMixin, TimestampMixin, Base):
    """Permission code granted to a role name."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role", "permission", name="uq_role_permissions_role_permission"),
    )

    role: Mapped[str] = mapped_column(Text, nullable=False)
    permission: Mapped[str] = mapped_column(Text, nullable=False)
