from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, or_, select

from dental_crm.db.models.profiles import Profile, RolePermission
from .base import BaseRepository


class ProfileRepository(BaseRepository):
    """Repository for profiles and the role/permission matrix."""

    # Profiles
    async def get_by_email(self, email: str) -> Optional[Profile]:
        stmt = select(Profile).where(func.lower(Profile.email) == email.strip().lower())
        return await self.scalar_one_or_none(stmt)

    async def get_by_id(self, profile_id: UUID) -> Optional[Profile]:
        stmt = select(Profile).where(Profile.id == profile_id)
        return await self.scalar_one_or_none(stmt)

    async def list_profiles(
        self,
        search: Optional[str] = None,
        role: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Profile]:
        stmt = select(Profile)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Profile.email.ilike(pattern), Profile.full_name.ilike(pattern)))
        if role:
            stmt = stmt.where(Profile.role == role)
        stmt = stmt.order_by(Profile.full_name.nullslast(), Profile.email).offset(offset).limit(limit)
        return await self.all(stmt)

    async def list_all(self) -> List[Profile]:
        return await self.all(select(Profile))

    async def create(
        self,
        *,
        email: str,
        full_name: Optional[str],
        role: str,
        status: str,
        hashed_password: Optional[str] = None,
        supervisor_id: Optional[UUID] = None,
    ) -> Profile:
        profile = Profile(
            email=email.strip().lower(),
            full_name=full_name,
            role=role,
            status=status,
            hashed_password=hashed_password,
            supervisor_id=supervisor_id,
        )
        await self.persist(profile)
        return profile

    # Role permissions
    async def list_role_permissions(self, role: str) -> List[str]:
        stmt = select(RolePermission.permission).where(RolePermission.role == role).order_by(RolePermission.permission)
        return await self.all(stmt)

    async def list_matrix(self) -> List[RolePermission]:
        stmt = select(RolePermission).order_by(RolePermission.role, RolePermission.permission)
        return await self.all(stmt)

    async def replace_role_permissions(self, role: str, codes: List[str]) -> None:
        await self.execute(delete(RolePermission).where(RolePermission.role == role))
        await self.add_all(RolePermission(role=role, permission=code) for code in codes)
        await self.flush()
