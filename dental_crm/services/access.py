from __future__ import annotations

import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import (
    ALL_PERMISSIONS,
    ALL_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_SELLER,
    AccessContext,
    normalize_role,
)
from dental_crm.core.security import get_password_hash, verify_password
from dental_crm.core.settings import get_app_settings
from dental_crm.db.models.profiles import Profile
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.auth import AccessRead, ProfileInvite, ProfileRead, ProfileUpdate, RolePermissionsRead
from dental_crm.services.base import BaseService, ConflictError, ForbiddenError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def access_to_read(ctx: AccessContext) -> AccessRead:
    """Serialize an AccessContext with its derived flags."""
    return AccessRead(
        profile=ProfileRead.model_validate(ctx.profile),
        real_profile=ProfileRead.model_validate(ctx.real_profile),
        real_role=ctx.real_role,
        is_impersonating=ctx.is_impersonating,
        permissions=sorted(ctx.permissions),
        is_manager=ctx.is_manager,
        is_chief=ctx.is_chief,
        is_admin_ops=ctx.is_admin_ops,
        is_seller=ctx.is_seller,
        is_driver=ctx.is_driver,
        is_supervisor=ctx.is_supervisor,
        can_impersonate=ctx.can_impersonate,
        can_upload_data=ctx.can_upload_data,
        can_view_metas=ctx.can_view_metas,
    )


class AccessService(BaseService):
    """Profiles, credentials and the role/permission matrix."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ProfileRepository(session)
        self.settings = get_app_settings()

    def _is_owner(self, profile: Profile) -> bool:
        owner = self.settings.owner_email
        return bool(owner) and profile.email.strip().lower() == owner

    # PUBLIC_INTERFACE
    async def register(self, email: str, password: str, full_name: Optional[str]) -> Profile:
        """
        Resolve the profile of a newly registering user.

        An invited profile (same e-mail, no password yet) is claimed and keeps
        its role and status; otherwise a new active seller is created.
        """
        existing = await self.repo.get_by_email(email)
        if existing is not None:
            if existing.hashed_password:
                raise ConflictError("A user with this email already exists")
            existing.hashed_password = get_password_hash(password)
            if full_name and not existing.full_name:
                existing.full_name = full_name
            await self.repo.commit()
            logger.info("Invited profile claimed: %s", existing.email)
            return existing

        profile = await self.repo.create(
            email=email,
            full_name=full_name,
            role=ROLE_SELLER,
            status="active",
            hashed_password=get_password_hash(password),
        )
        await self.repo.commit()
        logger.info("Profile registered: %s", profile.email)
        return profile

    # PUBLIC_INTERFACE
    async def authenticate(self, email: str, password: str) -> Profile:
        profile = await self.repo.get_by_email(email)
        if profile is None or not verify_password(password, profile.hashed_password):
            raise ForbiddenError("Invalid credentials")
        if profile.status != "active":
            raise ForbiddenError(f"Profile is {profile.status}")
        return profile

    # PUBLIC_INTERFACE
    async def get_active_profile(self, profile_id: UUID) -> Profile:
        profile = await self.repo.get_by_id(profile_id)
        if profile is None or profile.status != "active":
            raise ForbiddenError("User not found or inactive")
        return profile

    # Users screen

    # PUBLIC_INTERFACE
    async def list_profiles(
        self, search: Optional[str] = None, role: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[Profile]:
        return await self.repo.list_profiles(
            search=search, role=normalize_role(role) or None, limit=limit, offset=offset
        )

    # PUBLIC_INTERFACE
    async def invite(self, payload: ProfileInvite) -> Profile:
        role = normalize_role(payload.role)
        if role not in ALL_ROLES:
            raise ValidationFailed(f"Unknown role: {payload.role}")
        if await self.repo.get_by_email(payload.email):
            raise ConflictError("A user with this email already exists")
        profile = await self.repo.create(
            email=payload.email,
            full_name=payload.full_name,
            role=role,
            status="active",
            supervisor_id=payload.supervisor_id,
        )
        await self.repo.commit()
        return profile

    # PUBLIC_INTERFACE
    async def update_profile(self, profile_id: UUID, payload: ProfileUpdate) -> Profile:
        profile = await self.repo.get_by_id(profile_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        if self._is_owner(profile):
            raise ForbiddenError("The owner profile cannot be edited")

        if payload.role is not None:
            role = normalize_role(payload.role)
            if role not in ALL_ROLES:
                raise ValidationFailed(f"Unknown role: {payload.role}")
            profile.role = role
        if payload.status is not None:
            profile.status = payload.status
        if payload.full_name is not None:
            profile.full_name = payload.full_name
        if payload.supervisor_id is not None:
            if payload.supervisor_id == profile.id:
                raise ValidationFailed("A profile cannot supervise itself")
            profile.supervisor_id = payload.supervisor_id
        await self.repo.commit()
        await self.repo.refresh(profile)
        return profile

    # PUBLIC_INTERFACE
    async def list_drivers(self) -> List[Profile]:
        return await self.repo.list_profiles(role="driver", limit=500)

    # Role matrix

    # PUBLIC_INTERFACE
    async def role_matrix(self) -> List[RolePermissionsRead]:
        """Every role with its stored codes, or the defaults when none are stored."""
        stored: Dict[str, List[str]] = {}
        for row in await self.repo.list_matrix():
            stored.setdefault(normalize_role(row.role), []).append(row.permission)
        result = []
        for role in ALL_ROLES:
            codes = stored.get(role)
            result.append(
                RolePermissionsRead(
                    role=role,
                    permissions=codes or list(DEFAULT_ROLE_PERMISSIONS.get(role, [])),
                    stored=bool(codes),
                )
            )
        return result

    # PUBLIC_INTERFACE
    async def set_role_permissions(self, role: str, codes: List[str]) -> RolePermissionsRead:
        role = normalize_role(role)
        if role not in ALL_ROLES:
            raise ValidationFailed(f"Unknown role: {role}")
        unknown = sorted(set(codes) - set(ALL_PERMISSIONS))
        if unknown:
            raise ValidationFailed("Unknown permission codes", details=unknown)
        unique = sorted(set(codes))
        await self.repo.replace_role_permissions(role, unique)
        await self.repo.commit()
        logger.info("Permissions of role %s replaced: %s", role, unique)
        return RolePermissionsRead(
            role=role,
            permissions=unique or list(DEFAULT_ROLE_PERMISSIONS.get(role, [])),
            stored=bool(unique),
        )
