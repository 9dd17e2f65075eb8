from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_session, require_permission
from dental_crm.core.permissions import MANAGE_DISPATCH, MANAGE_USERS
from dental_crm.schemas.auth import ProfileInvite, ProfileRead, ProfileUpdate
from dental_crm.services.access import AccessService

router = APIRouter(prefix="/admin/users", tags=["Users"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ProfileRead],
    summary="List profiles",
    description="List and search profiles by e-mail or name.",
    dependencies=[Depends(require_permission(MANAGE_USERS))],
)
async def list_profiles(
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None, description="Matches e-mail or full name"),
    role: Optional[str] = Query(None),
    limit: int = 100,
    offset: int = 0,
) -> List[ProfileRead]:
    items = await AccessService(session).list_profiles(search=search, role=role, limit=limit, offset=offset)
    return [ProfileRead.model_validate(p) for p in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ProfileRead,
    status_code=201,
    summary="Invite profile",
    description="Create a profile without password; the person claims it when registering with the same e-mail.",
    dependencies=[Depends(require_permission(MANAGE_USERS))],
)
async def invite_profile(
    payload: ProfileInvite,
    session: AsyncSession = Depends(get_session),
) -> ProfileRead:
    return ProfileRead.model_validate(await AccessService(session).invite(payload))


# PUBLIC_INTERFACE
@router.patch(
    "/{profile_id}",
    response_model=ProfileRead,
    summary="Update profile",
    description="Change role, status, name or supervisor. The owner profile cannot be edited.",
    dependencies=[Depends(require_permission(MANAGE_USERS))],
)
async def update_profile(
    payload: ProfileUpdate,
    profile_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> ProfileRead:
    return ProfileRead.model_validate(await AccessService(session).update_profile(profile_id, payload))


# PUBLIC_INTERFACE
@router.get(
    "/drivers",
    response_model=List[ProfileRead],
    summary="List drivers",
    description="Profiles with role 'driver', for route assignment.",
    dependencies=[Depends(require_permission(MANAGE_DISPATCH, MANAGE_USERS))],
)
async def list_drivers(session: AsyncSession = Depends(get_session)) -> List[ProfileRead]:
    return [ProfileRead.model_validate(p) for p in await AccessService(session).list_drivers()]
