from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_session, require_permission
from dental_crm.core.permissions import ALL_PERMISSIONS, MANAGE_PERMISSIONS
from dental_crm.schemas.auth import RolePermissionsRead, RolePermissionsUpdate
from dental_crm.services.access import AccessService

router = APIRouter(prefix="/admin/roles", tags=["Roles"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[RolePermissionsRead],
    summary="Role/permission matrix",
    description="Every role with its permission codes; roles without stored rows report the built-in defaults.",
    dependencies=[Depends(require_permission(MANAGE_PERMISSIONS))],
)
async def list_role_permissions(session: AsyncSession = Depends(get_session)) -> List[RolePermissionsRead]:
    return await AccessService(session).role_matrix()


# PUBLIC_INTERFACE
@router.get(
    "/permissions",
    response_model=List[str],
    summary="Permission codes",
    dependencies=[Depends(require_permission(MANAGE_PERMISSIONS))],
)
async def list_permission_codes() -> List[str]:
    return list(ALL_PERMISSIONS)


# PUBLIC_INTERFACE
@router.put(
    "/{role}",
    response_model=RolePermissionsRead,
    summary="Replace role permissions",
    description="Replace the stored permission codes of a role. An empty list restores the defaults.",
    dependencies=[Depends(require_permission(MANAGE_PERMISSIONS))],
)
async def replace_role_permissions(
    payload: RolePermissionsUpdate,
    role: str = Path(..., description="Role name, case-insensitive"),
    session: AsyncSession = Depends(get_session),
) -> RolePermissionsRead:
    return await AccessService(session).set_role_permissions(role, payload.permissions)
