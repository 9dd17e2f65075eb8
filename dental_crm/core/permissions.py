"""
Role presets and permission codes.

Permissions are the unit of authorization. A role maps to a list of codes
stored in the ``role_permissions`` table; the presets below are used when the
table holds nothing for a role.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

UPLOAD_EXCEL = "UPLOAD_EXCEL"
MANAGE_INVENTORY = "MANAGE_INVENTORY"
MANAGE_PRICING = "MANAGE_PRICING"
VIEW_METAS = "VIEW_METAS"
MANAGE_METAS = "MANAGE_METAS"
MANAGE_DISPATCH = "MANAGE_DISPATCH"
EXECUTE_DELIVERY = "EXECUTE_DELIVERY"
MANAGE_USERS = "MANAGE_USERS"
MANAGE_PERMISSIONS = "MANAGE_PERMISSIONS"
VIEW_ALL_CLIENTS = "VIEW_ALL_CLIENTS"
MANAGE_CLIENTS = "MANAGE_CLIENTS"
IMPORT_CLIENTS = "IMPORT_CLIENTS"
VIEW_TEAM_STATS = "VIEW_TEAM_STATS"
VIEW_ALL_TEAM_STATS = "VIEW_ALL_TEAM_STATS"

ALL_PERMISSIONS: List[str] = [
    UPLOAD_EXCEL,
    MANAGE_INVENTORY,
    MANAGE_PRICING,
    VIEW_METAS,
    MANAGE_METAS,
    MANAGE_DISPATCH,
    EXECUTE_DELIVERY,
    MANAGE_USERS,
    MANAGE_PERMISSIONS,
    VIEW_ALL_CLIENTS,
    MANAGE_CLIENTS,
    IMPORT_CLIENTS,
    VIEW_TEAM_STATS,
    VIEW_ALL_TEAM_STATS,
]

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CHIEF = "jefe"
ROLE_ADMIN_OPS = "administrativo"
ROLE_SELLER = "seller"
ROLE_DRIVER = "driver"

ALL_ROLES: List[str] = [ROLE_ADMIN, ROLE_MANAGER, ROLE_CHIEF, ROLE_ADMIN_OPS, ROLE_SELLER, ROLE_DRIVER]

DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    ROLE_MANAGER: list(ALL_PERMISSIONS),
    ROLE_ADMIN: list(ALL_PERMISSIONS),
    ROLE_CHIEF: [MANAGE_INVENTORY, VIEW_METAS, MANAGE_DISPATCH, VIEW_ALL_CLIENTS, VIEW_TEAM_STATS],
    ROLE_ADMIN_OPS: [UPLOAD_EXCEL, MANAGE_INVENTORY, MANAGE_PRICING, MANAGE_DISPATCH],
    ROLE_SELLER: [VIEW_METAS],
    ROLE_DRIVER: [EXECUTE_DELIVERY],
}


# PUBLIC_INTERFACE
def normalize_role(role: Optional[str]) -> str:
    """Trim and lower-case a role name; None becomes an empty string."""
    return (role or "").strip().lower()


# PUBLIC_INTERFACE
def resolve_permissions(
    role: Optional[str],
    stored: Optional[Iterable[str]],
    *,
    email: Optional[str] = None,
    owner_email: Optional[str] = None,
) -> List[str]:
    """
    Resolve the permission list of a role.

    Parameters:
        role: role name of the effective profile
        stored: codes read from role_permissions for the role, or None when the read failed
        email: e-mail of the effective profile
        owner_email: configured owner e-mail, which always gets the admin set
    """
    if owner_email and email and email.strip().lower() == owner_email:
        return list(DEFAULT_ROLE_PERMISSIONS[ROLE_ADMIN])

    codes = list(stored or [])
    if codes:
        return codes
    return list(DEFAULT_ROLE_PERMISSIONS.get(normalize_role(role), []))


@dataclass(frozen=True)
class AccessContext:
    """
    Authorization view of a request.

    ``profile`` is the effective profile (the impersonated one when
    impersonation is active); ``real_profile`` is the authenticated caller.
    """

    profile: object
    real_profile: object
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def profile_id(self):
        return getattr(self.profile, "id")

    @property
    def effective_role(self) -> str:
        return normalize_role(getattr(self.profile, "role", None))

    @property
    def real_role(self) -> Optional[str]:
        return normalize_role(getattr(self.real_profile, "role", None)) or None

    @property
    def is_impersonating(self) -> bool:
        return self.profile is not self.real_profile

    def has_permission(self, code: str) -> bool:
        return code in self.permissions

    @property
    def is_manager(self) -> bool:
        return self.effective_role in (ROLE_MANAGER, ROLE_ADMIN)

    @property
    def is_chief(self) -> bool:
        return self.effective_role == ROLE_CHIEF

    @property
    def is_admin_ops(self) -> bool:
        return self.effective_role == ROLE_ADMIN_OPS

    @property
    def is_seller(self) -> bool:
        return self.effective_role == ROLE_SELLER

    @property
    def is_driver(self) -> bool:
        return self.effective_role == ROLE_DRIVER

    @property
    def is_supervisor(self) -> bool:
        return VIEW_TEAM_STATS in self.permissions

    @property
    def can_impersonate(self) -> bool:
        return MANAGE_USERS in self.permissions

    @property
    def can_upload_data(self) -> bool:
        return UPLOAD_EXCEL in self.permissions

    @property
    def can_view_metas(self) -> bool:
        return VIEW_METAS in self.permissions
