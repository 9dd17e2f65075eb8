from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

ProfileStatus = Literal["pending", "active", "suspended"]


class TokenPair(BaseModel):
    """Access and refresh tokens."""
    token_type: str = Field("bearer", description="Token type, typically 'bearer'")
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")


class RefreshRequest(BaseModel):
    """Request to refresh an access token."""
    refresh_token: str = Field(..., description="Refresh token")


class RegisterRequest(BaseModel):
    """
    Registration details. An invited profile with the same e-mail is claimed;
    otherwise a new seller profile is created.
    """
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=6, description="User password")
    full_name: Optional[str] = Field(None, description="Full name")


class ProfileRead(BaseModel):
    """Profile read model."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Profile ID")
    email: str = Field(..., description="Login e-mail")
    full_name: Optional[str] = Field(None)
    role: str = Field(..., description="Role name")
    status: str = Field(..., description="pending | active | suspended")
    supervisor_id: Optional[UUID] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")


class AccessRead(BaseModel):
    """Effective access of the caller, including impersonation state."""
    profile: ProfileRead
    real_profile: ProfileRead
    real_role: Optional[str] = Field(None, description="Role of the authenticated caller")
    is_impersonating: bool = Field(False)
    permissions: List[str] = Field(default_factory=list)
    is_manager: bool = False
    is_chief: bool = False
    is_admin_ops: bool = False
    is_seller: bool = False
    is_driver: bool = False
    is_supervisor: bool = False
    can_impersonate: bool = False
    can_upload_data: bool = False
    can_view_metas: bool = False


class ProfileInvite(BaseModel):
    """Admin invite payload: the profile is created without a password."""
    email: EmailStr = Field(..., description="Email")
    full_name: Optional[str] = Field(None)
    role: str = Field("seller", description="Role name")
    supervisor_id: Optional[UUID] = Field(None)


class ProfileUpdate(BaseModel):
    """Admin update payload."""
    full_name: Optional[str] = Field(None)
    role: Optional[str] = Field(None)
    status: Optional[ProfileStatus] = Field(None)
    supervisor_id: Optional[UUID] = Field(None)


class RolePermissionsRead(BaseModel):
    """Permission codes of a role and whether they come from the stored matrix."""
    role: str
    permissions: List[str] = Field(default_factory=list)
    stored: bool = Field(False, description="False when the built-in defaults apply")


class RolePermissionsUpdate(BaseModel):
    permissions: List[str] = Field(default_factory=list, description="Permission codes for the role")
