from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.logging import acting_as_var, user_id_var
from dental_crm.core.permissions import AccessContext, MANAGE_USERS, normalize_role, resolve_permissions
from dental_crm.core.security import access_token_subject
from dental_crm.core.settings import get_app_settings
from dental_crm.db.session import get_async_session
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.services.google import GoogleApiClient

logger = logging.getLogger(__name__)

# OAuth2 bearer (used by docs); login endpoint path referenced here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# PUBLIC_INTERFACE
async def get_session(
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession for the request."""
    yield session_dep


# PUBLIC_INTERFACE
async def get_current_profile(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
):
    """
    Resolve the authenticated profile from the Authorization bearer token.
    Suspended and pending profiles are rejected.
    """
    subject = access_token_subject(token)
    try:
        profile_id = UUID(subject) if subject else None
    except ValueError:
        profile_id = None
    if profile_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    repo = ProfileRepository(session)
    profile = await repo.get_by_id(profile_id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if profile.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Profile is {profile.status}")
    user_id_var.set(str(profile.id))
    return profile


async def _load_permissions(repo: ProfileRepository, profile) -> frozenset:
    settings = get_app_settings()
    role = normalize_role(profile.role)
    try:
        # savepoint: a failed read must not abort the request transaction
        async with repo.session.begin_nested():
            stored = await repo.list_role_permissions(role)
    except Exception:
        # An unreadable matrix falls back to the built-in defaults
        logger.exception("Failed to read role_permissions for role=%s", role)
        stored = None
    return frozenset(
        resolve_permissions(role, stored, email=profile.email, owner_email=settings.owner_email)
    )


# PUBLIC_INTERFACE
async def get_access_context(
    profile=Depends(get_current_profile),
    session: AsyncSession = Depends(get_session),
    impersonate_email: Optional[str] = Header(default=None, alias="X-Impersonate-Email"),
) -> AccessContext:
    """
    Build the authorization context of the request.

    When ``X-Impersonate-Email`` is sent by a caller holding MANAGE_USERS,
    the target profile and its permissions become effective for every check.
    """
    repo = ProfileRepository(session)
    real_permissions = await _load_permissions(repo, profile)

    if not impersonate_email or impersonate_email.strip().lower() == profile.email.lower():
        return AccessContext(profile=profile, real_profile=profile, permissions=real_permissions)

    if MANAGE_USERS not in real_permissions:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Impersonation not allowed")

    target = await repo.get_by_email(impersonate_email)
    if not target:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Impersonated profile not found")

    acting_as_var.set(str(target.id))
    logger.info("Profile %s acting as %s", profile.email, target.email)
    return AccessContext(
        profile=target,
        real_profile=profile,
        permissions=await _load_permissions(repo, target),
    )


# PUBLIC_INTERFACE
def require_permission(*codes: str):
    """
    Create a dependency that requires the effective profile to hold at least
    one of the given permission codes. Returns the AccessContext.
    """

    async def _dep(ctx: AccessContext = Depends(get_access_context)) -> AccessContext:
        if not any(ctx.has_permission(code) for code in codes):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return ctx

    return _dep


# PUBLIC_INTERFACE
def get_google_client() -> GoogleApiClient:
    """Google API client; overridden in tests with a MockTransport-backed one."""
    return GoogleApiClient()


# PUBLIC_INTERFACE
async def get_google_token(
    token: Optional[str] = Header(default=None, alias="X-Google-Access-Token"),
) -> str:
    """Google OAuth access token of the caller, required for Gmail and Calendar."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Google-Access-Token header is required.",
        )
    return token
