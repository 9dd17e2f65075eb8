from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_session
from dental_crm.core.permissions import AccessContext
from dental_crm.core.security import REFRESH, create_access_token, create_refresh_token, decode_token
from dental_crm.schemas.auth import AccessRead, ProfileRead, RefreshRequest, RegisterRequest, TokenPair
from dental_crm.schemas.common import MessageResponse
from dental_crm.services.access import AccessService, access_to_read
from dental_crm.services.base import ForbiddenError

router = APIRouter(prefix="/auth", tags=["Auth"])


def _issue_tokens(profile) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(subject=str(profile.id), role=profile.role),
        refresh_token=create_refresh_token(subject=str(profile.id)),
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=ProfileRead,
    summary="Register user",
    description="Set a password for an invited profile, or create a new active seller profile.",
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> ProfileRead:
    profile = await AccessService(session).register(payload.email, payload.password, payload.full_name)
    return ProfileRead.model_validate(profile)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate using OAuth2 password form and receive access/refresh tokens.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    """Authenticate a profile by e-mail and password. Pending and suspended profiles are refused."""
    try:
        profile = await AccessService(session).authenticate(form_data.username, form_data.password)
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)
    return _issue_tokens(profile)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new access token from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenPair:
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token, expected_type=REFRESH)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    try:
        profile = await AccessService(session).get_active_profile(UUID(claims.get("sub")))
    except (ForbiddenError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return _issue_tokens(profile)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Stateless logout. Clients should discard tokens. No server state maintained.",
)
async def logout() -> MessageResponse:
    return MessageResponse(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=AccessRead,
    summary="Read current access",
    description=(
        "Return the effective profile, its permission codes and role flags. "
        "With X-Impersonate-Email the impersonated profile is effective and the real role is reported."
    ),
)
async def read_current_access(ctx: AccessContext = Depends(get_access_context)) -> AccessRead:
    return access_to_read(ctx)
