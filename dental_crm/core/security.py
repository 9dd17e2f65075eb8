"""
Password hashing and JWTs.

Two token types are issued: short-lived ``access`` tokens carrying the
profile id and role, and ``refresh`` tokens carrying only the profile id.
Every decode checks the ``type`` claim so one can never stand in for the other.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from dental_crm.core.settings import get_app_settings

ACCESS = "access"
REFRESH = "refresh"

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a password; invited profiles have no hash yet and never match."""
    if not hashed_password:
        return False
    return _pwd_context.verify(plain_password, hashed_password)


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    return _pwd_context.hash(password)


def _encode(subject: str, token_type: str, lifetime: timedelta, claims: Optional[Dict[str, Any]] = None) -> str:
    settings = get_app_settings()
    issued = datetime.now(tz=timezone.utc)
    payload: Dict[str, Any] = dict(claims or {})
    payload.update(sub=subject, type=token_type, iat=issued, exp=issued + lifetime)
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def create_access_token(subject: str, role: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    """Access token for a profile id, with its role as a claim for clients."""
    minutes = expires_minutes or get_app_settings().ACCESS_TOKEN_EXPIRE_MINUTES
    return _encode(subject, ACCESS, timedelta(minutes=minutes), {"role": role})


# PUBLIC_INTERFACE
def create_refresh_token(subject: str, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes or get_app_settings().REFRESH_TOKEN_EXPIRE_MINUTES
    return _encode(subject, REFRESH, timedelta(minutes=minutes))


# PUBLIC_INTERFACE
def decode_token(token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises JWTError when the token is invalid, has no subject, or is not of
    ``expected_type``.
    """
    settings = get_app_settings()
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if expected_type is not None and claims.get("type") != expected_type:
        raise JWTError(f"Expected a {expected_type} token")
    if not claims.get("sub"):
        raise JWTError("Token has no subject")
    return claims


# PUBLIC_INTERFACE
def access_token_subject(token: Optional[str]) -> Optional[str]:
    """Profile id of a valid access token, or None."""
    if not token:
        return None
    try:
        return decode_token(token, expected_type=ACCESS)["sub"]
    except JWTError:
        return None
