"""Authentication utilities for the Nimmit backend."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from nimmit.users import Actor, UserRole

from .config import Settings, get_settings
from .database import Storage
from .logging_config import get_logger

logger = get_logger("nimmit.api.auth")

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "nimmit_auth"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    role: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for a user."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode = {
        "sub": user_id,
        "role": role,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Storage,
    request: Request,
) -> Actor:
    """Resolve the acting user from the bearer token or auth cookie.

    The role comes from the stored account, not from the token, so a role
    change takes effect without waiting for the token to expire.
    """
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        raise _unauthorized("Not authenticated - provide Authorization header or auth cookie")

    payload = decode_token(token, settings)
    user = storage.get_user(payload["sub"])
    if user is None or not user.is_active:
        logger.warning(f"Rejected token for unknown or inactive user | sub={payload['sub']}")
        raise _unauthorized("User not found or inactive")
    return user.as_actor()


CurrentUser = Annotated[Actor, Depends(get_current_user)]


async def get_admin_user(user: CurrentUser) -> Actor:
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


AdminUser = Annotated[Actor, Depends(get_admin_user)]


def has_valid_cron_secret(provided: str | None, settings: Settings) -> bool:
    if not provided or not settings.cron_secret:
        return False
    return secrets.compare_digest(provided, settings.cron_secret)


async def get_scheduler_or_admin(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Storage,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> Actor | None:
    """Allow either the scheduler (shared secret) or an admin token.

    Returns None for the scheduler, the admin actor otherwise.
    """
    if has_valid_cron_secret(x_cron_secret, settings):
        return None
    actor = await get_current_user(credentials, settings, storage, request)
    return await get_admin_user(actor)


SchedulerOrAdmin = Annotated[Actor | None, Depends(get_scheduler_or_admin)]
