from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.core.config import get_settings
from fleetcomply.domain.models import ApiKey, User
from fleetcomply.persistence.db import get_session
from fleetcomply.persistence.repos import users as users_repo
from fleetcomply.services.auth.api_keys import hash_api_key
from fleetcomply.services.authz.gateway import Identity


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Authenticated caller; role comes from the user row, never from the request.
    user_id: str
    role: str
    api_key_id: str
    auth_method: str = "api_key"

    @property
    def identity(self) -> Identity:
        return Identity(user_id=self.user_id, role=self.role)


def _auth_error(message: str) -> HTTPException:
    # Normalize auth errors for clients without leaking internal details.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def _principal_from_dev_headers(request: Request, db: AsyncSession) -> Principal:
    # Local development only: trust X-User-Id when auth is switched off.
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise _auth_error("X-User-Id header is required when auth is disabled")
    user = await users_repo.get_user(db, user_id)
    if user is None or not user.is_active:
        raise _auth_error("Unknown or inactive user")
    return Principal(user_id=user.id, role=user.role, api_key_id="dev-bypass", auth_method="dev_bypass")


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    settings = get_settings()
    if not settings.auth_enabled:
        return await _principal_from_dev_headers(request, db)
    bearer_token = _parse_bearer_token(request.headers.get(settings.auth_api_key_header))
    if not bearer_token:
        raise _auth_error("Missing API key")

    try:
        result = await db.execute(
            select(ApiKey, User)
            .join(User, ApiKey.user_id == User.id)
            .where(ApiKey.key_hash == hash_api_key(bearer_token))
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "AUTH_UNAVAILABLE", "message": "Authentication unavailable"},
        ) from exc
    row = result.first()
    if row is None:
        raise _auth_error("Invalid API key")
    api_key, user = row
    if api_key.revoked_at is not None or not user.is_active:
        logger.info("auth_rejected api_key_id=%s reason=revoked_or_inactive", api_key.id)
        raise _auth_error("API key is revoked or inactive")
    if api_key.expires_at is not None and _as_utc(api_key.expires_at) <= datetime.now(timezone.utc):
        logger.info("auth_rejected api_key_id=%s reason=expired", api_key.id)
        raise _auth_error("API key has expired")
    return Principal(user_id=user.id, role=user.role, api_key_id=api_key.id)


def require_roles(*roles: str):
    # Dependency factory to enforce role membership at the route level.
    allowed = {getattr(role, "value", role) for role in roles}

    async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            logger.info(
                "role_forbidden user_id=%s role=%s allowed=%s",
                principal.user_id,
                principal.role,
                ",".join(sorted(allowed)),
            )
            raise _forbidden_error("Insufficient role for this operation")
        return principal

    return _dependency
