"""Common FastAPI dependencies."""
from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.core import jwt
from shortlink.core.config import get_settings
from shortlink.core.database import get_db_session, get_session_factory
from shortlink.core.errors import UnauthorizedError
from shortlink.models.user import User, UserRole, UserStatus

DBSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "unauthorized", "message": "Missing credentials."}},
        )
    return auth_header.split(" ", 1)[1]


async def _resolve_user(
    request: Request,
    session: AsyncSession,
    *,
    require_admin: bool,
) -> User:
    raw_token = _extract_bearer_token(request)
    try:
        payload = jwt.decode_token(raw_token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "invalid_token", "message": "Invalid or expired token."}},
        ) from exc

    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "invalid_token", "message": "Invalid token payload."}},
        )

    stmt = select(User).where(User.id == int(user_id))
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "user_not_found", "message": "User not found."}},
        )

    token_version = payload.get("token_version")
    if token_version is None or token_version != user.token_version:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "token_revoked", "message": "Token has been revoked."}},
        )

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "inactive_user", "message": "Account is not active."}},
        )

    if require_admin and user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "forbidden", "message": "Admin privileges required."}},
        )

    request.state.user = user
    request.state.user_id = user.id
    request.state.user_role = user.role.value
    return user


async def require_admin_active_user(request: Request, session: DBSession) -> User:
    """Dependency that enforces active admin access."""

    return await _resolve_user(request, session, require_admin=True)


CurrentAdmin = Annotated[User, Depends(require_admin_active_user)]


def require_cron_secret(request: Request) -> None:
    """Authenticate the external scheduler by its shared secret."""

    settings = get_settings()
    expected = settings.cron_secret.get_secret_value() if settings.cron_secret else ""
    provided = request.headers.get("Authorization", "")
    if not expected or not secrets.compare_digest(provided.encode(), f"Bearer {expected}".encode()):
        logger.bind(event="cron.auth", path=request.url.path, has_header=bool(provided)).warning(
            "cron_authentication_failed"
        )
        raise UnauthorizedError("Invalid scheduler credentials.")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"
