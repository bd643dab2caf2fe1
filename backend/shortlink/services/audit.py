"""Admin audit trail helpers."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from shortlink.core.database import get_session_factory
from shortlink.models.admin_action import AdminAction, AdminActionType, AdminTargetType
from shortlink.models.user import User


def build_admin_action(
    *,
    admin_id: int | None,
    action_type: AdminActionType,
    target_id: int,
    target_email: str | None,
    reason: str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    target_type: AdminTargetType = AdminTargetType.USER,
) -> AdminAction:
    return AdminAction(
        admin_id=admin_id,
        action_type=action_type.value,
        target_type=target_type.value,
        target_id=target_id,
        target_email=target_email,
        reason=reason,
        details=details,
        ip_address=ip_address,
    )


async def record_admin_action(
    action: AdminAction,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    """Commit an audit entry in its own session; a failure is logged, never raised.

    Called after the primary transition has committed so that a broken audit
    write cannot undo it.
    """

    factory = session_factory or get_session_factory()

    log = logger.bind(
        event="admin.action",
        admin_id=action.admin_id,
        action=action.action_type,
        target_type=action.target_type,
        target_id=action.target_id,
    )
    try:
        async with factory() as session, session.begin():
            session.add(action)
    except SQLAlchemyError:
        log.exception("admin_action_write_failed")
        return False
    log.info("admin_action_recorded")
    return True


@dataclass(slots=True)
class AdminActionFilters:
    action_type: str | None = None
    target_type: str | None = None
    admin_id: int | None = None
    target_id: int | None = None
    start: dt.datetime | None = None
    end: dt.datetime | None = None


@dataclass(slots=True)
class AdminActionRow:
    action: AdminAction
    admin_name: str | None
    admin_email: str | None


async def list_admin_actions(
    session: AsyncSession,
    filters: AdminActionFilters,
    *,
    limit: int,
    offset: int,
) -> list[AdminActionRow]:
    """Return audit entries newest first, joined with the acting admin."""

    admin = aliased(User)
    stmt = select(AdminAction, admin.name, admin.email).outerjoin(admin, AdminAction.admin_id == admin.id)
    if filters.action_type:
        stmt = stmt.where(AdminAction.action_type == filters.action_type)
    if filters.target_type:
        stmt = stmt.where(AdminAction.target_type == filters.target_type)
    if filters.admin_id is not None:
        stmt = stmt.where(AdminAction.admin_id == filters.admin_id)
    if filters.target_id is not None:
        stmt = stmt.where(AdminAction.target_id == filters.target_id)
    if filters.start is not None:
        stmt = stmt.where(AdminAction.created_at >= filters.start)
    if filters.end is not None:
        stmt = stmt.where(AdminAction.created_at <= filters.end)
    stmt = stmt.order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).offset(offset).limit(limit)

    result = await session.execute(stmt)
    return [AdminActionRow(action=row[0], admin_name=row[1], admin_email=row[2]) for row in result.all()]


__all__ = [
    "AdminActionFilters",
    "AdminActionRow",
    "build_admin_action",
    "list_admin_actions",
    "record_admin_action",
]
