from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.core.jwt import create_access_token
from shortlink.models.admin_action import AdminAction
from shortlink.models.delete_request import DeleteRequest
from shortlink.models.link import Link
from shortlink.models.moderation import (
    AccountWarning,
    NoteCategory,
    UserNote,
    WarningCategory,
    WarningSeverity,
)
from shortlink.models.user import User, UserRole, UserStatus


async def create_user(
    session: AsyncSession,
    *,
    name: str,
    role: UserRole = UserRole.USER,
    status: UserStatus = UserStatus.ACTIVE,
) -> User:
    user = User(
        name=name,
        email=f"{name}-{uuid.uuid4().hex[:8]}@example.com",
        role=role,
        status=status,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_admin(session: AsyncSession, *, name: str) -> User:
    return await create_user(session, name=name, role=UserRole.ADMIN)


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), role=user.role.value, token_version=user.token_version)
    return {"Authorization": f"Bearer {token}"}


def cron_headers(secret: str = "test-cron-secret") -> dict[str, str]:
    return {"Authorization": f"Bearer {secret}"}


async def create_link(session: AsyncSession, *, user_id: int) -> Link:
    link = Link(
        user_id=user_id,
        slug=uuid.uuid4().hex[:10],
        original_url="https://example.com/some/long/path",
        title="Example",
    )
    session.add(link)
    await session.commit()
    await session.refresh(link)
    return link


async def create_note(session: AsyncSession, *, user_id: int, author_id: int | None) -> UserNote:
    note = UserNote(user_id=user_id, author_id=author_id, content="Repeated spam reports", category=NoteCategory.BEHAVIOR)
    session.add(note)
    await session.commit()
    await session.refresh(note)
    return note


async def create_warning(session: AsyncSession, *, user_id: int, author_id: int | None) -> AccountWarning:
    warning = AccountWarning(
        user_id=user_id,
        author_id=author_id,
        title="Spam links",
        description="Links pointing to known spam domains",
        severity=WarningSeverity.HIGH,
        category=WarningCategory.SPAM,
    )
    session.add(warning)
    await session.commit()
    await session.refresh(warning)
    return warning


async def fetch_request(session: AsyncSession, request_id: int) -> DeleteRequest:
    stmt = (
        select(DeleteRequest)
        .where(DeleteRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).unique().scalar_one()


async def fetch_actions(session: AsyncSession, *, target_id: int, action_type: str | None = None) -> list[AdminAction]:
    stmt = select(AdminAction).where(AdminAction.target_id == target_id)
    if action_type is not None:
        stmt = stmt.where(AdminAction.action_type == action_type)
    stmt = stmt.order_by(AdminAction.id.asc()).execution_options(populate_existing=True)
    return list((await session.execute(stmt)).scalars().all())


async def shift_request_times(
    session: AsyncSession,
    request_id: int,
    *,
    expires_at: dt.datetime | None = None,
    scheduled_deletion_at: dt.datetime | None = None,
) -> None:
    values: dict[str, dt.datetime] = {}
    if expires_at is not None:
        values["expires_at"] = expires_at
    if scheduled_deletion_at is not None:
        values["scheduled_deletion_at"] = scheduled_deletion_at
    await session.execute(update(DeleteRequest).where(DeleteRequest.id == request_id).values(**values))
    await session.commit()
