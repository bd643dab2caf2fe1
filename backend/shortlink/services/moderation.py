"""Notes and warnings admins attach to user accounts."""
from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.core.errors import InvalidRequestError, NotFoundError
from shortlink.models.admin_action import AdminActionType
from shortlink.models.moderation import (
    AccountWarning,
    NoteCategory,
    UserNote,
    WarningCategory,
    WarningSeverity,
)
from shortlink.models.user import User
from shortlink.services.audit import build_admin_action, record_admin_action

MAX_NOTE_LENGTH = 2000
MAX_WARNING_TITLE_LENGTH = 200
MAX_WARNING_DESCRIPTION_LENGTH = 1000


async def _require_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", code="user_not_found")
    return user


async def add_note(
    session: AsyncSession,
    *,
    admin: User,
    user_id: int,
    content: str,
    category: NoteCategory,
    ip_address: str,
) -> UserNote:
    cleaned = content.strip()
    if not cleaned:
        raise InvalidRequestError("Note content is required.")
    if len(cleaned) > MAX_NOTE_LENGTH:
        raise InvalidRequestError(f"Note cannot exceed {MAX_NOTE_LENGTH} characters.")

    user = await _require_user(session, user_id)
    note = UserNote(user_id=user.id, author_id=admin.id, content=cleaned, category=category)
    session.add(note)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(note)

    await record_admin_action(
        build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.ADD_NOTE,
            target_id=user.id,
            target_email=user.email,
            details={"note_id": note.id, "category": category.value},
            ip_address=ip_address,
        )
    )
    logger.bind(event="admin.action", admin_id=admin.id, target_user_id=user.id, action="add_note").info(
        "admin_note_added"
    )
    return note


async def list_notes(session: AsyncSession, *, user_id: int) -> list[UserNote]:
    await _require_user(session, user_id)
    stmt = (
        select(UserNote)
        .where(UserNote.user_id == user_id, UserNote.is_deleted.is_(False))
        .order_by(UserNote.created_at.desc(), UserNote.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def add_warning(
    session: AsyncSession,
    *,
    admin: User,
    user_id: int,
    title: str,
    description: str,
    severity: WarningSeverity,
    category: WarningCategory,
    ip_address: str,
) -> AccountWarning:
    cleaned_title = title.strip()
    cleaned_description = description.strip()
    if not cleaned_title or not cleaned_description:
        raise InvalidRequestError("Warning title and description are required.")
    if len(cleaned_title) > MAX_WARNING_TITLE_LENGTH:
        raise InvalidRequestError(f"Warning title cannot exceed {MAX_WARNING_TITLE_LENGTH} characters.")
    if len(cleaned_description) > MAX_WARNING_DESCRIPTION_LENGTH:
        raise InvalidRequestError(
            f"Warning description cannot exceed {MAX_WARNING_DESCRIPTION_LENGTH} characters."
        )

    user = await _require_user(session, user_id)
    warning = AccountWarning(
        user_id=user.id,
        author_id=admin.id,
        title=cleaned_title,
        description=cleaned_description,
        severity=severity,
        category=category,
    )
    session.add(warning)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(warning)

    await record_admin_action(
        build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.ADD_WARNING,
            target_id=user.id,
            target_email=user.email,
            reason=cleaned_title,
            details={"warning_id": warning.id, "severity": severity.value, "category": category.value},
            ip_address=ip_address,
        )
    )
    logger.bind(
        event="admin.action",
        admin_id=admin.id,
        target_user_id=user.id,
        action="add_warning",
        severity=severity.value,
    ).info("admin_warning_added")
    return warning


async def list_warnings(
    session: AsyncSession,
    *,
    user_id: int,
    active_only: bool = False,
) -> list[AccountWarning]:
    await _require_user(session, user_id)
    stmt = select(AccountWarning).where(AccountWarning.user_id == user_id)
    if active_only:
        stmt = stmt.where(AccountWarning.is_active.is_(True))
    stmt = stmt.order_by(AccountWarning.created_at.desc(), AccountWarning.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


__all__ = ["add_note", "add_warning", "list_notes", "list_warnings"]
