"""Admin-initiated user deletion: request, confirm, cancel and scheduled execution.

Every status change is a conditional ``UPDATE`` filtered on the status it
leaves, so concurrent callers race on the row itself: the first writer wins
and the loser sees zero affected rows.

Confirm and cancel answer "no such request" for a wrong token, an expired
request and an already used one alike, so a caller probing tokens learns
nothing about which tokens ever existed.
"""
from __future__ import annotations

import datetime as dt
import secrets
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.core.config import Settings, get_settings
from shortlink.core.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from shortlink.core.health import record_sweep_tick
from shortlink.core.logging import mask_email
from shortlink.core.metrics import record_deletion_transition
from shortlink.models.admin_action import AdminAction, AdminActionType, AdminTargetType
from shortlink.models.delete_request import ACTIVE_STATUSES, DeleteRequest, DeleteRequestStatus
from shortlink.models.link import Link
from shortlink.models.moderation import AccountWarning, UserNote
from shortlink.models.user import User, UserRole, UserStatus
from shortlink.services.audit import build_admin_action, record_admin_action
from shortlink.services.notifier import (
    DeletionNotice,
    DeletionNotifier,
    NoticeStatus,
    build_cancel_link,
    build_confirm_link,
)
from shortlink.utils.time import as_utc, utcnow

MAX_REASON_LENGTH = 500
SYSTEM_IP = "system"


@dataclass(slots=True, frozen=True)
class DeletionPolicy:
    """Timing constants governing the workflow."""

    confirmation_window: dt.timedelta
    execution_delay: dt.timedelta

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> DeletionPolicy:
        settings = settings or get_settings()
        return cls(
            confirmation_window=settings.confirmation_window,
            execution_delay=settings.execution_delay,
        )


@dataclass(slots=True)
class DeletePreview:
    request: DeleteRequest
    user: User


SweepItemStatus = Literal["success", "error", "skipped"]


@dataclass(slots=True)
class SweepItemResult:
    request_id: int
    user_id: int
    status: SweepItemStatus
    message: str


@dataclass(slots=True)
class SweepSummary:
    processed: int
    total: int
    results: list[SweepItemResult] = field(default_factory=list)


class _TargetUserMissing(Exception):
    """The user scheduled for deletion no longer exists."""


def _request_not_found() -> NotFoundError:
    return NotFoundError(
        "Deletion request is invalid, expired or already processed.",
        code="delete_request_not_found",
    )


def _admin_identity(admin: User | None) -> tuple[str, str]:
    if admin is None:
        return "Admin", "admin@system"
    return admin.display_name, admin.email


async def _get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", code="user_not_found")
    return user


async def _ensure_additional_admin(session: AsyncSession, exclude_user_id: int) -> None:
    stmt = (
        select(func.count())
        .select_from(User)
        .where(
            User.role == UserRole.ADMIN,
            User.status == UserStatus.ACTIVE,
            User.id != exclude_user_id,
        )
    )
    count = (await session.execute(stmt)).scalar_one()
    if count == 0:
        raise ConflictError("At least one active admin must remain.", code="last_admin")


async def _cancel_expired_requests(session: AsyncSession, user_id: int, now: dt.datetime) -> list[int]:
    """Move expired pending requests of a user to cancelled so they stop blocking new ones."""

    stmt = select(DeleteRequest.id).where(
        DeleteRequest.user_id == user_id,
        DeleteRequest.status == DeleteRequestStatus.PENDING,
        DeleteRequest.expires_at <= now,
    )
    expired_ids = list((await session.execute(stmt)).scalars().all())
    if expired_ids:
        await session.execute(
            update(DeleteRequest)
            .where(
                DeleteRequest.id.in_(expired_ids),
                DeleteRequest.status == DeleteRequestStatus.PENDING,
            )
            .values(status=DeleteRequestStatus.CANCELLED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
    return expired_ids


async def issue_delete_request(
    session: AsyncSession,
    *,
    admin: User,
    user_id: int,
    reason: str,
    ip_address: str,
    notifier: DeletionNotifier,
    policy: DeletionPolicy | None = None,
) -> DeleteRequest:
    """Create a pending deletion request and send the confirmation links."""

    policy = policy or DeletionPolicy.from_settings()
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise InvalidRequestError("A reason is required.", code="reason_required")
    if len(cleaned_reason) > MAX_REASON_LENGTH:
        raise InvalidRequestError(
            f"Reason cannot exceed {MAX_REASON_LENGTH} characters.",
            code="reason_too_long",
        )
    if user_id == admin.id:
        raise ForbiddenError("You cannot request deletion of your own account.")

    target = await _get_user(session, user_id)
    if target.role == UserRole.ADMIN and target.status == UserStatus.ACTIVE:
        await _ensure_additional_admin(session, target.id)

    now = utcnow()
    try:
        expired_ids = await _cancel_expired_requests(session, user_id, now)
        active_stmt = select(DeleteRequest.id).where(
            DeleteRequest.user_id == user_id,
            DeleteRequest.status.in_(ACTIVE_STATUSES),
        )
        if (await session.execute(active_stmt)).first() is not None:
            raise ConflictError(
                "A deletion request is already active for this user.",
                code="delete_request_exists",
            )

        delete_request = DeleteRequest(
            user_id=user_id,
            admin_id=admin.id,
            reason=cleaned_reason,
            token=secrets.token_hex(32),
            status=DeleteRequestStatus.PENDING,
            expires_at=now + policy.confirmation_window,
        )
        session.add(delete_request)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        record_deletion_transition("request", "conflict")
        raise ConflictError(
            "A deletion request is already active for this user.",
            code="delete_request_exists",
        ) from exc
    except Exception:
        await session.rollback()
        raise

    target_email = target.email
    target_name = target.display_name
    token = delete_request.token

    for expired_id in expired_ids:
        await record_admin_action(
            build_admin_action(
                admin_id=admin.id,
                action_type=AdminActionType.CANCEL_DELETE_USER,
                target_id=user_id,
                target_email=target_email,
                reason="Deletion request expired before confirmation",
                details={"cause": "expired", "request_id": expired_id},
                ip_address=ip_address,
            )
        )
    await record_admin_action(
        build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.DELETE_USER_REQUEST,
            target_id=user_id,
            target_email=target_email,
            reason=cleaned_reason,
            details={
                "request_id": delete_request.id,
                "token_prefix": token[:8] + "...",
                "expires_at": delete_request.expires_at.isoformat(),
            },
            ip_address=ip_address,
        )
    )
    record_deletion_transition("request", "success")
    logger.bind(
        event="admin.action",
        admin_id=admin.id,
        target_user_id=user_id,
        action=AdminActionType.DELETE_USER_REQUEST.value,
        request_id=delete_request.id,
        expired_requests=len(expired_ids),
    ).info("admin_delete_requested")

    await notifier.notify(
        DeletionNotice(
            target_name=target_name,
            target_email=target_email,
            admin_email=admin.email,
            admin_name=admin.display_name,
            reason=cleaned_reason,
            status=NoticeStatus.PENDING_CONFIRMATION,
            confirm_link=build_confirm_link(user_id, token),
            cancel_link=build_cancel_link(user_id, token),
        )
    )
    return delete_request


async def preview_delete_request(session: AsyncSession, *, user_id: int, token: str) -> DeletePreview:
    """Return the request and its target while the request can still be confirmed."""

    now = utcnow()
    stmt = select(DeleteRequest).where(
        DeleteRequest.user_id == user_id,
        DeleteRequest.token == token,
        DeleteRequest.status == DeleteRequestStatus.PENDING,
        DeleteRequest.expires_at > now,
    )
    delete_request = (await session.execute(stmt)).unique().scalar_one_or_none()
    if delete_request is None:
        raise _request_not_found()
    user = await _get_user(session, user_id)
    return DeletePreview(request=delete_request, user=user)


async def confirm_delete_request(
    session: AsyncSession,
    *,
    admin: User,
    user_id: int,
    token: str,
    ip_address: str,
    policy: DeletionPolicy | None = None,
) -> DeleteRequest:
    """Confirm a pending request and schedule its execution."""

    policy = policy or DeletionPolicy.from_settings()
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", code="user_not_found")
    target_email = user.email

    now = utcnow()
    scheduled_at = now + policy.execution_delay
    try:
        result = await session.execute(
            update(DeleteRequest)
            .where(
                DeleteRequest.user_id == user_id,
                DeleteRequest.token == token,
                DeleteRequest.status == DeleteRequestStatus.PENDING,
                DeleteRequest.expires_at > now,
            )
            .values(
                status=DeleteRequestStatus.CONFIRMED,
                confirmed_at=now,
                scheduled_deletion_at=scheduled_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _request_not_found()
        await session.commit()
    except Exception:
        await session.rollback()
        record_deletion_transition("confirm", "rejected")
        raise

    stmt = (
        select(DeleteRequest)
        .where(DeleteRequest.user_id == user_id, DeleteRequest.token == token)
        .execution_options(populate_existing=True)
    )
    delete_request = (await session.execute(stmt)).unique().scalar_one()

    await record_admin_action(
        build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.DELETE_USER,
            target_id=user_id,
            target_email=target_email,
            reason=delete_request.reason,
            details={
                "request_id": delete_request.id,
                "scheduled_deletion_at": scheduled_at.isoformat(),
            },
            ip_address=ip_address,
        )
    )
    record_deletion_transition("confirm", "success")
    logger.bind(
        event="admin.action",
        admin_id=admin.id,
        target_user_id=user_id,
        action=AdminActionType.DELETE_USER.value,
        request_id=delete_request.id,
        scheduled_deletion_at=scheduled_at.isoformat(),
    ).info("admin_delete_confirmed")
    return delete_request


async def cancel_delete_request(
    session: AsyncSession,
    *,
    admin: User,
    user_id: int,
    token: str,
    ip_address: str,
    notifier: DeletionNotifier,
) -> DeleteRequest:
    """Cancel a pending or confirmed request before it is executed."""

    stmt = select(DeleteRequest).where(
        DeleteRequest.user_id == user_id,
        DeleteRequest.token == token,
        DeleteRequest.status.in_(ACTIVE_STATUSES),
    ).execution_options(populate_existing=True)
    delete_request = (await session.execute(stmt)).unique().scalar_one_or_none()
    if delete_request is None:
        record_deletion_transition("cancel", "rejected")
        raise _request_not_found()

    previous_status = delete_request.status
    now = utcnow()
    try:
        result = await session.execute(
            update(DeleteRequest)
            .where(
                DeleteRequest.id == delete_request.id,
                DeleteRequest.status == previous_status,
            )
            .values(status=DeleteRequestStatus.CANCELLED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _request_not_found()
        await session.commit()
    except Exception:
        await session.rollback()
        record_deletion_transition("cancel", "rejected")
        raise

    await session.refresh(delete_request)
    user = await session.get(User, user_id)
    target_email = user.email if user is not None else None
    issuing_admin_name, issuing_admin_email = _admin_identity(delete_request.admin)

    await record_admin_action(
        build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.CANCEL_DELETE_USER,
            target_id=user_id,
            target_email=target_email,
            reason=f"Deletion cancelled: {delete_request.reason}",
            details={
                "request_id": delete_request.id,
                "previous_status": previous_status.value,
                "original_reason": delete_request.reason,
                "cancelled_at": now.isoformat(),
            },
            ip_address=ip_address,
        )
    )
    record_deletion_transition("cancel", "success")
    logger.bind(
        event="admin.action",
        admin_id=admin.id,
        target_user_id=user_id,
        action=AdminActionType.CANCEL_DELETE_USER.value,
        request_id=delete_request.id,
        previous_status=previous_status.value,
    ).info("admin_delete_cancelled")

    if user is not None:
        await notifier.notify(
            DeletionNotice(
                target_name=user.display_name,
                target_email=user.email,
                admin_email=issuing_admin_email,
                admin_name=issuing_admin_name,
                reason=delete_request.reason,
                status=NoticeStatus.CANCELLED,
            )
        )
    return delete_request


async def list_delete_requests(session: AsyncSession, *, user_id: int) -> list[DeleteRequest]:
    """Return every request ever issued for a user, newest first."""

    stmt = (
        select(DeleteRequest)
        .where(DeleteRequest.user_id == user_id)
        .order_by(DeleteRequest.created_at.desc(), DeleteRequest.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.unique().scalars().all())


async def _execute_deletion(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    request_id: int,
    user_id: int,
    notifier: DeletionNotifier,
) -> SweepItemResult:
    log = logger.bind(event="deletion.execute", request_id=request_id, target_user_id=user_id)
    notice: DeletionNotice | None = None
    deleted: dict[str, Any] = {}
    target_email = ""

    try:
        async with session_factory() as session, session.begin():
            now = utcnow()
            # The status gate and the data removal commit or roll back together.
            gate = await session.execute(
                update(DeleteRequest)
                .where(
                    DeleteRequest.id == request_id,
                    DeleteRequest.status == DeleteRequestStatus.CONFIRMED,
                )
                .values(status=DeleteRequestStatus.COMPLETED, completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if gate.rowcount != 1:
                log.info("deletion_skipped_not_confirmed")
                record_deletion_transition("execute", "skipped")
                return SweepItemResult(
                    request_id=request_id,
                    user_id=user_id,
                    status="skipped",
                    message="Request is no longer confirmed.",
                )

            delete_request = (
                await session.execute(select(DeleteRequest).where(DeleteRequest.id == request_id))
            ).unique().scalar_one()
            user = await session.get(User, user_id)
            if user is None:
                raise _TargetUserMissing(f"User {user_id} not found")
            # two admins may have confirmed each other's deletion since issuance
            if user.role == UserRole.ADMIN and user.status == UserStatus.ACTIVE:
                await _ensure_additional_admin(session, user_id)

            deleted["links"] = await _purge(session, delete(Link).where(Link.user_id == user_id))
            deleted["notes"] = await _purge(session, delete(UserNote).where(UserNote.user_id == user_id))
            deleted["warnings"] = await _purge(
                session, delete(AccountWarning).where(AccountWarning.user_id == user_id)
            )
            deleted["admin_actions"] = await _purge(
                session,
                delete(AdminAction).where(
                    AdminAction.target_type == AdminTargetType.USER.value,
                    AdminAction.target_id == user_id,
                ),
            )
            await _purge(session, delete(User).where(User.id == user_id))
            deleted["user"] = True

            scheduled_at = as_utc(delete_request.scheduled_deletion_at)
            session.add(
                build_admin_action(
                    admin_id=delete_request.admin_id,
                    action_type=AdminActionType.DELETE_USER_COMPLETED,
                    target_id=user_id,
                    target_email=user.email,
                    reason=delete_request.reason,
                    details={
                        "request_id": request_id,
                        "deleted_data": deleted,
                        "scheduled_deletion_at": scheduled_at.isoformat() if scheduled_at else None,
                        "processed_at": now.isoformat(),
                    },
                    ip_address=SYSTEM_IP,
                )
            )

            admin_name, admin_email = _admin_identity(delete_request.admin)
            notice = DeletionNotice(
                target_name=user.display_name,
                target_email=user.email,
                admin_email=admin_email,
                admin_name=admin_name,
                reason=delete_request.reason,
                status=NoticeStatus.COMPLETED,
            )
            target_email = user.email
    except Exception as exc:
        log.bind(reason=str(exc)).exception("deletion_execution_failed")
        record_deletion_transition("execute", "error")
        return SweepItemResult(
            request_id=request_id,
            user_id=user_id,
            status="error",
            message=str(exc) or exc.__class__.__name__,
        )

    record_deletion_transition("execute", "success")
    log.bind(target_email=mask_email(target_email), deleted=deleted).info("deletion_executed")
    if notice is not None:
        await notifier.notify(notice)
    return SweepItemResult(
        request_id=request_id,
        user_id=user_id,
        status="success",
        message="User and owned data deleted.",
    )


async def _purge(session: AsyncSession, stmt: Any) -> int:
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return int(result.rowcount or 0)


async def process_scheduled_deletions(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    notifier: DeletionNotifier,
) -> SweepSummary:
    """Execute every confirmed request whose scheduled time has passed.

    Each request runs in its own transaction; a failing one is reported and
    stays confirmed for the next sweep without affecting the others.
    """

    now = utcnow()
    async with session_factory() as session:
        stmt = (
            select(DeleteRequest.id, DeleteRequest.user_id)
            .where(
                DeleteRequest.status == DeleteRequestStatus.CONFIRMED,
                DeleteRequest.scheduled_deletion_at <= now,
            )
            .order_by(DeleteRequest.scheduled_deletion_at.asc(), DeleteRequest.id.asc())
        )
        due = [(row[0], row[1]) for row in (await session.execute(stmt)).all()]

    results: list[SweepItemResult] = []
    for request_id, user_id in due:
        results.append(
            await _execute_deletion(
                session_factory,
                request_id=request_id,
                user_id=user_id,
                notifier=notifier,
            )
        )

    processed = sum(1 for item in results if item.status == "success")
    await record_sweep_tick(processed=processed)
    logger.bind(event="deletion.sweep", processed=processed, total=len(due)).info("deletion_sweep_completed")
    return SweepSummary(processed=processed, total=len(due), results=results)


__all__ = [
    "DeletePreview",
    "DeletionPolicy",
    "SweepItemResult",
    "SweepSummary",
    "cancel_delete_request",
    "confirm_delete_request",
    "issue_delete_request",
    "list_delete_requests",
    "preview_delete_request",
    "process_scheduled_deletions",
]
