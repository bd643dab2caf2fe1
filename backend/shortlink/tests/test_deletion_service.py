from __future__ import annotations

import datetime as dt
import string

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.core.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from shortlink.models.admin_action import AdminActionType
from shortlink.models.delete_request import DeleteRequest, DeleteRequestStatus
from shortlink.models.user import User, UserRole, UserStatus
from shortlink.schemas.deletion import DeleteRequestEntry
from shortlink.services import audit, deletion
from shortlink.services.notifier import NoticeStatus
from shortlink.tests.utils import create_admin, create_user, fetch_actions, fetch_request, shift_request_times
from shortlink.utils.time import as_utc, utcnow


async def _issue(
    session: AsyncSession,
    admin: User,
    user_id: int,
    notifier,
    reason: str = "Spam account",
) -> tuple[int, str]:
    created = await deletion.issue_delete_request(
        session,
        admin=admin,
        user_id=user_id,
        reason=reason,
        ip_address="10.0.0.1",
        notifier=notifier,
    )
    return created.id, created.token


async def _confirm(session: AsyncSession, admin: User, user_id: int, token: str) -> DeleteRequest:
    return await deletion.confirm_delete_request(
        session,
        admin=admin,
        user_id=user_id,
        token=token,
        ip_address="10.0.0.2",
    )


async def _cancel(session: AsyncSession, admin: User, user_id: int, token: str, notifier) -> DeleteRequest:
    return await deletion.cancel_delete_request(
        session,
        admin=admin,
        user_id=user_id,
        token=token,
        ip_address="10.0.0.3",
        notifier=notifier,
    )


@pytest.mark.asyncio
async def test_issue_creates_pending_request_and_notifies(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="issuer")
    target = await create_user(session, name="spammer")

    before = utcnow()
    request_id, token = await _issue(service_session, admin, target.id, notifier, reason="  Spam account  ")

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.PENDING
    assert stored.reason == "Spam account"
    assert stored.admin_id == admin.id
    assert stored.token == token
    assert len(token) == 64
    assert set(token) <= set(string.hexdigits.lower())
    window = as_utc(stored.expires_at) - before
    assert dt.timedelta(hours=23, minutes=59) < window <= dt.timedelta(hours=24, seconds=5)
    assert stored.confirmed_at is None
    assert stored.scheduled_deletion_at is None

    assert len(notifier.notices) == 1
    notice = notifier.notices[0]
    assert notice.status is NoticeStatus.PENDING_CONFIRMATION
    assert notice.target_email == target.email
    assert notice.admin_email == admin.email
    assert notice.reason == "Spam account"
    assert notice.confirm_link == f"https://short.test/dashboard/admin?deleteUser={target.id}&token={token}"
    assert notice.cancel_link == f"https://short.test/dashboard/admin?cancelDeletionUser={target.id}&token={token}"

    actions = await fetch_actions(session, target_id=target.id, action_type="delete_user_request")
    assert len(actions) == 1
    assert actions[0].admin_id == admin.id
    assert actions[0].target_email == target.email
    assert actions[0].details["token_prefix"] == token[:8] + "..."
    assert actions[0].ip_address == "10.0.0.1"


@pytest.mark.asyncio
async def test_issue_requires_reason(session: AsyncSession, service_session: AsyncSession, notifier) -> None:
    admin = await create_admin(session, name="blank-reason-admin")
    target = await create_user(session, name="blank-reason-target")

    with pytest.raises(InvalidRequestError) as excinfo:
        await _issue(service_session, admin, target.id, notifier, reason="   ")
    assert excinfo.value.code == "reason_required"

    with pytest.raises(InvalidRequestError) as excinfo:
        await _issue(service_session, admin, target.id, notifier, reason="x" * 501)
    assert excinfo.value.code == "reason_too_long"
    assert notifier.notices == []


@pytest.mark.asyncio
async def test_issue_for_unknown_user_fails(session: AsyncSession, service_session: AsyncSession, notifier) -> None:
    admin = await create_admin(session, name="unknown-target-admin")

    with pytest.raises(NotFoundError) as excinfo:
        await _issue(service_session, admin, 987654, notifier)
    assert excinfo.value.code == "user_not_found"


@pytest.mark.asyncio
async def test_admin_cannot_request_own_deletion(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="self-delete")

    with pytest.raises(ForbiddenError):
        await _issue(service_session, admin, admin.id, notifier)


@pytest.mark.asyncio
async def test_second_active_request_is_rejected(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="double-issuer")
    target = await create_user(session, name="double-target")
    request_id, _ = await _issue(service_session, admin, target.id, notifier)

    with pytest.raises(ConflictError) as excinfo:
        await _issue(service_session, admin, target.id, notifier, reason="Again")
    assert excinfo.value.code == "delete_request_exists"

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.PENDING
    assert stored.reason == "Spam account"
    assert len(notifier.notices) == 1


@pytest.mark.asyncio
async def test_expired_pending_request_no_longer_blocks_issuance(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="expired-issuer")
    target = await create_user(session, name="expired-target")
    stale_id, _ = await _issue(service_session, admin, target.id, notifier)
    await shift_request_times(session, stale_id, expires_at=utcnow() - dt.timedelta(minutes=5))

    fresh_id, _ = await _issue(service_session, admin, target.id, notifier, reason="Second attempt")

    assert fresh_id != stale_id
    stale = await fetch_request(session, stale_id)
    assert stale.status == DeleteRequestStatus.CANCELLED
    assert stale.completed_at is not None
    fresh = await fetch_request(session, fresh_id)
    assert fresh.status == DeleteRequestStatus.PENDING
    cancellations = await fetch_actions(session, target_id=target.id, action_type="cancel_delete_user")
    assert len(cancellations) == 1
    assert cancellations[0].details["cause"] == "expired"
    assert cancellations[0].details["request_id"] == stale_id


@pytest.mark.asyncio
async def test_last_active_admin_cannot_be_targeted(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    actor = await create_admin(session, name="last-admin-actor")
    target = await create_admin(session, name="last-admin-target")
    await session.execute(
        update(User)
        .where(User.role == UserRole.ADMIN, User.id != target.id)
        .values(status=UserStatus.DISABLED)
    )
    await session.commit()

    with pytest.raises(ConflictError) as excinfo:
        await _issue(service_session, actor, target.id, notifier)
    assert excinfo.value.code == "last_admin"


@pytest.mark.asyncio
async def test_confirm_schedules_deletion_one_hour_later(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="confirmer")
    target = await create_user(session, name="confirm-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier)

    confirmed = await _confirm(service_session, admin, target.id, token)

    assert confirmed.id == request_id
    assert confirmed.status == DeleteRequestStatus.CONFIRMED
    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.CONFIRMED
    assert as_utc(stored.scheduled_deletion_at) == as_utc(stored.confirmed_at) + dt.timedelta(hours=1)
    actions = await fetch_actions(session, target_id=target.id, action_type="delete_user")
    assert len(actions) == 1
    assert actions[0].details["request_id"] == request_id
    # confirmation sends nothing
    assert [notice.status for notice in notifier.notices] == [NoticeStatus.PENDING_CONFIRMATION]


@pytest.mark.asyncio
async def test_confirm_after_expiry_fails_and_leaves_pending(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="late-confirmer")
    target = await create_user(session, name="late-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier)
    await shift_request_times(session, request_id, expires_at=utcnow() - dt.timedelta(seconds=1))

    with pytest.raises(NotFoundError) as excinfo:
        await _confirm(service_session, admin, target.id, token)
    assert excinfo.value.code == "delete_request_not_found"

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.PENDING
    assert stored.confirmed_at is None
    assert stored.scheduled_deletion_at is None


@pytest.mark.asyncio
async def test_confirm_rejects_wrong_token_and_reuse(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="token-checker")
    target = await create_user(session, name="token-target")
    _, token = await _issue(service_session, admin, target.id, notifier)

    with pytest.raises(NotFoundError):
        await _confirm(service_session, admin, target.id, "0" * 64)

    await _confirm(service_session, admin, target.id, token)
    with pytest.raises(NotFoundError) as excinfo:
        await _confirm(service_session, admin, target.id, token)
    assert excinfo.value.code == "delete_request_not_found"


@pytest.mark.asyncio
async def test_token_is_bound_to_its_user(session: AsyncSession, service_session: AsyncSession, notifier) -> None:
    admin = await create_admin(session, name="binding-admin")
    target = await create_user(session, name="binding-target")
    other = await create_user(session, name="binding-other")
    request_id, token = await _issue(service_session, admin, target.id, notifier)

    with pytest.raises(NotFoundError):
        await _confirm(service_session, admin, other.id, token)

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_pending_request(session: AsyncSession, service_session: AsyncSession, notifier) -> None:
    admin = await create_admin(session, name="pending-canceller")
    target = await create_user(session, name="pending-cancel-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier, reason="Mistaken report")

    cancelled = await _cancel(service_session, admin, target.id, token, notifier)

    assert cancelled.status == DeleteRequestStatus.CANCELLED
    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.CANCELLED
    assert stored.completed_at is not None
    actions = await fetch_actions(session, target_id=target.id, action_type="cancel_delete_user")
    assert len(actions) == 1
    assert actions[0].details["previous_status"] == "pending"
    assert actions[0].details["original_reason"] == "Mistaken report"
    assert notifier.notices[-1].status is NoticeStatus.CANCELLED
    assert notifier.notices[-1].admin_email == admin.email
    assert notifier.notices[-1].confirm_link is None


@pytest.mark.asyncio
async def test_cancel_confirmed_request_before_execution(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="confirmed-canceller")
    target = await create_user(session, name="confirmed-cancel-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier)
    await _confirm(service_session, admin, target.id, token)

    await _cancel(service_session, admin, target.id, token, notifier)

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.CANCELLED
    actions = await fetch_actions(session, target_id=target.id, action_type="cancel_delete_user")
    assert actions[0].details["previous_status"] == "confirmed"


@pytest.mark.asyncio
async def test_cancelling_terminal_request_changes_nothing(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="terminal-canceller")
    target = await create_user(session, name="terminal-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier)
    await _cancel(service_session, admin, target.id, token, notifier)
    first_completed_at = (await fetch_request(session, request_id)).completed_at

    with pytest.raises(NotFoundError):
        await _cancel(service_session, admin, target.id, token, notifier)
    with pytest.raises(NotFoundError):
        await _confirm(service_session, admin, target.id, token)

    stored = await fetch_request(session, request_id)
    assert stored.status == DeleteRequestStatus.CANCELLED
    assert stored.completed_at == first_completed_at
    assert len(await fetch_actions(session, target_id=target.id, action_type="cancel_delete_user")) == 1


@pytest.mark.asyncio
async def test_preview_only_for_live_pending_requests(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="previewer")
    target = await create_user(session, name="preview-target")
    request_id, token = await _issue(service_session, admin, target.id, notifier)

    preview = await deletion.preview_delete_request(service_session, user_id=target.id, token=token)
    assert preview.user.id == target.id
    assert preview.request.id == request_id

    await shift_request_times(session, request_id, expires_at=utcnow() - dt.timedelta(seconds=1))
    with pytest.raises(NotFoundError):
        await deletion.preview_delete_request(service_session, user_id=target.id, token=token)


@pytest.mark.asyncio
async def test_history_lists_newest_first_with_admin_fallback(
    session: AsyncSession, service_session: AsyncSession, notifier
) -> None:
    admin = await create_admin(session, name="historian")
    target = await create_user(session, name="history-target")
    first_id, first_token = await _issue(service_session, admin, target.id, notifier, reason="First")
    await _cancel(service_session, admin, target.id, first_token, notifier)
    second_id, _ = await _issue(service_session, admin, target.id, notifier, reason="Second")

    history = await deletion.list_delete_requests(service_session, user_id=target.id)
    assert [item.id for item in history] == [second_id, first_id]
    entry = DeleteRequestEntry.from_model(history[0])
    assert entry.admin_name == "historian"
    assert entry.admin_email == admin.email

    await session.execute(update(DeleteRequest).where(DeleteRequest.id == first_id).values(admin_id=None))
    await session.commit()
    service_session.expunge_all()

    history = await deletion.list_delete_requests(service_session, user_id=target.id)
    orphaned = DeleteRequestEntry.from_model(history[1])
    assert orphaned.admin_name == "Admin"
    assert orphaned.admin_email == "admin@system"
    assert orphaned.status == DeleteRequestStatus.CANCELLED
    assert orphaned.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_audit_write_failure_does_not_undo_transitions(
    session: AsyncSession,
    service_session: AsyncSession,
    notifier,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    admin = await create_admin(session, name="audit-outage-admin")
    target = await create_user(session, name="audit-outage-target")
    target_id, target_email = target.id, target.email

    def _unavailable_factory():
        def _open_session():
            raise OperationalError("INSERT INTO admin_actions", {}, Exception("database is locked"))

        return _open_session

    monkeypatch.setattr(audit, "get_session_factory", _unavailable_factory)

    request_id, token = await _issue(service_session, admin, target_id, notifier)
    confirmed = await _confirm(service_session, admin, target_id, token)

    assert confirmed.status == DeleteRequestStatus.CONFIRMED
    assert (await fetch_request(session, request_id)).status == DeleteRequestStatus.CONFIRMED
    assert await fetch_actions(session, target_id=target_id) == []

    recorded = await audit.record_admin_action(
        audit.build_admin_action(
            admin_id=admin.id,
            action_type=AdminActionType.DELETE_USER,
            target_id=target_id,
            target_email=target_email,
        )
    )
    assert recorded is False
