"""Admin endpoints for the user deletion workflow."""
from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from shortlink.core.dependencies import CurrentAdmin, DBSession, SessionFactory, client_ip, require_cron_secret
from shortlink.schemas import deletion as deletion_schema
from shortlink.services import deletion as deletion_service
from shortlink.services.notifier import DeletionNotifier, get_deletion_notifier
from shortlink.services.ratelimiter import token_attempt_limiter

router = APIRouter(prefix="/admin/users")

Notifier = Annotated[DeletionNotifier, Depends(get_deletion_notifier)]


async def _throttle_token_attempts(request: Request) -> str:
    key = client_ip(request)
    allowed, retry_after = await token_attempt_limiter.check(key)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": {
                    "code": "too_many_attempts",
                    "message": "Too many deletion token attempts. Please try again later.",
                    "retry_after": retry_after,
                }
            },
        )
    return key


@router.post(
    "/delete-request",
    response_model=deletion_schema.DeleteRequestCreated,
    status_code=status.HTTP_201_CREATED,
)
async def issue_delete_request(
    payload: deletion_schema.DeleteRequestCreate,
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
    notifier: Notifier,
) -> deletion_schema.DeleteRequestCreated:
    """Create a pending deletion request and notify the administrators."""

    delete_request = await deletion_service.issue_delete_request(
        session,
        admin=current_admin,
        user_id=payload.user_id,
        reason=payload.reason,
        ip_address=client_ip(request),
        notifier=notifier,
    )
    request.state.delete_request_id = delete_request.id
    return deletion_schema.DeleteRequestCreated(
        message="Deletion request created. Confirmation links were sent to the administrators.",
        request_id=delete_request.id,
        user_id=delete_request.user_id,
        status=delete_request.status,
        expires_at=delete_request.expires_at,
    )


@router.get("/delete", response_model=deletion_schema.DeletePreviewResponse)
async def preview_delete_request(
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
    user_id: Annotated[int, Query(gt=0)],
    token: Annotated[str, Query(min_length=1, max_length=128)],
) -> deletion_schema.DeletePreviewResponse:
    del current_admin  # dependency ensures privileges
    await _throttle_token_attempts(request)
    preview = await deletion_service.preview_delete_request(session, user_id=user_id, token=token)
    return deletion_schema.DeletePreviewResponse(
        user=deletion_schema.TargetUserSummary.model_validate(preview.user),
        request=deletion_schema.PendingRequestSummary.model_validate(preview.request),
    )


@router.post("/delete", response_model=deletion_schema.DeleteConfirmResponse)
async def confirm_delete_request(
    payload: deletion_schema.DeleteTokenRequest,
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
) -> deletion_schema.DeleteConfirmResponse:
    """Confirm a pending request; the account is deleted by a later sweep."""

    key = await _throttle_token_attempts(request)
    delete_request = await deletion_service.confirm_delete_request(
        session,
        admin=current_admin,
        user_id=payload.user_id,
        token=payload.token,
        ip_address=key,
    )
    request.state.delete_request_id = delete_request.id
    await token_attempt_limiter.reset(key)
    return deletion_schema.DeleteConfirmResponse(
        message="Deletion confirmed and scheduled.",
        user_id=delete_request.user_id,
        scheduled_deletion_at=delete_request.scheduled_deletion_at,
    )


@router.post("/cancel-delete", response_model=deletion_schema.DeleteCancelResponse)
async def cancel_delete_request(
    payload: deletion_schema.DeleteTokenRequest,
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
    notifier: Notifier,
) -> deletion_schema.DeleteCancelResponse:
    key = await _throttle_token_attempts(request)
    delete_request = await deletion_service.cancel_delete_request(
        session,
        admin=current_admin,
        user_id=payload.user_id,
        token=payload.token,
        ip_address=key,
        notifier=notifier,
    )
    request.state.delete_request_id = delete_request.id
    await token_attempt_limiter.reset(key)
    return deletion_schema.DeleteCancelResponse(
        message="Deletion request cancelled.",
        user_id=delete_request.user_id,
        status=delete_request.status,
    )


@router.get("/delete-requests", response_model=deletion_schema.DeleteRequestHistory)
async def list_delete_requests(
    session: DBSession,
    current_admin: CurrentAdmin,
    user_id: Annotated[int, Query(gt=0)],
) -> deletion_schema.DeleteRequestHistory:
    """Full request history for a user, including after the account is gone."""

    del current_admin  # dependency ensures privileges
    requests = await deletion_service.list_delete_requests(session, user_id=user_id)
    return deletion_schema.DeleteRequestHistory(
        user_id=user_id,
        items=[deletion_schema.DeleteRequestEntry.from_model(item) for item in requests],
    )


@router.post(
    "/process-scheduled-deletions",
    response_model=deletion_schema.SweepResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def process_scheduled_deletions(
    request: Request,
    session_factory: SessionFactory,
    notifier: Notifier,
) -> deletion_schema.SweepResponse:
    """Entry point for the external scheduler."""

    summary = await deletion_service.process_scheduled_deletions(session_factory, notifier=notifier)
    request.state.sweep_processed = summary.processed
    return deletion_schema.SweepResponse.model_validate(summary)
