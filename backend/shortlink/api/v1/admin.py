"""Administrative audit and moderation endpoints."""
from __future__ import annotations

import datetime as dt
from typing import Annotated

from fastapi import APIRouter, Query, Request, status

from shortlink.core.dependencies import CurrentAdmin, DBSession, client_ip
from shortlink.models.admin_action import AdminActionType, AdminTargetType
from shortlink.schemas import admin as admin_schema
from shortlink.schemas import moderation as moderation_schema
from shortlink.services import moderation as moderation_service
from shortlink.services.audit import AdminActionFilters, list_admin_actions
from shortlink.utils.time import as_utc

router = APIRouter(prefix="/admin")


@router.get("/actions", response_model=admin_schema.AdminActionList)
async def get_admin_actions(
    session: DBSession,
    current_admin: CurrentAdmin,
    action_type: AdminActionType | None = None,
    target_type: AdminTargetType | None = None,
    admin_id: Annotated[int | None, Query(gt=0)] = None,
    target_id: Annotated[int | None, Query(gt=0)] = None,
    start: dt.datetime | None = None,
    end: dt.datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> admin_schema.AdminActionList:
    del current_admin  # dependency ensures privileges
    filters = AdminActionFilters(
        action_type=action_type.value if action_type else None,
        target_type=target_type.value if target_type else None,
        admin_id=admin_id,
        target_id=target_id,
        start=as_utc(start),
        end=as_utc(end),
    )
    rows = await list_admin_actions(session, filters, limit=limit, offset=offset)
    return admin_schema.AdminActionList(
        items=[admin_schema.AdminActionEntry.from_row(row) for row in rows],
        limit=limit,
        offset=offset,
    )


@router.post(
    "/users/{user_id}/notes",
    response_model=moderation_schema.NoteEntry,
    status_code=status.HTTP_201_CREATED,
)
async def create_note(
    user_id: int,
    payload: moderation_schema.NoteCreate,
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
) -> moderation_schema.NoteEntry:
    note = await moderation_service.add_note(
        session,
        admin=current_admin,
        user_id=user_id,
        content=payload.content,
        category=payload.category,
        ip_address=client_ip(request),
    )
    return moderation_schema.NoteEntry.model_validate(note)


@router.get("/users/{user_id}/notes", response_model=list[moderation_schema.NoteEntry])
async def get_notes(
    user_id: int,
    session: DBSession,
    current_admin: CurrentAdmin,
) -> list[moderation_schema.NoteEntry]:
    del current_admin  # dependency ensures privileges
    notes = await moderation_service.list_notes(session, user_id=user_id)
    return [moderation_schema.NoteEntry.model_validate(note) for note in notes]


@router.post(
    "/users/{user_id}/warnings",
    response_model=moderation_schema.WarningEntry,
    status_code=status.HTTP_201_CREATED,
)
async def create_warning(
    user_id: int,
    payload: moderation_schema.WarningCreate,
    request: Request,
    session: DBSession,
    current_admin: CurrentAdmin,
) -> moderation_schema.WarningEntry:
    warning = await moderation_service.add_warning(
        session,
        admin=current_admin,
        user_id=user_id,
        title=payload.title,
        description=payload.description,
        severity=payload.severity,
        category=payload.category,
        ip_address=client_ip(request),
    )
    return moderation_schema.WarningEntry.model_validate(warning)


@router.get("/users/{user_id}/warnings", response_model=list[moderation_schema.WarningEntry])
async def get_warnings(
    user_id: int,
    session: DBSession,
    current_admin: CurrentAdmin,
    active_only: bool = False,
) -> list[moderation_schema.WarningEntry]:
    del current_admin  # dependency ensures privileges
    warnings = await moderation_service.list_warnings(session, user_id=user_id, active_only=active_only)
    return [moderation_schema.WarningEntry.model_validate(warning) for warning in warnings]
