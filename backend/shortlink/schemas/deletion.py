"""Schemas for the user deletion workflow APIs."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from shortlink.models.delete_request import DeleteRequest, DeleteRequestStatus
from shortlink.models.user import UserRole, UserStatus
from shortlink.schemas.common import UTCDateTime


class DeleteRequestCreate(BaseModel):
    user_id: int = Field(gt=0)
    reason: str = Field(description="Why the account is being deleted; trimmed, 1-500 characters")


class DeleteRequestCreated(BaseModel):
    message: str
    request_id: int
    user_id: int
    status: DeleteRequestStatus
    expires_at: UTCDateTime


class DeleteTokenRequest(BaseModel):
    user_id: int = Field(gt=0)
    token: str = Field(min_length=1, max_length=128)


class TargetUserSummary(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    status: UserStatus
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class PendingRequestSummary(BaseModel):
    id: int
    reason: str
    created_at: UTCDateTime
    expires_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class DeletePreviewResponse(BaseModel):
    user: TargetUserSummary
    request: PendingRequestSummary


class DeleteConfirmResponse(BaseModel):
    message: str
    user_id: int
    scheduled_deletion_at: UTCDateTime


class DeleteCancelResponse(BaseModel):
    message: str
    user_id: int
    status: DeleteRequestStatus


class DeleteRequestEntry(BaseModel):
    id: int
    user_id: int
    admin_id: int | None
    admin_name: str
    admin_email: str
    reason: str
    status: DeleteRequestStatus
    created_at: UTCDateTime
    expires_at: UTCDateTime
    confirmed_at: UTCDateTime | None = None
    scheduled_deletion_at: UTCDateTime | None = None
    completed_at: UTCDateTime | None = None

    @classmethod
    def from_model(cls, request: DeleteRequest) -> DeleteRequestEntry:
        admin = request.admin
        return cls(
            id=request.id,
            user_id=request.user_id,
            admin_id=request.admin_id,
            admin_name=admin.display_name if admin is not None else "Admin",
            admin_email=admin.email if admin is not None else "admin@system",
            reason=request.reason,
            status=request.status,
            created_at=request.created_at,
            expires_at=request.expires_at,
            confirmed_at=request.confirmed_at,
            scheduled_deletion_at=request.scheduled_deletion_at,
            completed_at=request.completed_at,
        )


class DeleteRequestHistory(BaseModel):
    user_id: int
    items: list[DeleteRequestEntry]


class SweepItem(BaseModel):
    request_id: int
    user_id: int
    status: Literal["success", "error", "skipped"]
    message: str

    model_config = ConfigDict(from_attributes=True)


class SweepResponse(BaseModel):
    processed: int
    total: int
    results: list[SweepItem]

    model_config = ConfigDict(from_attributes=True)
