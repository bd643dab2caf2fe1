"""Schemas for the admin audit APIs."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shortlink.schemas.common import UTCDateTime
from shortlink.services.audit import AdminActionRow


class AdminActionEntry(BaseModel):
    id: int
    admin_id: int | None
    admin_name: str | None = None
    admin_email: str | None = None
    action_type: str
    target_type: str
    target_id: int
    target_email: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="details")
    ip_address: str | None = None
    created_at: UTCDateTime

    model_config = {"from_attributes": True, "populate_by_name": True}

    @classmethod
    def from_row(cls, row: AdminActionRow) -> AdminActionEntry:
        entry = cls.model_validate(row.action)
        entry.admin_name = row.admin_name
        entry.admin_email = row.admin_email
        return entry


class AdminActionList(BaseModel):
    items: list[AdminActionEntry]
    limit: int
    offset: int
