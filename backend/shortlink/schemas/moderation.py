"""Schemas for admin notes and warnings."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from shortlink.models.moderation import NoteCategory, WarningCategory, WarningSeverity
from shortlink.schemas.common import UTCDateTime


class NoteCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    category: NoteCategory = NoteCategory.OTHER


class NoteEntry(BaseModel):
    id: int
    user_id: int
    author_id: int | None
    content: str
    category: NoteCategory
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)


class WarningCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=1000)
    severity: WarningSeverity
    category: WarningCategory


class WarningEntry(BaseModel):
    id: int
    user_id: int
    author_id: int | None
    title: str
    description: str
    severity: WarningSeverity
    category: WarningCategory
    is_active: bool
    created_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)
