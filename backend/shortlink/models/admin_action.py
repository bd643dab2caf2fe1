"""Administrative audit log model."""
from __future__ import annotations

import datetime as dt
import enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, event, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.models.base import Base


class AdminActionType(str, enum.Enum):
    """Kinds of privileged operations recorded in the audit trail."""

    DELETE_USER_REQUEST = "delete_user_request"
    DELETE_USER = "delete_user"
    DELETE_USER_COMPLETED = "delete_user_completed"
    CANCEL_DELETE_USER = "cancel_delete_user"
    ADD_NOTE = "add_note"
    ADD_WARNING = "add_warning"


class AdminTargetType(str, enum.Enum):
    USER = "user"
    LINK = "link"


class AdminAction(Base):
    """Append-only audit trail for privileged operations."""

    __tablename__ = "admin_actions"
    __table_args__ = (
        Index("ix_admin_actions_admin_id", "admin_id"),
        Index("ix_admin_actions_target", "target_type", "target_id"),
        Index("ix_admin_actions_action_type", "action_type"),
        Index("ix_admin_actions_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False, default=AdminTargetType.USER.value)
    # Plain column: the record must outlive the target it describes.
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


@event.listens_for(AdminAction, "before_update")
def _reject_audit_update(mapper: Any, connection: Any, target: AdminAction) -> None:
    raise ValueError("Admin actions are append-only and cannot be modified.")
