"""Deletion request lifecycle records."""
from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shortlink.models.base import Base, TimestampMixin
from shortlink.models.user import User


class DeleteRequestStatus(str, enum.Enum):
    """States of the deletion workflow; cancelled and completed are terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES = (DeleteRequestStatus.PENDING, DeleteRequestStatus.CONFIRMED)
_ACTIVE_STATUS_CLAUSE = "status IN ('pending', 'confirmed')"


class DeleteRequest(TimestampMixin, Base):
    """One admin-initiated deletion of a user, from request to execution."""

    __tablename__ = "delete_requests"
    __table_args__ = (
        Index("ix_delete_requests_user_id_token", "user_id", "token"),
        Index("ix_delete_requests_status_scheduled", "status", "scheduled_deletion_at"),
        Index("ix_delete_requests_expires_at", "expires_at"),
        Index(
            "ux_delete_requests_active_user",
            "user_id",
            unique=True,
            sqlite_where=text(_ACTIVE_STATUS_CLAUSE),
            postgresql_where=text(_ACTIVE_STATUS_CLAUSE),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # No foreign key: the history outlives the deleted user.
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[DeleteRequestStatus] = mapped_column(
        Enum(
            DeleteRequestStatus,
            name="delete_request_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=DeleteRequestStatus.PENDING,
    )
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_deletion_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    admin: Mapped[User | None] = relationship(lazy="joined")
