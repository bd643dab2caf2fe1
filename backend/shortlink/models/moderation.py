"""Admin moderation records attached to a user: notes and warnings."""
from __future__ import annotations

import enum

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.models.base import Base, TimestampMixin


class NoteCategory(str, enum.Enum):
    BEHAVIOR = "behavior"
    TECHNICAL = "technical"
    LEGAL = "legal"
    OTHER = "other"


class WarningSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WarningCategory(str, enum.Enum):
    BEHAVIOR = "behavior"
    TECHNICAL = "technical"
    LEGAL = "legal"
    SPAM = "spam"
    ABUSE = "abuse"
    OTHER = "other"


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UserNote(TimestampMixin, Base):
    """Internal note an admin keeps about a user."""

    __tablename__ = "user_notes"
    __table_args__ = (Index("ix_user_notes_user_id_created_at", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[NoteCategory] = mapped_column(
        Enum(NoteCategory, name="note_category", values_callable=_values),
        nullable=False,
        default=NoteCategory.OTHER,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class AccountWarning(TimestampMixin, Base):
    """Formal warning issued to a user."""

    __tablename__ = "user_warnings"
    __table_args__ = (Index("ix_user_warnings_user_id_created_at", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    author_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[WarningSeverity] = mapped_column(
        Enum(WarningSeverity, name="warning_severity", values_callable=_values),
        nullable=False,
    )
    category: Mapped[WarningCategory] = mapped_column(
        Enum(WarningCategory, name="warning_category", values_callable=_values),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
