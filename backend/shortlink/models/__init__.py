"""Database models package."""
from shortlink.models.admin_action import AdminAction, AdminActionType, AdminTargetType
from shortlink.models.base import Base
from shortlink.models.delete_request import ACTIVE_STATUSES, DeleteRequest, DeleteRequestStatus
from shortlink.models.link import Link
from shortlink.models.moderation import (
    AccountWarning,
    NoteCategory,
    UserNote,
    WarningCategory,
    WarningSeverity,
)
from shortlink.models.user import AuthProvider, User, UserRole, UserStatus

__all__ = [
    "ACTIVE_STATUSES",
    "AccountWarning",
    "AdminAction",
    "AdminActionType",
    "AdminTargetType",
    "AuthProvider",
    "Base",
    "DeleteRequest",
    "DeleteRequestStatus",
    "Link",
    "NoteCategory",
    "User",
    "UserNote",
    "UserRole",
    "UserStatus",
    "WarningCategory",
    "WarningSeverity",
]
