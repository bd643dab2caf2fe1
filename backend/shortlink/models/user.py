"""Database models related to users and identity."""
from __future__ import annotations

import enum

from sqlalchemy import Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.models.base import Base, TimestampMixin


class UserStatus(str, enum.Enum):
    """Enumeration of lifecycle states for a user."""

    ACTIVE = "active"
    DISABLED = "disabled"


class UserRole(str, enum.Enum):
    """Supported user roles."""

    USER = "user"
    ADMIN = "admin"


class AuthProvider(str, enum.Enum):
    """OAuth providers an account can be linked to."""

    GITHUB = "github"
    GOOGLE = "google"
    DISCORD = "discord"


class User(TimestampMixin, Base):
    """Account record; login happens through an external OAuth provider."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    provider: Mapped[AuthProvider] = mapped_column(
        Enum(AuthProvider, name="auth_provider", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AuthProvider.GITHUB,
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.USER,
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.ACTIVE,
    )
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    @property
    def display_name(self) -> str:
        return self.name or self.email
