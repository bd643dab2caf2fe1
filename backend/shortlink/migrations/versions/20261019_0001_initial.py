"""Users, owned records, deletion requests and the admin audit trail."""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_STATUS_CLAUSE = "status IN ('pending', 'confirmed')"

auth_provider = sa.Enum("github", "google", "discord", name="auth_provider")
user_role = sa.Enum("user", "admin", name="user_role")
user_status = sa.Enum("active", "disabled", name="user_status")
note_category = sa.Enum("behavior", "technical", "legal", "other", name="note_category")
warning_severity = sa.Enum("low", "medium", "high", "critical", name="warning_severity")
warning_category = sa.Enum("behavior", "technical", "legal", "spam", "abuse", "other", name="warning_category")
delete_request_status = sa.Enum("pending", "confirmed", "cancelled", "completed", name="delete_request_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("provider", auth_provider, nullable=False, server_default="github"),
        sa.Column("role", user_role, nullable=False, server_default="user"),
        sa.Column("status", user_status, nullable=False, server_default="active"),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
        sa.Column("original_url", sa.String(length=2048), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("click_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_links_user_id", "links", ["user_id"])
    op.create_index("ix_links_user_id_created_at", "links", ["user_id", "created_at"])

    op.create_table(
        "user_notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("category", note_category, nullable=False, server_default="other"),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_user_notes_user_id_created_at", "user_notes", ["user_id", "created_at"])

    op.create_table(
        "user_warnings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", warning_severity, nullable=False),
        sa.Column("category", warning_category, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_user_warnings_user_id_created_at", "user_warnings", ["user_id", "created_at"])

    op.create_table(
        "delete_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("status", delete_request_status, nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_deletion_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_delete_requests_user_id_token", "delete_requests", ["user_id", "token"])
    op.create_index(
        "ix_delete_requests_status_scheduled",
        "delete_requests",
        ["status", "scheduled_deletion_at"],
    )
    op.create_index("ix_delete_requests_expires_at", "delete_requests", ["expires_at"])
    op.create_index(
        "ux_delete_requests_active_user",
        "delete_requests",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text(_ACTIVE_STATUS_CLAUSE),
        postgresql_where=sa.text(_ACTIVE_STATUS_CLAUSE),
    )

    op.create_table(
        "admin_actions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=16), nullable=False, server_default="user"),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("target_email", sa.String(length=320), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_admin_actions_admin_id", "admin_actions", ["admin_id"])
    op.create_index("ix_admin_actions_target", "admin_actions", ["target_type", "target_id"])
    op.create_index("ix_admin_actions_action_type", "admin_actions", ["action_type"])
    op.create_index("ix_admin_actions_created_at", "admin_actions", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_admin_actions_created_at", table_name="admin_actions")
    op.drop_index("ix_admin_actions_action_type", table_name="admin_actions")
    op.drop_index("ix_admin_actions_target", table_name="admin_actions")
    op.drop_index("ix_admin_actions_admin_id", table_name="admin_actions")
    op.drop_table("admin_actions")

    op.drop_index("ux_delete_requests_active_user", table_name="delete_requests")
    op.drop_index("ix_delete_requests_expires_at", table_name="delete_requests")
    op.drop_index("ix_delete_requests_status_scheduled", table_name="delete_requests")
    op.drop_index("ix_delete_requests_user_id_token", table_name="delete_requests")
    op.drop_table("delete_requests")

    op.drop_index("ix_user_warnings_user_id_created_at", table_name="user_warnings")
    op.drop_table("user_warnings")
    op.drop_index("ix_user_notes_user_id_created_at", table_name="user_notes")
    op.drop_table("user_notes")
    op.drop_index("ix_links_user_id_created_at", table_name="links")
    op.drop_index("ix_links_user_id", table_name="links")
    op.drop_table("links")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    for enum_type in (
        delete_request_status,
        warning_category,
        warning_severity,
        note_category,
        user_status,
        user_role,
        auth_provider,
    ):
        enum_type.drop(op.get_bind(), checkfirst=True)
