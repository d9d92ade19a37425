"""initial leave desk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="employee"),
        sa.Column("department", sa.String(length=255), nullable=False, server_default=""),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin', 'employee')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "leaves",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("leave_type", sa.String(length=100), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("is_half_day", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("period", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        sa.Column("slack_notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_leaves_status"),
        sa.CheckConstraint("period IS NULL OR period IN ('morning', 'afternoon')", name="ck_leaves_period"),
        sa.CheckConstraint(
            "(is_half_day AND period IS NOT NULL) OR (NOT is_half_day AND period IS NULL)",
            name="ck_leaves_half_day_period",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_leaves_user_id", "leaves", ["user_id"], unique=False)
    op.create_index("ix_leaves_start_date", "leaves", ["start_date"], unique=False)
    op.create_index("ix_leaves_end_date", "leaves", ["end_date"], unique=False)
    op.create_index("ix_leaves_status", "leaves", ["status"], unique=False)

    op.create_table(
        "slack_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("singleton", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("channel_id", sa.String(length=100), nullable=True),
        sa.Column("bot_token", sa.Text(), nullable=True),
        sa.Column("webhook_url", sa.String(length=255), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("day_range", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("schedule_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("schedule_time", sa.String(length=5), nullable=False, server_default="08:30"),
        sa.Column("schedule_workdays_only", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_summary_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("singleton", name="uq_slack_configs_singleton"),
        sa.CheckConstraint("singleton = 1", name="ck_slack_configs_singleton"),
        sa.CheckConstraint("day_range BETWEEN 1 AND 30", name="ck_slack_configs_day_range"),
    )

    op.create_table(
        "google_oauth_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_google_oauth_tokens_user_id", "google_oauth_tokens", ["user_id"], unique=True)

    op.create_table(
        "google_calendar_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("leave_type", sa.String(length=100), nullable=False),
        sa.Column("calendar_id", sa.String(length=255), nullable=False),
        sa.Column("calendar_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("leave_type", "calendar_id", name="uq_google_calendar_configs_type_calendar"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_google_calendar_configs_leave_type", "google_calendar_configs", ["leave_type"], unique=False)

    op.create_table(
        "google_calendar_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("leave_id", sa.Integer(), nullable=False),
        sa.Column("calendar_id", sa.String(length=255), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("last_synced", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("leave_id", "calendar_id", name="uq_google_calendar_events_leave_calendar"),
        sa.ForeignKeyConstraint(["leave_id"], ["leaves.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_google_calendar_events_leave_id", "google_calendar_events", ["leave_id"], unique=False)

    op.create_table(
        "google_credentials",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("singleton", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("client_secret", sa.Text(), nullable=False),
        sa.Column("redirect_uri", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("singleton", name="uq_google_credentials_singleton"),
        sa.CheckConstraint("singleton = 1", name="ck_google_credentials_singleton"),
    )


def downgrade() -> None:
    op.drop_table("google_credentials")
    op.drop_index("ix_google_calendar_events_leave_id", table_name="google_calendar_events")
    op.drop_table("google_calendar_events")
    op.drop_index("ix_google_calendar_configs_leave_type", table_name="google_calendar_configs")
    op.drop_table("google_calendar_configs")
    op.drop_index("ix_google_oauth_tokens_user_id", table_name="google_oauth_tokens")
    op.drop_table("google_oauth_tokens")
    op.drop_table("slack_configs")
    op.drop_index("ix_leaves_status", table_name="leaves")
    op.drop_index("ix_leaves_end_date", table_name="leaves")
    op.drop_index("ix_leaves_start_date", table_name="leaves")
    op.drop_index("ix_leaves_user_id", table_name="leaves")
    op.drop_table("leaves")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
