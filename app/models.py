from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class User(TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'employee')", name="ck_users_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="employee")
    department: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    leaves = relationship(
        "Leave",
        back_populates="owner",
        cascade="all, delete-orphan",
        foreign_keys="Leave.user_id",
    )
    oauth_token = relationship("GoogleOAuthToken", back_populates="user", cascade="all, delete-orphan", uselist=False)


class Leave(TimestampMixin, Base):
    __tablename__ = "leaves"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_leaves_status"),
        CheckConstraint("period IS NULL OR period IN ('morning', 'afternoon')", name="ck_leaves_period"),
        CheckConstraint(
            "(is_half_day AND period IS NOT NULL) OR (NOT is_half_day AND period IS NULL)",
            name="ck_leaves_half_day_period",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    leave_type: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_half_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    period: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    approved_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    slack_notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    owner = relationship("User", back_populates="leaves", foreign_keys=[user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    calendar_events = relationship("GoogleCalendarEvent", back_populates="leave", cascade="all, delete-orphan")


class SlackConfig(TimestampMixin, Base):
    __tablename__ = "slack_configs"
    __table_args__ = (
        CheckConstraint("singleton = 1", name="ck_slack_configs_singleton"),
        CheckConstraint("day_range BETWEEN 1 AND 30", name="ck_slack_configs_day_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    singleton: Mapped[int] = mapped_column(Integer, nullable=False, default=1, unique=True)
    channel_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bot_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    webhook_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    day_range: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    schedule_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    schedule_time: Mapped[str] = mapped_column(String(5), nullable=False, default="08:30")
    schedule_workdays_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_summary_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class GoogleOAuthToken(TimestampMixin, Base):
    __tablename__ = "google_oauth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="oauth_token")


class GoogleCalendarConfig(TimestampMixin, Base):
    __tablename__ = "google_calendar_configs"
    __table_args__ = (
        UniqueConstraint("leave_type", "calendar_id", name="uq_google_calendar_configs_type_calendar"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    leave_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    calendar_id: Mapped[str] = mapped_column(String(255), nullable=False)
    calendar_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class GoogleCalendarEvent(TimestampMixin, Base):
    __tablename__ = "google_calendar_events"
    __table_args__ = (
        UniqueConstraint("leave_id", "calendar_id", name="uq_google_calendar_events_leave_calendar"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    leave_id: Mapped[int] = mapped_column(ForeignKey("leaves.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    last_synced: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    leave = relationship("Leave", back_populates="calendar_events")


class GoogleCredential(TimestampMixin, Base):
    __tablename__ = "google_credentials"
    __table_args__ = (
        CheckConstraint("singleton = 1", name="ck_google_credentials_singleton"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    singleton: Mapped[int] = mapped_column(Integer, nullable=False, default=1, unique=True)
    client_id: Mapped[str] = mapped_column(Text, nullable=False)
    client_secret: Mapped[str] = mapped_column(Text, nullable=False)
    redirect_uri: Mapped[str] = mapped_column(Text, nullable=False)
