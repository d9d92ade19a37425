from __future__ import annotations

import logging
import os
from datetime import date, datetime
from typing import Any, Callable, Literal
from urllib.parse import urlencode

import requests

from fastapi import Depends, FastAPI, Header, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import google_calendar, leaves, slack
from app.auth import get_admin_claims, get_current_claims
from app.config import (
    DEFAULT_REDIRECT_URI,
    get_app_url,
    get_bootstrap_token,
    get_cron_secret,
    get_jwt_secret,
    get_log_level,
)
from app.credentials import (
    delete_credentials,
    delete_oauth_tokens,
    get_credentials,
    get_oauth_token,
    oauth_app_factory,
    save_credentials,
    save_oauth_tokens,
)
from app.db import get_db
from app.errors import (
    AppError,
    Conflict,
    Forbidden,
    NotFound,
    ServiceUnavailable,
    Unauthorized,
    ValidationError,
    register_error_handlers,
)
from app.models import GoogleCalendarConfig, Leave, User
from app.security import (
    TokenClaims,
    create_access_token,
    create_oauth_state,
    decode_oauth_state,
    hash_password,
    verify_password,
)

logging.basicConfig(level=get_log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Leave Desk")
register_error_handlers(app)


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Role = Literal["admin", "employee"]
Period = Literal["morning", "afternoon"]


class LoginPayload(ApiModel):
    email: str
    password: str


class RegisterPayload(ApiModel):
    name: str = Field(min_length=1)
    email: str
    password: str
    department: str = Field(min_length=1)


class ChangePasswordPayload(ApiModel):
    current_password: str
    new_password: str


class UserCreatePayload(ApiModel):
    name: str = Field(min_length=1)
    email: str
    password: str
    role: Role = "employee"
    department: str = Field(min_length=1)


class UserUpdatePayload(ApiModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: Role | None = None
    department: str | None = None


class UserOut(ApiModel):
    id: int
    name: str
    email: str
    role: Role
    department: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class LoginOut(ApiModel):
    token: str
    user: UserOut


class LeaveCreatePayload(ApiModel):
    start_date: date
    end_date: date
    leave_type: str = Field(min_length=1, max_length=100)
    reason: str | None = None
    is_half_day: bool = False
    period: Period | None = None


class LeaveUpdatePayload(ApiModel):
    start_date: date | None = None
    end_date: date | None = None
    leave_type: str | None = Field(default=None, max_length=100)
    reason: str | None = None
    is_half_day: bool | None = None
    period: Period | None = None


class LeaveStatusPayload(ApiModel):
    status: Literal["pending", "approved", "rejected"]


class LeaveOut(ApiModel):
    id: int
    user_id: int
    user_name: str | None = None
    user_email: str | None = None
    user_department: str | None = None
    start_date: date
    end_date: date
    leave_type: str
    reason: str | None = None
    is_half_day: bool
    period: Period | None = None
    status: Literal["pending", "approved", "rejected"]
    approved_by_id: int | None = None
    slack_notification_sent: bool
    created_at: datetime
    updated_at: datetime


class CalendarConfigPayload(ApiModel):
    calendar_id: str = Field(min_length=1)
    calendar_name: str = Field(min_length=1)
    leave_type: str = Field(min_length=1)
    is_active: bool = True


class CalendarConfigOut(ApiModel):
    id: int
    calendar_id: str
    calendar_name: str
    leave_type: str
    is_active: bool
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime


class TokenPayload(ApiModel):
    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expiry_date: datetime


class CredentialsPayload(ApiModel):
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    redirect_uri: str | None = None


class SlackConfigPayload(ApiModel):
    channel_id: str | None = None
    bot_token: str | None = Field(default=None, alias="token")
    webhook_url: str | None = None
    enabled: bool | None = None
    day_range: int | None = None
    schedule_enabled: bool | None = None
    schedule_time: str | None = None
    schedule_workdays_only: bool | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise ValidationError("A valid email is required")
    return normalized


def ensure_password_strength(password: str) -> None:
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters")


def ensure_email_available(db: Session, email: str, exclude_user_id: int | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    if db.scalar(stmt) is not None:
        raise Conflict("User with this email already exists")


def count_admins(db: Session) -> int:
    return db.scalar(select(func.count(User.id)).where(User.role == "admin")) or 0


def serialize_leave(
    leave: Leave,
    owner_name: str | None = None,
    owner_email: str | None = None,
    owner_department: str | None = None,
) -> LeaveOut:
    return LeaveOut(
        id=leave.id,
        user_id=leave.user_id,
        user_name=owner_name,
        user_email=owner_email,
        user_department=owner_department,
        start_date=leave.start_date,
        end_date=leave.end_date,
        leave_type=leave.leave_type,
        reason=leave.reason,
        is_half_day=leave.is_half_day,
        period=leave.period,
        status=leave.status,
        approved_by_id=leave.approved_by_id,
        slack_notification_sent=leave.slack_notification_sent,
        created_at=leave.created_at,
        updated_at=leave.updated_at,
    )


def serialize_leave_row(row: leaves.LeaveRow) -> LeaveOut:
    return serialize_leave(row.leave, row.owner_name, row.owner_email, row.owner_department)


def serialize_owned_leave(leave: Leave) -> LeaveOut:
    owner = leave.owner
    return serialize_leave(leave, owner.name, owner.email, owner.department)


def serialize_calendar_config(config: GoogleCalendarConfig) -> CalendarConfigOut:
    return CalendarConfigOut(
        id=config.id,
        calendar_id=config.calendar_id,
        calendar_name=config.calendar_name,
        leave_type=config.leave_type,
        is_active=config.is_active,
        created_by=config.created_by,
        created_at=config.created_at,
        updated_at=config.updated_at,
    )


def run_integration(db: Session, label: str, action: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a Slack or Google call after a leave mutation; failures are logged, never raised."""
    try:
        return action(*args, **kwargs)
    except Exception:
        logger.exception("%s failed", label)
        db.rollback()
        return None


@app.get("/api/auth/bootstrap/status")
def auth_bootstrap_status(db: Session = Depends(get_db)) -> dict[str, bool]:
    has_users = (db.scalar(select(func.count(User.id))) or 0) > 0
    return {"enabled": bool(get_bootstrap_token()) and not has_users}


@app.post("/api/auth/bootstrap", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_bootstrap(
    payload: RegisterPayload,
    db: Session = Depends(get_db),
    bootstrap_token: str | None = Header(default=None, alias="X-Bootstrap-Token"),
) -> UserOut:
    configured_token = get_bootstrap_token()
    if not configured_token:
        raise ServiceUnavailable("Bootstrap token is not configured")
    if bootstrap_token != configured_token:
        raise Forbidden("Invalid bootstrap token")
    if (db.scalar(select(func.count(User.id))) or 0) > 0:
        raise Conflict("Bootstrap is only allowed before the first user exists")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="admin",
        department=payload.department.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Bootstrapped first admin %s", user.id)
    return UserOut.from_orm_user(user)


@app.post("/api/auth/login", response_model=LoginOut)
def auth_login(payload: LoginPayload, db: Session = Depends(get_db)) -> LoginOut:
    if not get_jwt_secret():
        raise AppError("Server configuration error: Missing JWT secret")
    email = ensure_valid_email(payload.email)
    user = db.scalar(select(User).where(User.email == email))
    if user is None or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    token = create_access_token(user.id, user.email, user.role, user.name, user.department)
    logger.info("User %s logged in", user.id)
    return LoginOut(token=token, user=UserOut.from_orm_user(user))


@app.post("/api/auth/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_register(payload: RegisterPayload, db: Session = Depends(get_db)) -> UserOut:
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    ensure_email_available(db, email)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="employee",
        department=payload.department.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.get("/api/auth/me", response_model=UserOut)
def auth_me(claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)) -> UserOut:
    user = db.get(User, claims.id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.from_orm_user(user)


@app.post("/api/users/change-password")
def change_password(
    payload: ChangePasswordPayload,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    if not payload.current_password or not payload.new_password:
        raise ValidationError("Current password and new password are required")
    user = db.get(User, claims.id)
    if user is None:
        raise NotFound("User not found")
    if not verify_password(payload.current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    ensure_password_strength(payload.new_password)
    user.password_hash = hash_password(payload.new_password)
    db.add(user)
    db.commit()
    return {"message": "Password updated successfully"}


@app.get("/api/users", response_model=list[UserOut])
def admin_list_users(_: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> list[UserOut]:
    users = db.scalars(select(User).order_by(User.created_at.desc(), User.id.desc())).all()
    return [UserOut.from_orm_user(user) for user in users]


@app.post("/api/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: UserCreatePayload,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    ensure_email_available(db, email)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        department=payload.department.strip(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.get("/api/users/{user_id}", response_model=UserOut)
def admin_get_user(user_id: int, _: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> UserOut:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.from_orm_user(user)


@app.put("/api/users/{user_id}", response_model=UserOut)
def admin_update_user(
    user_id: int,
    payload: UserUpdatePayload,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> UserOut:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if payload.email:
        email = ensure_valid_email(payload.email)
        ensure_email_available(db, email, exclude_user_id=user.id)
        user.email = email
    if payload.role and payload.role != user.role:
        if user.role == "admin" and count_admins(db) <= 1:
            raise ValidationError("At least one admin must remain")
        user.role = payload.role
    if payload.name:
        user.name = payload.name.strip()
    if payload.department:
        user.department = payload.department.strip()
    if payload.password:
        ensure_password_strength(payload.password)
        user.password_hash = hash_password(payload.password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.delete("/api/users/{user_id}")
def admin_delete_user(
    user_id: int,
    claims: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.role == "admin" and count_admins(db) <= 1:
        raise ValidationError("Cannot delete the last admin user")
    leave_ids = db.scalars(select(Leave.id).where(Leave.user_id == user.id)).all()
    for leave_id in leave_ids:
        run_integration(db, "Calendar cleanup", google_calendar.delete_leave_from_calendar, db, leave_id, claims.id)
    db.delete(user)
    db.commit()
    return {"message": "User deleted successfully"}


@app.post("/api/leave", response_model=LeaveOut, status_code=status.HTTP_201_CREATED)
def create_leave(
    payload: LeaveCreatePayload,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> LeaveOut:
    owner = db.get(User, claims.id)
    if owner is None:
        raise NotFound("User not found")
    leaves.ensure_date_range(payload.start_date, payload.end_date, payload.is_half_day)
    leave = leaves.create_leave(db, owner.id, payload.model_dump())
    run_integration(db, "Slack leave notification", slack.notify_leave_created, db, leave, owner.name)
    run_integration(db, "Calendar sync", google_calendar.sync_leave_to_calendar, db, leave.id, claims.id)
    db.refresh(leave)
    return serialize_owned_leave(leave)


@app.get("/api/leave", response_model=list[LeaveOut])
def list_leaves(claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)) -> list[LeaveOut]:
    return [serialize_leave_row(row) for row in leaves.list_leaves(db, claims.id, claims.role)]


@app.get("/api/leave/{leave_id}", response_model=LeaveOut)
def get_leave(
    leave_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> LeaveOut:
    leave = leaves.get_leave(db, leave_id, claims.id, claims.role)
    return serialize_owned_leave(leave)


@app.put("/api/leave/{leave_id}", response_model=LeaveOut)
def update_leave(
    leave_id: int,
    payload: LeaveUpdatePayload,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> LeaveOut:
    fields = payload.model_dump(exclude_unset=True)
    current = leaves.get_leave(db, leave_id, claims.id, claims.role)
    is_half_day = fields.get("is_half_day")
    leaves.ensure_date_range(
        fields.get("start_date") or current.start_date,
        fields.get("end_date") or current.end_date,
        current.is_half_day if is_half_day is None else is_half_day,
    )
    leave = leaves.update_leave(db, leave_id, claims.id, claims.role, fields)
    run_integration(db, "Calendar sync", google_calendar.sync_leave_to_calendar, db, leave.id, claims.id)
    db.refresh(leave)
    return serialize_owned_leave(leave)


@app.patch("/api/leave/{leave_id}/status", response_model=LeaveOut)
def update_leave_status(
    leave_id: int,
    payload: LeaveStatusPayload,
    claims: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> LeaveOut:
    leave = leaves.set_leave_status(db, leave_id, claims.id, payload.status)
    run_integration(db, "Calendar sync", google_calendar.sync_leave_to_calendar, db, leave.id, claims.id)
    db.refresh(leave)
    return serialize_owned_leave(leave)


@app.delete("/api/leave/{leave_id}")
def delete_leave(
    leave_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    leaves.get_leave(db, leave_id, claims.id, claims.role)
    cleanup = run_integration(
        db, "Calendar cleanup", google_calendar.delete_leave_from_calendar, db, leave_id, claims.id
    )
    leaves.delete_leave(db, leave_id, claims.id, claims.role)
    return {
        "success": True,
        "message": "Leave request deleted successfully",
        "calendar": cleanup.to_dict() if cleanup is not None else None,
    }


@app.get("/api/admin/slack-config")
def get_slack_config(_: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, Any]:
    config = slack.get_slack_config(db)
    if config is None:
        raise NotFound("No Slack configuration found")
    return slack.serialize_slack_config(config)


@app.post("/api/admin/slack-config")
def save_slack_config(
    payload: SlackConfigPayload,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    config = slack.save_slack_config(db, payload.model_dump())
    return slack.serialize_slack_config(config)


@app.delete("/api/admin/slack-config")
def delete_slack_config(_: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, str]:
    if not slack.delete_slack_config(db):
        raise NotFound("No Slack configuration found")
    return {"message": "Slack configuration deleted successfully"}


@app.patch("/api/admin/slack-config")
def slack_config_action(
    action: str = Query(default=""),
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    if action == "test":
        if slack.get_slack_config(db) is None:
            raise ValidationError("Slack configuration is missing or invalid")
        if not slack.send_test_message(db):
            raise AppError("Failed to send test message")
        return {"message": "Test message sent successfully"}
    if action == "summary":
        if not slack.send_leaves_summary(db):
            raise AppError("Failed to send leave summary")
        return {"message": "Leave summary sent successfully"}
    raise ValidationError("Invalid action specified")


@app.get("/api/cron/slack-notify")
def cron_slack_notify(token: str | None = Query(default=None), db: Session = Depends(get_db)) -> dict[str, Any]:
    expected = get_cron_secret()
    if expected and token != expected:
        raise Unauthorized("Unauthorized cron job call")
    config = slack.get_slack_config(db)
    if config is None:
        raise NotFound("No Slack configuration found")
    due, reason = slack.summary_is_due(config, datetime.now())
    if not due:
        return {"sent": False, "message": reason}
    if not slack.send_leaves_summary(db):
        raise AppError("Failed to send leave summary")
    return {"sent": True, "message": "Leave summary sent successfully"}


@app.get("/api/admin/calendar", response_model=list[CalendarConfigOut])
def list_calendar_configs(
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> list[CalendarConfigOut]:
    configs = db.scalars(
        select(GoogleCalendarConfig).order_by(GoogleCalendarConfig.created_at.desc(), GoogleCalendarConfig.id.desc())
    ).all()
    return [serialize_calendar_config(config) for config in configs]


@app.post("/api/admin/calendar", response_model=CalendarConfigOut, status_code=status.HTTP_201_CREATED)
def create_calendar_config(
    payload: CalendarConfigPayload,
    claims: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> CalendarConfigOut:
    config = GoogleCalendarConfig(
        calendar_id=payload.calendar_id.strip(),
        calendar_name=payload.calendar_name.strip(),
        leave_type=payload.leave_type.strip(),
        is_active=payload.is_active,
        created_by=claims.id,
    )
    db.add(config)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A configuration for this leave type and calendar ID already exists") from None
    db.refresh(config)
    return serialize_calendar_config(config)


@app.get("/api/admin/calendar/auth")
def calendar_auth_url(claims: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, str]:
    credentials = oauth_app_factory.get(db)
    if credentials is None:
        raise ValidationError("Google OAuth credentials are not configured")
    return {"url": google_calendar.build_auth_url(credentials, create_oauth_state(claims.id))}


@app.delete("/api/admin/calendar/auth")
def calendar_disconnect(claims: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, str]:
    token = get_oauth_token(db, claims.id)
    if token is None:
        return {"message": "No Google connection found to disconnect"}
    if token.access_token:
        google_calendar.revoke_token(token.access_token)
    delete_oauth_tokens(db, claims.id)
    return {"message": "Google Calendar disconnected successfully"}


def calendar_page_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{get_app_url()}/admin/calendar?{urlencode(params)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@app.get("/api/admin/calendar/callback")
def calendar_oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    if error:
        logger.warning("Google OAuth error: %s", error)
        return calendar_page_redirect(error="Google authentication failed")
    if not code or not state:
        return calendar_page_redirect(error="Invalid callback parameters")
    user_id = decode_oauth_state(state)
    user = db.get(User, user_id) if user_id is not None else None
    if user is None or user.role != "admin":
        return calendar_page_redirect(error="Invalid user identification")
    credentials = oauth_app_factory.get(db)
    if credentials is None:
        return calendar_page_redirect(error="Google OAuth credentials are not configured")
    try:
        tokens = google_calendar.exchange_code(credentials, code)
    except (google_calendar.CalendarError, requests.RequestException) as exc:
        logger.warning("Google OAuth code exchange failed: %s", exc)
        return calendar_page_redirect(error="Failed to complete Google authentication")
    save_oauth_tokens(db, user.id, tokens["access_token"], tokens["refresh_token"], tokens["expiry_date"])
    return calendar_page_redirect(success="Connected to Google Calendar successfully")


@app.get("/api/admin/calendar/status")
def calendar_status(claims: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, Any]:
    return google_calendar.check_connection(db, claims.id)


@app.get("/api/admin/calendar/tokens")
def get_calendar_tokens(claims: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, Any]:
    return google_calendar.token_status(get_oauth_token(db, claims.id))


@app.post("/api/admin/calendar/tokens")
def save_calendar_tokens(
    payload: TokenPayload,
    claims: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    save_oauth_tokens(db, claims.id, payload.access_token, payload.refresh_token, payload.expiry_date)
    return {"message": "OAuth tokens saved successfully", "connected": True}


@app.delete("/api/admin/calendar/tokens")
def delete_calendar_tokens(claims: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, str]:
    delete_oauth_tokens(db, claims.id)
    return {"message": "OAuth tokens deleted successfully"}


@app.get("/api/admin/calendar/credentials")
def get_calendar_credentials(_: TokenClaims = Depends(get_admin_claims), db: Session = Depends(get_db)) -> dict[str, Any]:
    credentials = get_credentials(db)
    if credentials is None:
        raise NotFound("No Google credentials found")
    return {
        "clientId": credentials.client_id,
        "redirectUri": credentials.redirect_uri,
        "hasClientSecret": bool(credentials.client_secret),
        "source": credentials.source,
    }


@app.post("/api/admin/calendar/credentials")
def save_calendar_credentials(
    payload: CredentialsPayload,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    redirect_uri = payload.redirect_uri or os.getenv("GOOGLE_REDIRECT_URI") or DEFAULT_REDIRECT_URI
    save_credentials(db, payload.client_id.strip(), payload.client_secret.strip(), redirect_uri)
    return {"success": True, "message": "Google OAuth credentials saved successfully"}


@app.delete("/api/admin/calendar/credentials")
def delete_calendar_credentials(
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    if not delete_credentials(db):
        raise NotFound("No Google credentials found to delete")
    return {"success": True, "message": "Google OAuth credentials deleted successfully"}


@app.post("/api/admin/calendar/sync/{leave_id}")
def resync_leave(
    leave_id: int,
    claims: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    if db.get(Leave, leave_id) is None:
        raise NotFound("Leave request not found")
    return google_calendar.sync_leave_to_calendar(db, leave_id, claims.id).to_dict()


@app.put("/api/admin/calendar/{config_id}", response_model=CalendarConfigOut)
def update_calendar_config(
    config_id: int,
    payload: CalendarConfigPayload,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> CalendarConfigOut:
    config = db.get(GoogleCalendarConfig, config_id)
    if config is None:
        raise NotFound("Calendar configuration not found")
    config.calendar_id = payload.calendar_id.strip()
    config.calendar_name = payload.calendar_name.strip()
    config.leave_type = payload.leave_type.strip()
    config.is_active = payload.is_active
    db.add(config)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A configuration for this leave type and calendar ID already exists") from None
    db.refresh(config)
    return serialize_calendar_config(config)


@app.delete("/api/admin/calendar/{config_id}")
def delete_calendar_config(
    config_id: int,
    _: TokenClaims = Depends(get_admin_claims),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    config = db.get(GoogleCalendarConfig, config_id)
    if config is None:
        raise NotFound("Calendar configuration not found")
    db.delete(config)
    db.commit()
    return {"message": "Calendar configuration deleted successfully"}


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
