from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote, urlencode

import requests
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_calendar_timezone
from app.credentials import (
    GoogleCredentials,
    OAuthTokenData,
    find_admin_token,
    get_oauth_token,
    oauth_app_factory,
    save_oauth_tokens,
)
from app.models import GoogleCalendarConfig, GoogleCalendarEvent, Leave, User, utcnow

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
REQUEST_TIMEOUT_SECONDS = 15
ALL_LEAVE_TYPES = "All"

HALF_DAY_WINDOWS = {
    "morning": ("09:00:00", "13:00:00"),
    "afternoon": ("13:00:00", "18:00:00"),
}
STATUS_COLORS = {"approved": "10", "rejected": "4", "pending": "5"}


class CalendarError(Exception):
    pass


class CalendarAuthError(CalendarError):
    pass


class CalendarApiError(CalendarError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Google Calendar API returned {status_code}: {message}")
        self.status_code = status_code


@dataclass
class SyncResult:
    success: bool
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    error: str | None = None
    message: str | None = None
    event_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_http_session() -> requests.Session:
    return requests.Session()


def _expiry_from(payload: dict[str, Any]) -> datetime | None:
    expires_in = payload.get("expires_in")
    if expires_in is None:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(body.get("error_description") or error or body)


def build_auth_url(credentials: GoogleCredentials, state: str) -> str:
    params = {
        "client_id": credentials.client_id,
        "redirect_uri": credentials.redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


def exchange_code(credentials: GoogleCredentials, code: str, http: requests.Session | None = None) -> dict[str, Any]:
    http = http or get_http_session()
    response = http.post(
        TOKEN_URL,
        data={
            "code": code,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "redirect_uri": credentials.redirect_uri,
            "grant_type": "authorization_code",
        },
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if response.status_code != 200:
        raise CalendarAuthError(f"Authorization code exchange failed: {_error_message(response)}")
    payload = response.json()
    return {
        "access_token": payload["access_token"],
        "refresh_token": payload.get("refresh_token"),
        "expiry_date": _expiry_from(payload),
    }


def refresh_access_token(
    credentials: GoogleCredentials,
    refresh_token: str,
    http: requests.Session | None = None,
) -> dict[str, Any]:
    http = http or get_http_session()
    response = http.post(
        TOKEN_URL,
        data={
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if response.status_code != 200:
        raise CalendarAuthError(f"Token refresh failed: {_error_message(response)}")
    payload = response.json()
    return {
        "access_token": payload["access_token"],
        "refresh_token": payload.get("refresh_token"),
        "expiry_date": _expiry_from(payload),
    }


def revoke_token(token: str, http: requests.Session | None = None) -> bool:
    http = http or get_http_session()
    try:
        response = http.post(REVOKE_URL, params={"token": token}, timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.warning("Token revocation request failed: %s", exc)
        return False
    if response.status_code != 200:
        logger.warning("Token revocation rejected: %s", _error_message(response))
        return False
    return True


class GoogleCalendarClient:
    """Calendar v3 calls authorized by one admin's stored token.

    A 401 triggers exactly one refresh-and-retry when a refresh token is
    available; the refreshed token is written back to the database.
    """

    def __init__(
        self,
        db: Session,
        credentials: GoogleCredentials,
        token: OAuthTokenData,
        http: requests.Session | None = None,
    ) -> None:
        self.db = db
        self.credentials = credentials
        self.token = token
        self.http = http or get_http_session()
        self.refreshed = False
        # Set once authorization has failed for good; later calls fail fast.
        self.gave_up = False

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.token.access_token}"}
        return self.http.request(
            method,
            f"{CALENDAR_API_URL}{path}",
            headers=headers,
            timeout=REQUEST_TIMEOUT_SECONDS,
            **kwargs,
        )

    def _refresh(self) -> None:
        try:
            refreshed = refresh_access_token(self.credentials, self.token.refresh_token or "", http=self.http)
        except (CalendarAuthError, requests.RequestException):
            self.gave_up = True
            raise
        self.token = save_oauth_tokens(
            self.db,
            self.token.user_id,
            refreshed["access_token"],
            refreshed["refresh_token"],
            refreshed["expiry_date"],
        )
        self.refreshed = True
        logger.info("Refreshed Google access token for user %s", self.token.user_id)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        if self.gave_up:
            raise CalendarAuthError("Google authorization already failed for this client")
        response = self._send(method, path, **kwargs)
        if response.status_code == 401:
            if not self.token.refresh_token:
                self.gave_up = True
                raise CalendarAuthError("Access token rejected and no refresh token is stored")
            self._refresh()
            response = self._send(method, path, **kwargs)
            if response.status_code == 401:
                self.gave_up = True
                raise CalendarAuthError("Access token rejected after refresh")
        if response.status_code >= 400:
            raise CalendarApiError(response.status_code, _error_message(response))
        return response

    def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", f"/calendars/{quote(calendar_id, safe='')}/events", json=body).json()

    def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        path = f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}"
        return self._request("PUT", path, json=body).json()

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        path = f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}"
        try:
            self._request("DELETE", path)
        except CalendarApiError as exc:
            # Already gone remotely.
            if exc.status_code not in (404, 410):
                raise

    def list_calendars(self, max_results: int = 1) -> list[dict[str, Any]]:
        response = self._request("GET", "/users/me/calendarList", params={"maxResults": max_results})
        return response.json().get("items", [])


def build_event_payload(leave: Leave, owner_name: str, owner_department: str, tz: str | None = None) -> dict[str, Any]:
    tz = tz or get_calendar_timezone()
    description = (
        f"{leave.reason or 'No reason provided'}\n\n"
        f"Status: {leave.status}\n"
        f"Department: {owner_department}"
    )
    payload: dict[str, Any] = {
        "summary": f"{owner_name}: {leave.leave_type} Leave",
        "description": description,
        "colorId": STATUS_COLORS.get(leave.status, STATUS_COLORS["pending"]),
    }
    if leave.is_half_day:
        start_time, end_time = HALF_DAY_WINDOWS[leave.period or "morning"]
        day = leave.start_date.isoformat()
        payload["start"] = {"dateTime": f"{day}T{start_time}", "timeZone": tz}
        payload["end"] = {"dateTime": f"{day}T{end_time}", "timeZone": tz}
        payload["description"] += f"\nHalf-day: {'Morning' if leave.period == 'morning' else 'Afternoon'}"
    else:
        # All-day events use an exclusive end date.
        payload["start"] = {"date": leave.start_date.isoformat()}
        payload["end"] = {"date": (leave.end_date + timedelta(days=1)).isoformat()}
    return payload


def matching_configs(db: Session, leave_type: str) -> list[GoogleCalendarConfig]:
    stmt = (
        select(GoogleCalendarConfig)
        .where(
            or_(GoogleCalendarConfig.leave_type == leave_type, GoogleCalendarConfig.leave_type == ALL_LEAVE_TYPES),
            GoogleCalendarConfig.is_active.is_(True),
        )
        .order_by(GoogleCalendarConfig.id)
    )
    return list(db.scalars(stmt).all())


def build_client(
    db: Session,
    preferred_user_id: int | None = None,
) -> tuple[GoogleCalendarClient | None, SyncResult | None]:
    credentials = oauth_app_factory.get(db)
    if credentials is None:
        return None, SyncResult(
            success=False,
            error="Missing Google OAuth credentials",
            message="Configure Google OAuth credentials in Admin > Calendar Settings",
        )
    token = find_admin_token(db, preferred_user_id)
    if token is None or not token.access_token:
        return None, SyncResult(
            success=False,
            error="No Google OAuth token",
            message="Connect an admin account to Google Calendar first",
        )
    return GoogleCalendarClient(db, credentials, token), None


def sync_leave_to_calendar(db: Session, leave_id: int, preferred_user_id: int | None = None) -> SyncResult:
    credentials = oauth_app_factory.get(db)
    if credentials is None:
        logger.info("Skipping calendar sync for leave %s: no Google OAuth credentials", leave_id)
        return SyncResult(
            success=False,
            error="Missing Google OAuth credentials",
            message="Configure Google OAuth credentials in Admin > Calendar Settings",
        )
    row = db.execute(
        select(Leave, User.name, User.department).join(User, Leave.user_id == User.id).where(Leave.id == leave_id)
    ).one_or_none()
    if row is None:
        logger.warning("Calendar sync requested for missing leave %s", leave_id)
        return SyncResult(success=False, error="Leave not found")
    leave, owner_name, owner_department = row

    configs = matching_configs(db, leave.leave_type)
    wanted = {config.calendar_id for config in configs}
    mappings = {
        mapping.calendar_id: mapping
        for mapping in db.scalars(select(GoogleCalendarEvent).where(GoogleCalendarEvent.leave_id == leave_id))
    }
    stale = [mapping for calendar_id, mapping in mappings.items() if calendar_id not in wanted]
    if not configs and not stale:
        logger.info("No calendar configurations for leave type %r", leave.leave_type)
        return SyncResult(success=True, message=f"No calendar configured for leave type {leave.leave_type}")

    client, failure = build_client(db, preferred_user_id)
    if client is None:
        logger.info("Skipping calendar sync for leave %s: %s", leave_id, failure.error)
        return failure

    result = SyncResult(success=True)
    # Events on calendars that no longer match the leave type.
    for mapping in stale:
        try:
            client.delete_event(mapping.calendar_id, mapping.event_id)
            result.deleted += 1
            logger.info("Removed calendar event %s for leave %s from %s", mapping.event_id, leave_id, mapping.calendar_id)
        except (CalendarError, requests.RequestException) as exc:
            result.failed += 1
            logger.warning("Failed to remove stale calendar event %s: %s", mapping.event_id, exc)
        db.delete(mapping)
    if stale:
        db.commit()

    body = build_event_payload(leave, owner_name, owner_department)
    for index, config in enumerate(configs):
        mapping = mappings.get(config.calendar_id)
        try:
            if mapping is not None:
                client.update_event(config.calendar_id, mapping.event_id, body)
                mapping.last_synced = utcnow()
                db.add(mapping)
                db.commit()
                result.updated += 1
                result.event_ids.append(mapping.event_id)
                logger.info("Updated calendar event %s for leave %s", mapping.event_id, leave_id)
            else:
                event = client.insert_event(config.calendar_id, body)
                db.add(GoogleCalendarEvent(leave_id=leave_id, calendar_id=config.calendar_id, event_id=event["id"]))
                db.commit()
                result.created += 1
                result.event_ids.append(event["id"])
                logger.info("Created calendar event %s for leave %s", event["id"], leave_id)
        except IntegrityError:
            db.rollback()
            result.failed += 1
            logger.warning("Concurrent sync already mapped leave %s to calendar %s", leave_id, config.calendar_id)
        except CalendarAuthError as exc:
            result.failed += len(configs) - index
            logger.warning("Calendar sync for leave %s stopped, authorization failed: %s", leave_id, exc)
            break
        except (CalendarError, requests.RequestException, KeyError) as exc:
            result.failed += 1
            logger.warning("Calendar sync failed for leave %s on %s: %s", leave_id, config.calendar_id, exc)
    if result.failed:
        result.success = False
        result.error = f"{result.failed} calendar(s) failed to sync"
    return result


def delete_leave_from_calendar(db: Session, leave_id: int, preferred_user_id: int | None = None) -> SyncResult:
    mappings = list(db.scalars(select(GoogleCalendarEvent).where(GoogleCalendarEvent.leave_id == leave_id)).all())
    if not mappings:
        return SyncResult(success=True, message=f"No calendar events for leave {leave_id}")

    result = SyncResult(success=True)
    client, failure = build_client(db, preferred_user_id)
    if client is None:
        logger.info("Removing calendar mappings for leave %s without remote delete: %s", leave_id, failure.error)
        result.failed = len(mappings)
        result.error = failure.error
    else:
        for index, mapping in enumerate(mappings):
            try:
                client.delete_event(mapping.calendar_id, mapping.event_id)
                result.deleted += 1
                result.event_ids.append(mapping.event_id)
            except CalendarAuthError as exc:
                result.failed += len(mappings) - index
                logger.warning("Calendar cleanup for leave %s stopped, authorization failed: %s", leave_id, exc)
                break
            except (CalendarError, requests.RequestException) as exc:
                result.failed += 1
                logger.warning("Failed to delete calendar event %s: %s", mapping.event_id, exc)

    db.execute(delete(GoogleCalendarEvent).where(GoogleCalendarEvent.leave_id == leave_id))
    db.commit()
    if result.failed:
        result.success = False
        result.error = result.error or f"{result.failed} calendar event(s) could not be deleted"
    return result


def check_connection(db: Session, user_id: int) -> dict[str, Any]:
    token = get_oauth_token(db, user_id)
    if token is None:
        return {"connected": False}
    credentials = oauth_app_factory.get(db)
    if credentials is None:
        return {"connected": False, "error": "Missing Google OAuth credentials"}
    client = GoogleCalendarClient(db, credentials, token)
    try:
        client.list_calendars(max_results=1)
    except CalendarAuthError as exc:
        logger.warning("Google Calendar connection check failed for user %s: %s", user_id, exc)
        return {"connected": False, "error": "Token refresh failed" if token.refresh_token else "Invalid token"}
    except (CalendarError, requests.RequestException) as exc:
        logger.warning("Google Calendar connection check failed for user %s: %s", user_id, exc)
        return {"connected": False, "error": str(exc)}
    status: dict[str, Any] = {"connected": True}
    if client.refreshed:
        status["refreshed"] = True
    return status


def token_status(token: OAuthTokenData | None) -> dict[str, Any]:
    if token is None:
        return {"connected": False}
    if token.expiry_date is None:
        return {"connected": True, "status": "valid", "expiry": None}
    return {
        "connected": True,
        "status": "expired" if token.is_expired else "valid",
        "expiry": token.expiry_date.isoformat(),
    }
