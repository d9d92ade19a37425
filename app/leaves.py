from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Literal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.errors import Forbidden, NotFound, ValidationError
from app.models import Leave, User, utcnow

logger = logging.getLogger(__name__)

LeaveStatus = Literal["pending", "approved", "rejected"]
HalfDayPeriod = Literal["morning", "afternoon"]

REQUIRED_CREATE_FIELDS = ("start_date", "end_date", "leave_type")
MUTABLE_FIELDS = ("start_date", "end_date", "leave_type", "reason", "is_half_day", "period")


@dataclass(frozen=True)
class AdminScope:
    """Every leave, joined with its owner."""

    def statement(self) -> Select:
        return _base_listing()


@dataclass(frozen=True)
class EmployeeScope:
    """Only the requester's own leaves."""

    user_id: int

    def statement(self) -> Select:
        return _base_listing().where(Leave.user_id == self.user_id)


ListingScope = AdminScope | EmployeeScope


@dataclass(frozen=True)
class LeaveRow:
    leave: Leave
    owner_name: str
    owner_email: str
    owner_department: str


def _base_listing() -> Select:
    return (
        select(Leave, User.name, User.email, User.department)
        .join(User, Leave.user_id == User.id)
        .order_by(Leave.start_date.desc(), Leave.id.desc())
    )


def scope_for(requester_id: int, requester_role: str) -> ListingScope:
    if requester_role == "admin":
        return AdminScope()
    return EmployeeScope(user_id=requester_id)


def normalize_half_day(is_half_day: bool, period: str | None) -> str | None:
    """Return the period to store: required for half days, always ``None`` for full days."""
    if is_half_day:
        if period not in ("morning", "afternoon"):
            raise ValidationError("Half-day leave requires a period of 'morning' or 'afternoon'")
        return period
    return None


def ensure_date_range(start_date: date, end_date: date, is_half_day: bool = False) -> None:
    if end_date < start_date:
        raise ValidationError("End date cannot be before start date")
    if is_half_day and end_date != start_date:
        raise ValidationError("Half-day leave must start and end on the same day")


def _can_mutate(leave: Leave, requester_id: int, requester_role: str) -> bool:
    return requester_role == "admin" or leave.user_id == requester_id


def _load_for_requester(db: Session, leave_id: int, requester_id: int, requester_role: str) -> Leave:
    leave = db.get(Leave, leave_id)
    if leave is None:
        raise NotFound("Leave request not found")
    if not _can_mutate(leave, requester_id, requester_role):
        raise Forbidden("You can only manage your own leave requests")
    return leave


def create_leave(db: Session, owner_id: int, fields: dict[str, Any]) -> Leave:
    leave_type = str(fields.get("leave_type") or "").strip()
    present = {**fields, "leave_type": leave_type}
    missing = [name for name in REQUIRED_CREATE_FIELDS if not present.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    is_half_day = bool(fields.get("is_half_day", False))
    leave = Leave(
        user_id=owner_id,
        start_date=fields["start_date"],
        end_date=fields["end_date"],
        leave_type=leave_type,
        reason=fields.get("reason") or None,
        is_half_day=is_half_day,
        period=normalize_half_day(is_half_day, fields.get("period")),
        status="pending",
        slack_notification_sent=False,
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info("Leave %s created for user %s", leave.id, owner_id)
    return leave


def list_leaves(db: Session, requester_id: int, requester_role: str) -> list[LeaveRow]:
    rows = db.execute(scope_for(requester_id, requester_role).statement()).all()
    return [LeaveRow(leave, name, email, department) for leave, name, email, department in rows]


def get_leave(db: Session, leave_id: int, requester_id: int, requester_role: str) -> Leave:
    return _load_for_requester(db, leave_id, requester_id, requester_role)


def update_leave(
    db: Session,
    leave_id: int,
    requester_id: int,
    requester_role: str,
    fields: dict[str, Any],
) -> Leave:
    leave = _load_for_requester(db, leave_id, requester_id, requester_role)
    changes = {name: fields[name] for name in MUTABLE_FIELDS if name in fields}
    if "leave_type" in changes:
        changes["leave_type"] = str(changes["leave_type"] or "").strip()
        if not changes["leave_type"]:
            raise ValidationError("Leave type cannot be empty")
    for name in ("start_date", "end_date"):
        if name in changes and changes[name] is None:
            raise ValidationError(f"{name} cannot be empty")
    is_half_day = bool(changes.get("is_half_day", leave.is_half_day))
    changes["is_half_day"] = is_half_day
    changes["period"] = normalize_half_day(is_half_day, changes.get("period", leave.period))
    for name, value in changes.items():
        setattr(leave, name, value)
    # Explicit touch so a no-op field set still bumps the timestamp.
    leave.updated_at = utcnow()
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info("Leave %s updated by user %s", leave.id, requester_id)
    return leave


def set_leave_status(db: Session, leave_id: int, approver_id: int, status: LeaveStatus) -> Leave:
    leave = db.get(Leave, leave_id)
    if leave is None:
        raise NotFound("Leave request not found")
    leave.status = status
    leave.approved_by_id = approver_id if status == "approved" else None
    leave.updated_at = utcnow()
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info("Leave %s marked %s by user %s", leave.id, status, approver_id)
    return leave


def delete_leave(db: Session, leave_id: int, requester_id: int, requester_role: str) -> Leave:
    leave = _load_for_requester(db, leave_id, requester_id, requester_role)
    db.delete(leave)
    db.commit()
    logger.info("Leave %s deleted by user %s", leave_id, requester_id)
    return leave
