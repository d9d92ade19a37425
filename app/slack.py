from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.webhook import WebhookClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.credentials import get_cipher
from app.db import delete_singleton, get_singleton, save_singleton
from app.errors import ValidationError
from app.models import Leave, SlackConfig, User, utcnow

logger = logging.getLogger(__name__)

SCHEDULE_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
SCHEDULE_TOLERANCE_MINUTES = 5
MASKED_TOKEN = "•" * 27
SLACK_TIMEOUT_SECONDS = 30


def get_slack_config(db: Session) -> SlackConfig | None:
    return get_singleton(db, SlackConfig)


def save_slack_config(db: Session, values: dict[str, Any]) -> SlackConfig:
    """Create or update the single Slack configuration row.

    A new bot token is encrypted before it is stored. The masked placeholder
    or an omitted token keeps the stored one; an empty string clears it so
    the webhook takes over.
    """
    existing = get_slack_config(db)
    channel_id = (values.get("channel_id") or "").strip()
    bot_token = values.get("bot_token")
    webhook_url = (values.get("webhook_url") or "").strip() or None
    stored_token = existing.bot_token if existing is not None else None
    if bot_token == MASKED_TOKEN and not stored_token:
        raise ValidationError("No stored Slack token to keep; enter the bot token")
    keep_token = bot_token in (None, MASKED_TOKEN)
    bot_token = "" if keep_token else bot_token.strip()

    if not channel_id:
        raise ValidationError("Slack channel ID is required")
    if not bot_token and not (keep_token and stored_token) and not webhook_url:
        raise ValidationError("Slack token or webhook URL is required")

    day_range = values.get("day_range")
    if day_range is None:
        day_range = existing.day_range if existing is not None else 3
    if not 1 <= int(day_range) <= 30:
        raise ValidationError("Day range must be between 1 and 30")

    schedule_time = values.get("schedule_time") or (existing.schedule_time if existing is not None else "08:30")
    if not SCHEDULE_TIME_RE.match(schedule_time):
        raise ValidationError("Schedule time must be in the format HH:MM")
    hours, minutes = schedule_time.split(":")
    schedule_time = f"{int(hours):02d}:{minutes}"

    updates: dict[str, Any] = {
        "channel_id": channel_id,
        "webhook_url": webhook_url,
        "day_range": int(day_range),
        "schedule_time": schedule_time,
    }
    if not keep_token:
        updates["bot_token"] = get_cipher().encrypt(bot_token) if bot_token else None
    for flag in ("enabled", "schedule_enabled", "schedule_workdays_only"):
        if values.get(flag) is not None:
            updates[flag] = bool(values[flag])
        elif existing is None:
            updates[flag] = True
    config = save_singleton(db, SlackConfig, **updates)
    logger.info("Slack configuration saved for channel %s", config.channel_id)
    return config


def delete_slack_config(db: Session) -> bool:
    return delete_singleton(db, SlackConfig)


def serialize_slack_config(config: SlackConfig) -> dict[str, Any]:
    return {
        "id": config.id,
        "channelId": config.channel_id,
        "token": MASKED_TOKEN if config.bot_token else "",
        "webhookUrl": config.webhook_url,
        "enabled": config.enabled,
        "dayRange": config.day_range,
        "scheduleEnabled": config.schedule_enabled,
        "scheduleTime": config.schedule_time,
        "scheduleWorkdaysOnly": config.schedule_workdays_only,
        "lastSummarySentAt": config.last_summary_sent_at,
        "createdAt": config.created_at,
        "updatedAt": config.updated_at,
    }


def _usable_config(db: Session) -> SlackConfig | None:
    config = get_slack_config(db)
    if config is None:
        logger.info("Slack is not configured")
        return None
    if not config.enabled:
        logger.info("Slack notifications are disabled")
        return None
    if not config.channel_id or not (config.bot_token or config.webhook_url):
        logger.warning("Slack configuration is incomplete")
        return None
    return config


def post_message(config: SlackConfig, text: str, blocks: list[dict[str, Any]]) -> bool:
    bot_token = get_cipher().decrypt(config.bot_token) if config.bot_token else ""
    try:
        if bot_token:
            client = WebClient(token=bot_token, timeout=SLACK_TIMEOUT_SECONDS)
            client.chat_postMessage(channel=config.channel_id, text=text, blocks=blocks)
            return True
        if config.webhook_url:
            webhook = WebhookClient(config.webhook_url, timeout=SLACK_TIMEOUT_SECONDS)
            response = webhook.send(text=text, blocks=blocks)
            if response.status_code != 200:
                logger.warning("Slack webhook returned %s: %s", response.status_code, response.body)
                return False
            return True
    except SlackApiError as exc:
        logger.warning("Slack API error: %s", exc.response.get("error") if exc.response is not None else exc)
        return False
    except Exception as exc:
        logger.warning("Slack request failed: %s", exc)
        return False
    logger.warning("Slack configuration has no usable token or webhook")
    return False


def format_long_date(value: date) -> str:
    return f"{value:%A, %B} {value.day}, {value.year}"


def describe_dates(leave: Leave) -> str:
    start_text = format_long_date(leave.start_date)
    if leave.start_date == leave.end_date:
        if leave.is_half_day:
            return f"{start_text} ({(leave.period or 'half day').capitalize()})"
        return start_text
    return f"{start_text} to {format_long_date(leave.end_date)}"


def leave_duration(leave: Leave) -> str:
    if leave.is_half_day:
        return "0.5 days"
    days = (leave.end_date - leave.start_date).days + 1
    return f"{days} day{'' if days == 1 else 's'}"


def build_leave_created_blocks(leave: Leave, owner_name: str) -> list[dict[str, Any]]:
    leave_type = leave.leave_type[:1].upper() + leave.leave_type[1:]
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "🗓️ New Leave Request Submitted", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Employee:*\n{owner_name}"},
                {"type": "mrkdwn", "text": f"*Leave Type:*\n{leave_type} Leave"},
            ],
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Date(s):*\n{describe_dates(leave)}"},
                {"type": "mrkdwn", "text": f"*Duration:*\n{leave_duration(leave)}"},
            ],
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*Reason:*\n{leave.reason or 'No reason provided'}"}},
        {"type": "divider"},
        {"type": "context", "elements": [{"type": "mrkdwn", "text": "Status: *Pending Approval*"}]},
    ]


def notify_leave_created(db: Session, leave: Leave, owner_name: str) -> bool:
    """Post the new-leave notice. Never raises; returns whether the message went out."""
    config = _usable_config(db)
    if config is None:
        return False
    sent = post_message(config, "New Leave Request", build_leave_created_blocks(leave, owner_name))
    if sent:
        leave.slack_notification_sent = True
        db.add(leave)
        db.commit()
    return sent


def leaves_in_window(db: Session, today: date, day_range: int) -> list[tuple[Leave, str, str]]:
    window_end = today + timedelta(days=day_range - 1)
    stmt = (
        select(Leave, User.name, User.department)
        .join(User, Leave.user_id == User.id)
        .where(
            Leave.start_date <= window_end,
            Leave.end_date >= today,
            Leave.status != "rejected",
        )
        .order_by(Leave.start_date.asc(), User.name.asc(), Leave.id.asc())
    )
    return [tuple(row) for row in db.execute(stmt).all()]


def build_summary_blocks(rows: list[tuple[Leave, str, str]], today: date, day_range: int) -> list[dict[str, Any]]:
    window_end = today + timedelta(days=day_range - 1)
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "📅 Upcoming Leave Summary", "emoji": True},
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{format_long_date(today)} to {format_long_date(window_end)}"},
            ],
        },
    ]
    if not rows:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "No one is on leave in this period."}})
        return blocks
    for leave, owner_name, department in rows:
        status_label = "Approved" if leave.status == "approved" else "Pending"
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"*{owner_name}* ({department or 'No department'})\n"
                        f"{leave.leave_type} Leave · {describe_dates(leave)} · {leave_duration(leave)} · {status_label}"
                    ),
                },
            }
        )
    return blocks


def send_leaves_summary(db: Session, today: date | None = None) -> bool:
    config = _usable_config(db)
    if config is None:
        return False
    today = today or date.today()
    rows = leaves_in_window(db, today, config.day_range)
    text = f"Upcoming leave for the next {config.day_range} day(s): {len(rows)} request(s)"
    sent = post_message(config, text, build_summary_blocks(rows, today, config.day_range))
    if sent:
        config.last_summary_sent_at = utcnow()
        db.add(config)
        db.commit()
        logger.info("Leave summary sent with %s request(s)", len(rows))
    return sent


def send_test_message(db: Session) -> bool:
    config = _usable_config(db)
    if config is None:
        return False
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "🧪 Test Message", "emoji": True}},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    "This is a test message from your Leave Management System. "
                    "If you can see this, your Slack integration is working correctly!"
                ),
            },
        },
        {"type": "context", "elements": [{"type": "mrkdwn", "text": f"Sent at {datetime.now():%Y-%m-%d %H:%M:%S}"}]},
    ]
    return post_message(config, "Test message from Leave Management System", blocks)


def _to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone().replace(tzinfo=None)


def summary_is_due(config: SlackConfig, now: datetime) -> tuple[bool, str]:
    """Decide whether a cron poll at local wall-clock ``now`` should send the summary."""
    if not config.enabled or not config.schedule_enabled:
        return False, "Slack notifications or scheduled summaries are disabled"
    if config.schedule_workdays_only and now.weekday() >= 5:
        return False, "Skipping notification on weekend"
    hours, minutes = (int(part) for part in config.schedule_time.split(":"))
    scheduled = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    current = now.replace(second=0, microsecond=0)
    tolerance = timedelta(minutes=SCHEDULE_TOLERANCE_MINUTES)
    if abs(current - scheduled) > tolerance:
        return False, f"Current time {now:%H:%M} doesn't match scheduled time {config.schedule_time}"
    if config.last_summary_sent_at is not None and _to_local(config.last_summary_sent_at) >= scheduled - tolerance:
        return False, "Leave summary already sent for this schedule window"
    return True, "Scheduled time reached"
