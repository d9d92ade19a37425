from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_REDIRECT_URI = "https://developers.google.com/oauthplayground"


def get_jwt_secret() -> str:
    return os.getenv("JWT_SECRET", "")


def get_jwt_expires_days() -> int:
    return int(os.getenv("JWT_EXPIRES_DAYS", "7"))


def get_app_url() -> str:
    return os.getenv("APP_URL", "http://localhost:8000").rstrip("/")


def get_calendar_timezone() -> str:
    return os.getenv("CALENDAR_TIMEZONE", "Asia/Shanghai")


def get_cron_secret() -> str:
    return os.getenv("CRON_SECRET_TOKEN", "")


def get_google_env_credentials() -> tuple[str, str, str]:
    return (
        os.getenv("GOOGLE_CLIENT_ID", ""),
        os.getenv("GOOGLE_CLIENT_SECRET", ""),
        os.getenv("GOOGLE_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
    )


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_bootstrap_token() -> str:
    return os.getenv("BOOTSTRAP_TOKEN", "")
