from __future__ import annotations

import base64
import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from cryptography.fernet import Fernet, InvalidToken as FernetInvalidToken
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_google_env_credentials, get_jwt_secret
from app.db import delete_singleton, get_singleton, save_singleton
from app.models import GoogleCredential, GoogleOAuthToken, User

logger = logging.getLogger(__name__)


class Cipher:
    """Symmetric cipher keyed by the application secret."""

    def __init__(self, secret: str) -> None:
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
        self._fernet = Fernet(key)

    def encrypt(self, value: str) -> str:
        if not value:
            return ""
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, value: str) -> str:
        if not value:
            return ""
        try:
            return self._fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except (FernetInvalidToken, UnicodeError, ValueError):
            logger.warning("Stored value could not be decrypted with the current secret")
            return ""


def get_cipher() -> Cipher:
    return Cipher(get_jwt_secret() or "default-secret-key")


@dataclass(frozen=True)
class GoogleCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str
    source: Literal["database", "environment"]


@dataclass(frozen=True)
class OAuthTokenData:
    user_id: int
    access_token: str
    refresh_token: str | None
    expiry_date: datetime | None

    @property
    def is_expired(self) -> bool:
        if self.expiry_date is None:
            return False
        return self.expiry_date <= datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def save_credentials(db: Session, client_id: str, client_secret: str, redirect_uri: str) -> GoogleCredentials:
    cipher = get_cipher()
    save_singleton(
        db,
        GoogleCredential,
        client_id=cipher.encrypt(client_id),
        client_secret=cipher.encrypt(client_secret),
        redirect_uri=redirect_uri,
    )
    oauth_app_factory.invalidate()
    logger.info("Google OAuth client credentials saved")
    return GoogleCredentials(client_id, client_secret, redirect_uri, "database")


def get_credentials(db: Session) -> GoogleCredentials | None:
    record = get_singleton(db, GoogleCredential)
    if record is not None:
        cipher = get_cipher()
        client_id = cipher.decrypt(record.client_id)
        client_secret = cipher.decrypt(record.client_secret)
        if client_id and client_secret:
            return GoogleCredentials(client_id, client_secret, record.redirect_uri, "database")
        logger.warning("Stored Google credentials are unreadable, falling back to environment")
    env_client_id, env_client_secret, env_redirect_uri = get_google_env_credentials()
    if env_client_id and env_client_secret:
        return GoogleCredentials(env_client_id, env_client_secret, env_redirect_uri, "environment")
    return None


def delete_credentials(db: Session) -> bool:
    deleted = delete_singleton(db, GoogleCredential)
    if deleted:
        oauth_app_factory.invalidate()
        logger.info("Google OAuth client credentials deleted")
    return deleted


def has_stored_credentials(db: Session) -> bool:
    return get_singleton(db, GoogleCredential) is not None


class OAuthAppFactory:
    """Caches the resolved OAuth client credentials between requests.

    Saving or deleting stored credentials invalidates the cache; entries also
    expire after ``ttl_seconds`` so other workers pick up changes.
    """

    def __init__(self, ttl_seconds: float = 60.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._value: GoogleCredentials | None = None
        self._loaded_at: float | None = None

    def get(self, db: Session) -> GoogleCredentials | None:
        now = time.monotonic()
        if self._loaded_at is None or now - self._loaded_at > self.ttl_seconds:
            self._value = get_credentials(db)
            self._loaded_at = now
        return self._value

    def invalidate(self) -> None:
        self._value = None
        self._loaded_at = None


oauth_app_factory = OAuthAppFactory()


def _to_token_data(record: GoogleOAuthToken) -> OAuthTokenData:
    cipher = get_cipher()
    return OAuthTokenData(
        user_id=record.user_id,
        access_token=cipher.decrypt(record.access_token),
        refresh_token=cipher.decrypt(record.refresh_token) if record.refresh_token else None,
        expiry_date=_as_utc(record.expiry_date),
    )


def save_oauth_tokens(
    db: Session,
    user_id: int,
    access_token: str,
    refresh_token: str | None,
    expiry_date: datetime | None,
) -> OAuthTokenData:
    """Insert or refresh the token row for ``user_id``; a missing refresh token keeps the stored one."""
    cipher = get_cipher()
    record = db.scalar(select(GoogleOAuthToken).where(GoogleOAuthToken.user_id == user_id))
    if record is None:
        record = GoogleOAuthToken(user_id=user_id)
    record.access_token = cipher.encrypt(access_token)
    if refresh_token:
        record.refresh_token = cipher.encrypt(refresh_token)
    record.expiry_date = _as_utc(expiry_date)
    db.add(record)
    db.commit()
    db.refresh(record)
    return _to_token_data(record)


def get_oauth_token(db: Session, user_id: int) -> OAuthTokenData | None:
    record = db.scalar(select(GoogleOAuthToken).where(GoogleOAuthToken.user_id == user_id))
    if record is None:
        return None
    return _to_token_data(record)


def find_admin_token(db: Session, preferred_user_id: int | None = None) -> OAuthTokenData | None:
    """Token of ``preferred_user_id`` if it is an admin with one, else the most recently updated admin token."""
    stmt = (
        select(GoogleOAuthToken)
        .join(User, GoogleOAuthToken.user_id == User.id)
        .where(User.role == "admin")
    )
    if preferred_user_id is not None:
        preferred = db.scalar(stmt.where(GoogleOAuthToken.user_id == preferred_user_id))
        if preferred is not None:
            return _to_token_data(preferred)
    record = db.scalar(stmt.order_by(GoogleOAuthToken.updated_at.desc(), GoogleOAuthToken.id.desc()))
    if record is None:
        return None
    return _to_token_data(record)


def delete_oauth_tokens(db: Session, user_id: int) -> bool:
    record = db.scalar(select(GoogleOAuthToken).where(GoogleOAuthToken.user_id == user_id))
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True
