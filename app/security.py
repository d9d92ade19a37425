from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from app.config import get_jwt_expires_days, get_jwt_secret
from app.errors import InvalidToken

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    id: int
    email: str
    role: str
    name: str = ""
    department: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    name: str = "",
    department: str = "",
    now: datetime | None = None,
) -> str:
    secret = get_jwt_secret()
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "name": name,
        "department": department,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=get_jwt_expires_days()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    """Verify signature and expiry and return the identity carried by the token."""
    secret = get_jwt_secret()
    if not secret:
        raise InvalidToken()
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp"]})
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token has expired") from None
    except jwt.InvalidTokenError:
        raise InvalidToken() from None
    try:
        return TokenClaims(
            id=int(payload["id"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            name=str(payload.get("name") or ""),
            department=str(payload.get("department") or ""),
        )
    except (KeyError, TypeError, ValueError):
        raise InvalidToken() from None


def create_oauth_state(user_id: int, minutes: int = 10) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "purpose": "google-oauth", "iat": issued_at, "exp": issued_at + timedelta(minutes=minutes)}
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_oauth_state(state: str) -> int | None:
    """Admin user id carried by an OAuth ``state`` value, or ``None`` if it is forged or stale."""
    secret = get_jwt_secret()
    if not secret:
        return None
    try:
        payload = jwt.decode(state, secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if payload.get("purpose") != "google-oauth":
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
