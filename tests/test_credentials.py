from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import app.db as app_db
from app.credentials import (
    Cipher,
    delete_credentials,
    find_admin_token,
    get_credentials,
    has_stored_credentials,
    oauth_app_factory,
    save_credentials,
    save_oauth_tokens,
)
from app.models import GoogleCredential, GoogleOAuthToken, SlackConfig


@pytest.fixture
def google_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "env-client-id")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "env-client-secret")
    monkeypatch.setenv("GOOGLE_REDIRECT_URI", "https://env.example.com/callback")


def test_cipher_round_trip_and_empty_values():
    cipher = Cipher("one-secret")

    token = cipher.encrypt("client-secret")
    assert token != "client-secret"
    assert cipher.decrypt(token) == "client-secret"
    assert cipher.encrypt("") == ""
    assert cipher.decrypt("") == ""


def test_cipher_with_other_secret_cannot_read_values():
    token = Cipher("one-secret").encrypt("client-secret")

    assert Cipher("another-secret").decrypt(token) == ""
    assert Cipher("one-secret").decrypt("not-a-fernet-token") == ""


def test_no_credentials_anywhere_returns_none(db):
    assert get_credentials(db) is None
    assert has_stored_credentials(db) is False
    assert delete_credentials(db) is False


def test_environment_fallback(db, google_env):
    credentials = get_credentials(db)

    assert credentials.source == "environment"
    assert credentials.client_id == "env-client-id"
    assert credentials.redirect_uri == "https://env.example.com/callback"


def test_stored_credentials_take_precedence_and_are_encrypted(db, google_env):
    save_credentials(db, "db-client-id", "db-client-secret", "https://db.example.com/callback")

    credentials = get_credentials(db)
    assert credentials.source == "database"
    assert credentials.client_id == "db-client-id"
    assert credentials.client_secret == "db-client-secret"

    record = db.scalar(select(GoogleCredential))
    assert record.client_id != "db-client-id"
    assert record.client_secret != "db-client-secret"

    assert delete_credentials(db) is True
    assert get_credentials(db).source == "environment"


def test_unreadable_stored_credentials_fall_back_to_environment(db, google_env, monkeypatch):
    save_credentials(db, "db-client-id", "db-client-secret", "https://db.example.com/callback")
    monkeypatch.setenv("JWT_SECRET", "rotated-secret")

    assert get_credentials(db).source == "environment"


def test_saving_twice_keeps_a_single_row(db):
    save_credentials(db, "first-id", "first-secret", "https://a.example.com")
    save_credentials(db, "second-id", "second-secret", "https://b.example.com")

    assert len(db.scalars(select(GoogleCredential)).all()) == 1
    assert get_credentials(db).client_id == "second-id"


def test_database_rejects_second_singleton_row(db):
    db.add(SlackConfig(singleton=1, channel_id="C1"))
    db.commit()
    db.add(SlackConfig(singleton=1, channel_id="C2"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_oauth_app_factory_caches_until_invalidated(db, google_env, monkeypatch):
    first = oauth_app_factory.get(db)
    assert first.client_id == "env-client-id"

    monkeypatch.setenv("GOOGLE_CLIENT_ID", "changed-client-id")
    assert oauth_app_factory.get(db).client_id == "env-client-id"

    save_credentials(db, "db-client-id", "db-client-secret", "https://db.example.com/callback")
    assert oauth_app_factory.get(db).client_id == "db-client-id"

    delete_credentials(db)
    assert oauth_app_factory.get(db).client_id == "changed-client-id"


def test_oauth_tokens_are_encrypted_and_keep_refresh_token(db, create_user):
    admin = create_user("admin@example.com", role="admin")

    save_oauth_tokens(db, admin.id, "access-1", "refresh-1", None)
    updated = save_oauth_tokens(db, admin.id, "access-2", None, None)

    assert updated.access_token == "access-2"
    assert updated.refresh_token == "refresh-1"
    record = db.scalar(select(GoogleOAuthToken).where(GoogleOAuthToken.user_id == admin.id))
    assert record.access_token != "access-2"
    assert len(db.scalars(select(GoogleOAuthToken)).all()) == 1


def test_find_admin_token_prefers_requester_and_ignores_employees(db, create_user):
    first_admin = create_user("first@example.com", role="admin")
    second_admin = create_user("second@example.com", role="admin")
    employee = create_user("grace@example.com")

    assert find_admin_token(db) is None

    save_oauth_tokens(db, employee.id, "employee-access", "employee-refresh", None)
    assert find_admin_token(db, employee.id) is None

    save_oauth_tokens(db, first_admin.id, "first-access", "first-refresh", None)
    save_oauth_tokens(db, second_admin.id, "second-access", "second-refresh", None)

    assert find_admin_token(db, first_admin.id).access_token == "first-access"
    assert find_admin_token(db, employee.id).user_id in {first_admin.id, second_admin.id}


def test_credentials_endpoints(client, create_user, auth_headers):
    admin = create_user("admin@example.com", role="admin")
    headers = auth_headers(admin)

    assert client.get("/api/admin/calendar/credentials", headers=headers).status_code == 404
    assert client.delete("/api/admin/calendar/credentials", headers=headers).status_code == 404

    saved = client.post(
        "/api/admin/calendar/credentials",
        headers=headers,
        json={"clientId": "client-id", "clientSecret": "client-secret"},
    )
    assert saved.status_code == 200

    body = client.get("/api/admin/calendar/credentials", headers=headers).json()
    assert body == {
        "clientId": "client-id",
        "redirectUri": "https://developers.google.com/oauthplayground",
        "hasClientSecret": True,
        "source": "database",
    }

    assert client.delete("/api/admin/calendar/credentials", headers=headers).status_code == 200
    assert client.get("/api/admin/calendar/credentials", headers=headers).status_code == 404
