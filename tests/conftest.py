from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import app.db as app_db

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("BOOTSTRAP_TOKEN", "test-bootstrap-token")

from app.credentials import oauth_app_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models import User  # noqa: E402
from app.security import create_access_token, hash_password  # noqa: E402

DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_leave_desk.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("BOOTSTRAP_TOKEN", "test-bootstrap-token")
    for name in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI", "CRON_SECRET_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = create_engine(
        app_db.DATABASE_URL,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
    app_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=app_db.engine,
        expire_on_commit=False,
    )
    oauth_app_factory.invalidate()

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    oauth_app_factory.invalidate()
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def db():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def create_user():
    def _create(
        email: str,
        role: str = "employee",
        name: str | None = None,
        department: str = "Engineering",
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        session = app_db.SessionLocal()
        try:
            user = User(
                name=name or email.split("@", 1)[0].title(),
                email=email,
                password_hash=hash_password(password),
                role=role,
                department=department,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
        finally:
            session.close()

    return _create


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.email, user.role, user.name, user.department)
        return {"Authorization": f"Bearer {token}"}

    return _headers
