from __future__ import annotations

import os
from typing import Any, TypeVar

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker


def get_database_url() -> str:
    raw_url = os.getenv("DATABASE_URL", "sqlite:///./leave_desk.db")
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


DATABASE_URL = get_database_url()
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
Base = declarative_base()

ModelT = TypeVar("ModelT")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_singleton(db: Session, model: type[ModelT]) -> ModelT | None:
    return db.scalar(select(model).where(model.singleton == 1))


def save_singleton(db: Session, model: type[ModelT], **values: Any) -> ModelT:
    """Update the single row of ``model`` in place, creating it on first save."""
    record = get_singleton(db, model)
    if record is None:
        record = model(singleton=1)
    for key, value in values.items():
        setattr(record, key, value)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def delete_singleton(db: Session, model: type[ModelT]) -> bool:
    record = get_singleton(db, model)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True
