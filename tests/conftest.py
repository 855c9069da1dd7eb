"""Shared fixtures: an in-memory database, deterministic settings and credential rows."""
from __future__ import annotations

import os

os.environ.setdefault("LOG_DIR", "")
os.environ["AUTH_ENABLED"] = "1"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["QBO_CLIENT_ID"] = "client-id"
os.environ["QBO_CLIENT_SECRET"] = "client-secret"
os.environ["QBO_API_BASE"] = "https://qbo.test"
os.environ["QBO_TOKEN_URL"] = "https://identity.test/oauth2/v1/tokens/bearer"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.models import Base, MonthlySnapshot, Profile, QboToken

from fakes import REALM_ID, USER_ID, FakeQuickBooks


@pytest.fixture()
def settings() -> Settings:
    return Settings.from_env()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_qbo() -> FakeQuickBooks:
    return FakeQuickBooks()


@pytest.fixture()
def link_realm(session):
    """Store a profile and credential; returns the credential row."""

    def _link(
        user_id: str = USER_ID,
        realm_id: str = REALM_ID,
        *,
        expires_in: timedelta = timedelta(days=365 * 50),
        refresh_token: str | None = "refresh-1",
        access_token: str = "access-1",
    ) -> QboToken:
        session.add(Profile(user_id=user_id, qbo_realm_id=realm_id))
        record = QboToken(
            user_id=user_id,
            realm_id=realm_id,
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=datetime.now(timezone.utc) + expires_in,
        )
        session.add(record)
        session.commit()
        return record

    return _link


@pytest.fixture()
def add_snapshot(session):
    def _add(
        year: int,
        month: int,
        *,
        realm_id: str = REALM_ID,
        revenue: float = 1000.0,
        expenses: float = 600.0,
        embedding: list[float] | None = None,
    ) -> MonthlySnapshot:
        snapshot = MonthlySnapshot(
            realm_id=realm_id,
            year=year,
            month=month,
            data={
                "revenue": {"total": revenue},
                "expenses": {"total": expenses, "by_account": {"Rent": expenses}},
                "net_income": revenue - expenses,
            },
            embedding=embedding,
        )
        session.add(snapshot)
        session.commit()
        return snapshot

    return _add
