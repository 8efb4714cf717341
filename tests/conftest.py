"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database built from the models.
Tests that need real row locks or the migrations use PostgreSQL through
TEST_DATABASE_URL and skip when it is not reachable.
"""

import os

# Settings are read once per process, so configure them before importing campus
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campus.api.deps import get_db, get_notifier
from campus.api.main import app
from campus.core.rbac.checker import CallerContext
from campus.core.security import issue_tokens
from campus.db import models  # noqa: F401
from campus.db.base import Base
from campus.services.notifier import Notifier
from tests import factories


class RecordingNotifier(Notifier):
    """Keeps every message in memory instead of queueing it."""

    def __init__(self):
        self.sent = []
        self.password_resets = []

    def notify(self, account_id, title, body, kind="general", metadata=None, priority="medium"):
        self.sent.append({
            "account_id": account_id,
            "title": title,
            "body": body,
            "kind": kind,
            "metadata": metadata or {},
            "priority": priority,
        })

    def send_password_reset(self, account_id, token):
        self.password_resets.append({"account_id": account_id, "token": token})

    def recipients(self):
        return [message["account_id"] for message in self.sent]


class FailingNotifier(Notifier):
    """Simulates a broker outage."""

    def notify(self, *args, **kwargs):
        raise RuntimeError("broker unavailable")

    def send_password_reset(self, *args, **kwargs):
        raise RuntimeError("broker unavailable")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def org_factory(db_session):
    def _create(**kwargs):
        return factories.create_organization(db_session, **kwargs)
    return _create


@pytest.fixture
def account_factory(db_session):
    def _create(**kwargs):
        return factories.create_account(db_session, **kwargs)
    return _create


@pytest.fixture
def admin(db_session):
    return factories.create_admin(db_session)


@pytest.fixture
def university(org_factory):
    return org_factory(kind="university", name="State University", domain="state.edu")


@pytest.fixture
def tpo(account_factory, university):
    return account_factory(role="tpo", organization=university, email="tpo@state.edu")


@pytest.fixture
def caller_for():
    """Build the CallerContext the guard would resolve for an account."""
    return CallerContext.from_account


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(db_session):
    """Bearer headers for a freshly issued session of ``account``."""
    def _headers(account):
        pair = issue_tokens(account.id, db_session)
        return {"Authorization": f"Bearer {pair.access_token}"}
    return _headers
