"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of clubhouse.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from clubhouse.config import ClubhouseConfig  # noqa: E402
from clubhouse.database.engine import init_db  # noqa: E402
from clubhouse.database.models import (  # noqa: E402
    Announcement,
    AnnouncementStatus,
    AnnouncementType,
    Branch,
    Event,
    EventStatus,
    EventType,
    Role,
    User,
    Visibility,
)
from clubhouse.policy.clock import utcnow  # noqa: E402
from clubhouse.policy.roles import Actor  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Clubhouse tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so the TestClient's worker thread shares the same
    in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for assertions against committed state."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def config() -> ClubhouseConfig:
    return ClubhouseConfig(
        club_name="Test Club",
        club_motto="Testing saves lives",
        dashboard_port=8000,
    )


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------
def persist(engine: Engine, *rows):
    """Commit *rows* and return the first, with ids populated."""
    with Session(engine, expire_on_commit=False) as session:
        session.add_all(rows)
        session.commit()
    return rows[0]


_email_seq = 0


def make_user(
    engine: Engine,
    role: str = Role.MEMBER,
    *,
    first_name: str = "Test",
    last_name: str | None = None,
    email: str | None = None,
    is_active: bool = True,
    is_approved: bool = True,
    branch_id: int | None = None,
) -> User:
    global _email_seq
    _email_seq += 1
    return persist(engine, User(
        first_name=first_name,
        last_name=last_name or str(role).title(),
        email=email or f"user{_email_seq}@example.org",
        role=role,
        is_active=is_active,
        is_approved=is_approved,
        branch_id=branch_id,
    ))


def make_branch(engine: Engine, code: str = "MAIN") -> Branch:
    return persist(engine, Branch(name=f"{code} campus", code=code))


def make_announcement(engine: Engine, author: User | None, **overrides) -> Announcement:
    fields = {
        "title": "Blood drive this week",
        "content": "Join us at the main hall this Saturday morning.",
        "type": AnnouncementType.GENERAL,
        "visibility": Visibility.PUBLIC,
        "status": AnnouncementStatus.PUBLISHED,
        "publish_at": utcnow() - timedelta(hours=1),
        "author_id": author.id if author else None,
        "tags": [],
    }
    fields.update(overrides)
    return persist(engine, Announcement(**fields))


def make_event(engine: Engine, organizer: User | None, **overrides) -> Event:
    now = utcnow()
    fields = {
        "title": "First aid training",
        "description": "Hands-on first aid and CPR training session.",
        "type": EventType.TRAINING,
        "visibility": Visibility.PUBLIC,
        "status": EventStatus.PUBLISHED,
        "start_date": now + timedelta(days=7),
        "end_date": now + timedelta(days=7, hours=3),
        "location": "Main hall",
        "organizer_id": organizer.id if organizer else None,
        "max_participants": 50,
        "registration_deadline": now + timedelta(days=5),
        "requirements": [],
        "tags": [],
    }
    fields.update(overrides)
    return persist(engine, Event(**fields))


def actor_for(user: User) -> Actor:
    from clubhouse.api.deps import actor_from_user

    return actor_from_user(user)


def make_token(user_id: int, **kwargs) -> str:
    from clubhouse.api.auth import issue_token

    return issue_token(user_id, **kwargs)


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine, config):
    """TestClient wired to the in-memory engine and a fixed config."""
    from fastapi.testclient import TestClient

    from clubhouse.api.main import app
    from clubhouse.api.routes import events as event_routes

    # Route modules hold the dependency objects the app was built with.
    app.dependency_overrides[event_routes.get_engine] = lambda: db_engine
    app.dependency_overrides[event_routes.get_config] = lambda: config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
