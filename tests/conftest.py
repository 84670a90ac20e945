"""
Shared pytest fixtures: in-memory SQLite, users, connected Google accounts,
session tokens and the fake Google backend.
"""

import os

# Settings are read at import time; configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SESSION_JWT_SECRET"] = "test-session-secret"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["FRONTEND_URL"] = "https://app.example.com"
os.environ["FACEBOOK_APP_ID"] = "1234567890"
os.environ["SYNC_LOCK_BACKEND"] = "memory"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("TOKEN_ENCRYPTION_KEY", None)

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from app.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Event, User  # noqa: E402
from app.models_connected_account import ConnectedAccount  # noqa: E402
from app.routes.rsvp import rsvp_rate_limit  # noqa: E402
from app.security_utils import encrypt_token  # noqa: E402
from app.services.google_calendar_service import get_google_transport  # noqa: E402
from app.services.token_provider import TokenProvider  # noqa: E402
from app.utils.datetime_utils import format_rfc3339, utcnow  # noqa: E402
from tests.fake_google import FakeGoogle  # noqa: E402


def make_session_token(sub: str, email: str = "owner@example.com", expires_in: int = 3600) -> str:
    """HS256 session token shaped like the identity provider's"""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": sub,
        "email": email,
        "aud": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    return jwt.encode(claims, "test-session-secret", algorithm="HS256")


def google_event(event_id: str, summary: str = "Remote Event", start: datetime | None = None, **extra) -> dict:
    """Timed Google event resource, one hour long, tomorrow by default"""
    start = start or utcnow().replace(microsecond=0) + timedelta(days=1)
    resource = {
        "id": event_id,
        "summary": summary,
        "status": "confirmed",
        "start": {"dateTime": format_rfc3339(start), "timeZone": "UTC"},
        "end": {"dateTime": format_rfc3339(start + timedelta(hours=1)), "timeZone": "UTC"},
    }
    resource.update(extra)
    return resource


def make_event(db, user: User, title: str = "Standup", start: datetime | None = None, **fields) -> Event:
    start = start or utcnow().replace(microsecond=0) + timedelta(days=1)
    values = {"end_time": start + timedelta(minutes=30), "timezone": "UTC", "is_all_day": False}
    values.update(fields)
    event = Event(user_id=user.id, title=title, start_time=start, **values)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def connect_google(
    db,
    user: User,
    access_token: str = "stored-access",
    refresh_token: str | None = "stored-refresh",
    expires_at: datetime | None = None,
) -> ConnectedAccount:
    account = ConnectedAccount(
        user_id=user.id,
        provider="google",
        provider_account_id=user.auth_uid,
        access_token=encrypt_token(access_token),
        refresh_token=encrypt_token(refresh_token) if refresh_token else None,
        expires_at=expires_at if expires_at is not None else utcnow() + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/calendar https://www.googleapis.com/auth/calendar.events",
        is_primary=True,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db) -> User:
    user = User(auth_uid="owner-uid", email="owner@example.com", full_name="Event Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db) -> User:
    user = User(auth_uid="other-uid", email="other@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def token_provider(db, fake_google) -> TokenProvider:
    return TokenProvider(db, transport=fake_google.transport)


@pytest.fixture
def client(db, fake_google):
    """API client sharing the test session and the fake Google backend"""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_google_transport] = lambda: fake_google.transport
    app.dependency_overrides[rsvp_rate_limit] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_session_token(user.auth_uid, user.email)}"}
