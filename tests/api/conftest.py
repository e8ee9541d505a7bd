"""
API test fixtures.
An httpx client bound to the FastAPI app, with the database and Google
clients swapped for test doubles.
"""
from datetime import datetime, timedelta, timezone
from functools import partial

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from chorecal.api import integrations
from chorecal.api.deps import ALGORITHM
from chorecal.core.config import settings
from chorecal.database import get_db
from chorecal.main import app
from chorecal.services.calendar_sync import CalendarSyncService

TEST_SECRET_KEY = "test-secret-key-that-is-at-least-32-characters"


@pytest.fixture(autouse=True)
def api_settings(monkeypatch):
    """Deterministic settings for every API test."""
    monkeypatch.setattr(settings, "secret_key", TEST_SECRET_KEY)
    monkeypatch.setattr(settings, "app_url", "https://app.chorepulse.test")
    monkeypatch.setattr(settings, "google_client_id", "client-id")
    monkeypatch.setattr(settings, "google_client_secret", "client-secret")
    monkeypatch.setattr(settings, "cron_secret", "cron-secret")
    return settings


@pytest.fixture
def patched_service(monkeypatch, fake_oauth, fake_calendar, clock):
    """Routes build CalendarSyncService with the fake Google clients and clock."""
    factory = partial(
        CalendarSyncService,
        oauth_client=fake_oauth,
        calendar_factory=fake_calendar.factory,
        clock=clock,
    )
    monkeypatch.setattr(integrations, "CalendarSyncService", factory)
    return factory


@pytest_asyncio.fixture
async def client(async_session, patched_service):
    """Async HTTP client for the app using the test database session."""

    async def override_get_db():
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def make_user_token(user_id, expires_in: timedelta = timedelta(hours=1)) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        TEST_SECRET_KEY,
        algorithm=ALGORITHM,
    )


@pytest.fixture
def auth_headers(household):
    """Bearer headers for the household parent."""
    return {"Authorization": f"Bearer {make_user_token(household.parent.id)}"}


@pytest.fixture
def user_token():
    """Factory for user access tokens."""
    return make_user_token
