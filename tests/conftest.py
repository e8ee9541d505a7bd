"""
ChoreCal Test Configuration and Fixtures
Shared pytest fixtures for all test modules.
"""
import itertools
import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chorecal.core.exceptions import ProviderError
from chorecal.models import Base, CalendarIntegration, Task, TaskAssignment, User

# Mid-June so America/New_York is on EDT (UTC-4).
NOW = datetime(2026, 6, 15, 16, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create an async SQLite engine for testing."""
    # Use a unique temp file for each test to ensure complete isolation
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session for testing."""
    async_session_maker = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# =============================================================================
# Clock
# =============================================================================


class FixedClock:
    """Callable clock pinned to a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# =============================================================================
# Fake Google APIs
# =============================================================================


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeGoogleCalendar:
    """
    In-memory stand-in for the Calendar v3 API.

    Every call is recorded in ``calls``. ``fail(operation, key)`` makes the
    matching call raise ProviderError; keys are the calendar summary for
    insert_calendar, the calendar id for list_events, the task id for
    insert_event/update_event and the event id for delete_event.
    """

    def __init__(self):
        self.calendars: list[dict[str, Any]] = [
            {"id": "primary", "summary": "parent@example.com"},
        ]
        self.events: dict[str, dict[str, dict[str, Any]]] = {"primary": {}}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[tuple[str, Any], ProviderError] = {}
        self.tokens: list[str] = []
        self.closed = 0
        self._ids = itertools.count(1)

    # -- test helpers --------------------------------------------------------

    def fail(self, operation: str, key: Any = "*", status_code: int = 500) -> None:
        self.failures[(operation, key)] = ProviderError(
            f"{operation} failed", status_code=status_code
        )

    def factory(self, access_token: str) -> "FakeGoogleCalendar":
        self.tokens.append(access_token)
        return self

    def add_event(self, calendar_id: str, body: dict[str, Any]) -> str:
        event_id = f"evt{next(self._ids)}"
        self.events.setdefault(calendar_id, {})[event_id] = {"id": event_id, **body}
        return event_id

    def managed_events(self, calendar_id: str) -> dict[str, dict[str, Any]]:
        """Tagged events on a calendar keyed by task id."""
        result = {}
        for event in self.events.get(calendar_id, {}).values():
            private = event.get("extendedProperties", {}).get("private", {})
            if private.get("synced") == "true":
                result[private["task_id"]] = event
        return result

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _check(self, operation: str, key: Any) -> None:
        error = self.failures.get((operation, key)) or self.failures.get((operation, "*"))
        if error is not None:
            raise error

    # -- CalendarProvider ----------------------------------------------------

    async def list_calendars(self) -> list[dict[str, Any]]:
        self.calls.append(("list_calendars", None))
        self._check("list_calendars", "*")
        return [dict(c) for c in self.calendars]

    async def insert_calendar(self, summary: str, description: str, time_zone: str) -> dict[str, Any]:
        self.calls.append(("insert_calendar", summary))
        self._check("insert_calendar", summary)
        calendar = {
            "id": f"cal{next(self._ids)}@group.calendar.google.com",
            "summary": summary,
            "description": description,
            "timeZone": time_zone,
        }
        self.calendars.append(calendar)
        self.events[calendar["id"]] = {}
        return dict(calendar)

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: str,
        time_max: str,
        private_extended_property: Optional[str] = None,
        single_events: bool = False,
        order_by: Optional[str] = None,
        max_results: int = 2500,
        paginate: bool = True,
    ) -> list[dict[str, Any]]:
        self.calls.append(("list_events", calendar_id))
        self._check("list_events", calendar_id)

        lower, upper = _parse(time_min), _parse(time_max)
        items = []
        for event in self.events.get(calendar_id, {}).values():
            if private_extended_property:
                key, _, value = private_extended_property.partition("=")
                private = event.get("extendedProperties", {}).get("private", {})
                if private.get(key) != value:
                    continue
            start = event.get("start", {}).get("dateTime")
            end = event.get("end", {}).get("dateTime")
            if start and end and not (_parse(start) < upper and _parse(end) > lower):
                continue
            items.append(dict(event))

        if order_by == "startTime":
            items.sort(key=lambda e: e.get("start", {}).get("dateTime") or e.get("start", {}).get("date", ""))
        return items[:max_results] if not paginate else items

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        task_id = body["extendedProperties"]["private"]["task_id"]
        self.calls.append(("insert_event", task_id))
        self._check("insert_event", task_id)
        event_id = self.add_event(calendar_id, body)
        return dict(self.events[calendar_id][event_id])

    async def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        task_id = body["extendedProperties"]["private"]["task_id"]
        self.calls.append(("update_event", task_id))
        self._check("update_event", task_id)
        if event_id not in self.events.get(calendar_id, {}):
            raise ProviderError("Not Found", status_code=404)
        self.events[calendar_id][event_id] = {"id": event_id, **body}
        return dict(self.events[calendar_id][event_id])

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        self.calls.append(("delete_event", event_id))
        self._check("delete_event", event_id)
        if event_id not in self.events.get(calendar_id, {}):
            raise ProviderError("Resource has been deleted", status_code=410)
        del self.events[calendar_id][event_id]

    async def aclose(self) -> None:
        self.closed += 1


class FakeOAuthClient:
    """Records OAuth calls and returns canned token responses."""

    def __init__(
        self,
        access_token: str = "refreshed-access-token",
        expires_in: Optional[int] = 3600,
        error: Optional[Exception] = None,
        refresh_token: Optional[str] = "new-refresh-token",
        email: Optional[str] = "parent@example.com",
    ):
        self.access_token = access_token
        self.expires_in = expires_in
        self.error = error
        self.refresh_token = refresh_token
        self.email = email
        self.refresh_calls: list[str] = []
        self.exchange_calls: list[str] = []

    @property
    def network_calls(self) -> int:
        return len(self.refresh_calls) + len(self.exchange_calls)

    def _tokens(self) -> dict[str, Any]:
        tokens: dict[str, Any] = {"access_token": self.access_token, "token_type": "Bearer"}
        if self.expires_in is not None:
            tokens["expires_in"] = self.expires_in
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        self.refresh_calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return self._tokens()

    async def exchange_code(self, code: str) -> dict[str, Any]:
        self.exchange_calls.append(code)
        if self.error is not None:
            raise self.error
        tokens = self._tokens()
        if self.refresh_token:
            tokens["refresh_token"] = self.refresh_token
        return tokens

    async def get_user_email(self, access_token: str) -> Optional[str]:
        return self.email


@pytest.fixture
def fake_calendar() -> FakeGoogleCalendar:
    return FakeGoogleCalendar()


class FakeCalendarPool:
    """One FakeGoogleCalendar per access token, so each user gets their own account."""

    def __init__(self):
        self.accounts: dict[str, FakeGoogleCalendar] = {}
        self.broken: dict[str, Exception] = {}

    def __getitem__(self, access_token: str) -> FakeGoogleCalendar:
        return self.accounts.setdefault(access_token, FakeGoogleCalendar())

    def factory(self, access_token: str) -> FakeGoogleCalendar:
        if access_token in self.broken:
            raise self.broken[access_token]
        return self[access_token].factory(access_token)


@pytest.fixture
def fake_oauth() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def fake_calendar_pool() -> FakeCalendarPool:
    return FakeCalendarPool()


# =============================================================================
# Household Data
# =============================================================================


@pytest_asyncio.fixture
async def household(async_session: AsyncSession) -> SimpleNamespace:
    """A household with a parent and a child, plus a user from another household."""
    org_id = uuid.uuid4()
    parent = User(id=uuid.uuid4(), organization_id=org_id, name="Alex", email="alex@example.com")
    child = User(id=uuid.uuid4(), organization_id=org_id, name="Sam")
    neighbor = User(id=uuid.uuid4(), organization_id=uuid.uuid4(), name="Pat")
    async_session.add_all([parent, child, neighbor])
    await async_session.commit()
    return SimpleNamespace(org_id=org_id, parent=parent, child=child, neighbor=neighbor)


async def add_task(
    session: AsyncSession,
    organization_id: uuid.UUID,
    assignees: list[User],
    **fields: Any,
) -> Task:
    """Insert a task with assignments in the given order."""
    fields.setdefault("name", "Take out trash")
    fields.setdefault("status", "active")
    task = Task(id=uuid.uuid4(), organization_id=organization_id, **fields)
    session.add(task)
    for position, user in enumerate(assignees):
        session.add(
            TaskAssignment(
                id=uuid.uuid4(),
                task_id=task.id,
                user_id=user.id,
                created_at=NOW + timedelta(seconds=position),
            )
        )
    await session.commit()
    return task


async def add_integration(
    session: AsyncSession,
    user: User,
    **overrides: Any,
) -> CalendarIntegration:
    """Insert a connected Google integration for ``user``."""
    values: dict[str, Any] = {
        "id": uuid.uuid4(),
        "user_id": user.id,
        "organization_id": user.organization_id,
        "provider": "google",
        "email": "parent@example.com",
        "access_token": "stored-access-token",
        "refresh_token": "stored-refresh-token",
        "token_expiry": NOW + timedelta(hours=1),
        "sync_enabled": True,
        "sync_tasks_to_calendar": True,
        "sync_calendar_to_tasks": False,
        "calendar_name": "ChorePulse Tasks",
        "last_sync_status": "pending",
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    integration = CalendarIntegration(**values)
    session.add(integration)
    await session.commit()
    return integration


@pytest.fixture
def make_task(async_session: AsyncSession):
    """Factory fixture wrapping add_task for the test session."""

    async def _make(organization_id: uuid.UUID, assignees: list[User], **fields: Any) -> Task:
        return await add_task(async_session, organization_id, assignees, **fields)

    return _make


@pytest.fixture
def make_integration(async_session: AsyncSession):
    """Factory fixture wrapping add_integration for the test session."""

    async def _make(user: User, **overrides: Any) -> CalendarIntegration:
        return await add_integration(async_session, user, **overrides)

    return _make
