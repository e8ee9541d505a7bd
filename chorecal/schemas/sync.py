"""
Calendar Sync Schemas
Typed records passed between the sync engine components.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

# Ownership tag written into every managed event's private extended properties
TASK_ID_PROPERTY = "task_id"
MANAGED_PROPERTY = "synced"
MANAGED_VALUE = "true"

EVENT_COLOR_ID = "11"


class TaskFrequency(str, Enum):
    """How often a task repeats."""

    ONE_TIME = "one-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskProjection(BaseModel):
    """The engine's read-only view of a task assigned to the syncing user."""

    id: str = Field(..., description="Stable task identifier")
    name: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Free-text description")
    category: Optional[str] = Field(None, description="Task category")
    points: Optional[int] = Field(None, description="Reward points")
    due_time: Optional[str] = Field(None, description="Time of day, 'HH:MM' or 'h:MM AM/PM'")
    frequency: TaskFrequency = Field(TaskFrequency.ONE_TIME, description="Repetition cadence")
    recurrence_interval: int = Field(1, description="Repeat every N periods")
    assigned_to_names: list[str] = Field(default_factory=list, description="Assignee display names")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, str):
            value = str(value)
        return value

    @field_validator("id", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("frequency", mode="before")
    @classmethod
    def _unknown_frequency_is_one_time(cls, value: Any) -> Any:
        if isinstance(value, TaskFrequency):
            return value
        try:
            return TaskFrequency(value)
        except ValueError:
            return TaskFrequency.ONE_TIME

    @field_validator("recurrence_interval", mode="before")
    @classmethod
    def _default_interval(cls, value: Any) -> Any:
        return 1 if value is None else value


class EventDateTime(BaseModel):
    """Start or end of a timed event."""

    date_time: datetime
    time_zone: str

    def to_api(self) -> dict[str, str]:
        return {"dateTime": self.date_time.isoformat(), "timeZone": self.time_zone}


class EventPayload(BaseModel):
    """A fully built calendar event for one task."""

    task_id: str
    summary: str
    description: str
    start: EventDateTime
    end: EventDateTime
    recurrence: Optional[list[str]] = None
    color_id: str = EVENT_COLOR_ID

    @property
    def private_properties(self) -> dict[str, str]:
        return {TASK_ID_PROPERTY: self.task_id, MANAGED_PROPERTY: MANAGED_VALUE}

    def to_api(self) -> dict[str, Any]:
        """Serialize to the Google Calendar v3 event resource shape."""
        body: dict[str, Any] = {
            "summary": self.summary,
            "description": self.description,
            "start": self.start.to_api(),
            "end": self.end.to_api(),
            "colorId": self.color_id,
            "extendedProperties": {"private": self.private_properties},
        }
        if self.recurrence:
            body["recurrence"] = list(self.recurrence)
        return body


class RemoteEvent(BaseModel):
    """An event as it exists on the provider."""

    event_id: str
    summary: Optional[str] = None
    start: Optional[dict[str, Any]] = None
    end: Optional[dict[str, Any]] = None
    private_properties: dict[str, str] = Field(default_factory=dict)

    @property
    def task_id(self) -> Optional[str]:
        return self.private_properties.get(TASK_ID_PROPERTY) or None

    @property
    def is_managed(self) -> bool:
        return self.private_properties.get(MANAGED_PROPERTY) == MANAGED_VALUE

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "RemoteEvent":
        private = (item.get("extendedProperties") or {}).get("private") or {}
        return cls(
            event_id=item["id"],
            summary=item.get("summary"),
            start=item.get("start"),
            end=item.get("end"),
            private_properties={str(k): str(v) for k, v in private.items()},
        )


class ExternalEvent(BaseModel):
    """A user's own calendar event, surfaced read-only to the app."""

    id: str
    summary: str = "Untitled Event"
    description: str = ""
    start: Optional[str] = None
    end: Optional[str] = None
    is_all_day: bool = False
    location: str = ""
    html_link: Optional[str] = None
    color_id: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "ExternalEvent":
        start = item.get("start") or {}
        end = item.get("end") or {}
        return cls(
            id=item["id"],
            summary=item.get("summary") or "Untitled Event",
            description=item.get("description") or "",
            start=start.get("dateTime") or start.get("date"),
            end=end.get("dateTime") or end.get("date"),
            is_all_day=not start.get("dateTime"),
            location=item.get("location") or "",
            html_link=item.get("htmlLink"),
            color_id=item.get("colorId"),
        )


class SyncWindow(BaseModel):
    """Time range in which managed events are looked up."""

    start: datetime
    end: datetime


class SyncResult(BaseModel):
    """Outcome of one user's sync."""

    success: bool
    synced_count: int = 0
    error: Optional[str] = None
    created_count: int = 0
    updated_count: int = 0
    deleted_count: int = 0
    failed_count: int = 0
    skipped: bool = False
    user_id: Optional[str] = None
