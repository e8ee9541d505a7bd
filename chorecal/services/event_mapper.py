"""
Event Mapper
Builds the calendar event for a task. Pure: no I/O, and deterministic for a
given task and clock.
"""
import re
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from chorecal.core.config import settings
from chorecal.core.exceptions import InvalidTaskError
from chorecal.schemas.sync import EventDateTime, EventPayload, TaskProjection
from chorecal.services.recurrence import encode_recurrence
from chorecal.utils.clock import Clock, utc_now

DEFAULT_DUE_TIME = time(9, 0)
EVENT_DURATION = timedelta(hours=1)
UNASSIGNED = "Unassigned"

_DUE_TIME_PATTERN = re.compile(
    r"^\s*(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?(?::\d{2})?\s*(?P<meridiem>[ap]\.?m\.?)?\s*$",
    re.IGNORECASE,
)


def parse_due_time(value: str) -> time:
    """
    Parse a task due time.

    Accepts 24-hour ("15:00", "9:05", "15:00:00") and 12-hour ("3:00 PM",
    "12:15 am", "3 PM") forms. 12 AM is midnight and 12 PM is noon;
    a zero hour with a meridiem ("0:30 AM") is accepted.

    Raises:
        ValueError: The value is not a recognizable time of day.
    """
    match = _DUE_TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Unrecognized due time {value!r}")

    hour = int(match.group("hour"))
    minute_text = match.group("minute")
    meridiem = match.group("meridiem")

    if minute_text is None and meridiem is None:
        raise ValueError(f"Unrecognized due time {value!r}")
    minute = int(minute_text or 0)
    if minute > 59:
        raise ValueError(f"Minute out of range in {value!r}")

    if meridiem:
        if hour > 12:
            raise ValueError(f"Hour out of range in {value!r}")
        is_pm = meridiem.lower().startswith("p")
        if hour == 12:
            hour = 0
        if is_pm:
            hour += 12
    elif hour > 23:
        raise ValueError(f"Hour out of range in {value!r}")

    return time(hour, minute)


class EventMapper:
    """Converts task projections into calendar event payloads."""

    def __init__(
        self,
        app_url: Optional[str] = None,
        time_zone: Optional[str] = None,
        clock: Clock = utc_now,
    ):
        self.app_url = (app_url or settings.app_url).rstrip("/")
        self.time_zone = time_zone or settings.calendar_timezone
        self.zone = ZoneInfo(self.time_zone)
        self.clock = clock

    def _start_of(self, task: TaskProjection) -> datetime:
        if task.due_time and task.due_time.strip():
            try:
                due = parse_due_time(task.due_time)
            except ValueError as e:
                raise InvalidTaskError(task.id, str(e)) from e
        else:
            due = DEFAULT_DUE_TIME

        today = self.clock().astimezone(self.zone).date()
        return datetime.combine(today, due, tzinfo=self.zone)

    def _describe(self, task: TaskProjection, assigned_to: str) -> str:
        lines = [
            task.description or "",
            f"\nAssigned to: {assigned_to}",
            f"Category: {task.category}" if task.category else "",
            f"Points: {task.points}" if task.points else "",
            f"\nManage in ChorePulse: {self.app_url}/tasks",
        ]
        return "\n".join(line for line in lines if line)

    def to_event(self, task: TaskProjection) -> EventPayload:
        """
        Build the event for ``task``.

        The event falls on today's date in the calendar time zone, at the
        task's due time (09:00 when unset), and lasts one hour.

        Raises:
            InvalidTaskError: The due time cannot be parsed.
        """
        start = self._start_of(task)
        assigned_to = ", ".join(task.assigned_to_names) or UNASSIGNED
        rule = encode_recurrence(task.frequency, task.recurrence_interval)

        return EventPayload(
            task_id=task.id,
            summary=f"{task.name} ({assigned_to})",
            description=self._describe(task, assigned_to),
            start=EventDateTime(date_time=start, time_zone=self.time_zone),
            end=EventDateTime(date_time=start + EVENT_DURATION, time_zone=self.time_zone),
            recurrence=[rule.to_rrule()] if rule else None,
        )
