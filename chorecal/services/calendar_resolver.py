"""
Calendar Resolver
Finds the dedicated task calendar by name, creating it on first use.
"""
from typing import Optional

import structlog

from chorecal.core.config import settings
from chorecal.services.google_calendar import CalendarProvider

logger = structlog.get_logger(__name__)

CALENDAR_DESCRIPTION = "Tasks and chores from ChorePulse"


class CalendarResolver:
    """Maps a calendar display name to its provider id."""

    def __init__(self, provider: CalendarProvider, time_zone: Optional[str] = None):
        self.provider = provider
        self.time_zone = time_zone or settings.calendar_timezone

    async def resolve_calendar(self, desired_name: str) -> str:
        """
        Return the id of the calendar titled ``desired_name``.

        Matching is on exact title. When several calendars share the title the
        first listed wins. Two first-time callers racing here can each create
        a calendar.

        Raises:
            ProviderError: Listing or creating the calendar failed.
        """
        for calendar in await self.provider.list_calendars():
            if calendar.get("summary") == desired_name:
                return calendar["id"]

        created = await self.provider.insert_calendar(
            summary=desired_name,
            description=CALENDAR_DESCRIPTION,
            time_zone=self.time_zone,
        )
        logger.info("calendar_created", calendar_id=created["id"], name=desired_name)
        return created["id"]
