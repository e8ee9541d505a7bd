"""
Calendar Integration Schemas
Pydantic models for the Google Calendar integration API.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from chorecal.schemas.sync import ExternalEvent


class IntegrationSettings(BaseModel):
    """Stored settings and sync health of an integration."""

    email: Optional[str] = Field(None, description="Connected Google account")
    sync_enabled: bool = Field(..., description="Master sync switch")
    sync_tasks_to_calendar: bool = Field(..., description="Push tasks to the calendar")
    sync_calendar_to_tasks: bool = Field(..., description="Show calendar events in the app")
    calendar_name: str = Field(..., description="Name of the dedicated calendar")
    calendar_id: Optional[str] = Field(None, description="Provider id of the calendar")
    last_sync_at: Optional[datetime] = Field(None, description="Last sync attempt")
    last_sync_status: Optional[str] = Field(None, description="pending, success or error")
    last_sync_error: Optional[str] = Field(None, description="Error from the last failed sync")

    model_config = {"from_attributes": True}


class IntegrationStatusResponse(BaseModel):
    """Connection status for the current user."""

    connected: bool = Field(..., description="Integration exists and holds a valid token")
    integration: Optional[IntegrationSettings] = Field(None, description="Integration settings")


class UpdateIntegrationRequest(BaseModel):
    """Partial update of integration settings."""

    sync_tasks_to_calendar: Optional[bool] = Field(None, description="Push tasks to the calendar")
    sync_calendar_to_tasks: Optional[bool] = Field(None, description="Show calendar events in the app")
    calendar_name: Optional[str] = Field(
        None, min_length=1, max_length=255, description="Name of the dedicated calendar"
    )


class UpdateIntegrationResponse(BaseModel):
    """Result of a settings update."""

    success: bool = True
    integration: IntegrationSettings


class SyncResponse(BaseModel):
    """Response from a manual sync."""

    success: bool = Field(..., description="Whether the sync completed")
    synced_count: int = Field(..., description="Events created or updated")
    deleted_count: int = Field(0, description="Stale events removed")
    failed_count: int = Field(0, description="Tasks that could not be synced")
    message: str = Field(..., description="Human-readable summary")


class ExternalEventsResponse(BaseModel):
    """Events read from the user's primary calendar."""

    events: list[ExternalEvent] = Field(default_factory=list)
    count: int = Field(0, description="Number of events")


class CronTriggerResponse(BaseModel):
    """Response from the scheduled sync trigger."""

    queued: bool = Field(..., description="Whether the sweep was queued")
    task_id: Optional[str] = Field(None, description="Celery task id of the sweep")
