"""
Cron Trigger Endpoint
Lets an external scheduler start the calendar sync sweep.
"""
import secrets
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials

from chorecal.api.deps import security
from chorecal.core.config import settings
from chorecal.core.exceptions import AuthenticationError
from chorecal.schemas.integrations import CronTriggerResponse
from chorecal.tasks.calendar_sync import sync_all_calendars

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/cron", tags=["Cron"])


def verify_cron_secret(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>``."""
    if not settings.cron_secret or credentials is None:
        raise AuthenticationError("Unauthorized")
    if not secrets.compare_digest(credentials.credentials, settings.cron_secret):
        raise AuthenticationError("Unauthorized")


@router.get(
    "/calendar-sync",
    response_model=CronTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_cron_secret)],
    summary="Queue the calendar sync sweep",
)
async def trigger_calendar_sweep() -> CronTriggerResponse:
    """Queue a sync of every enabled integration on the Celery calendar queue."""
    async_result = sync_all_calendars.delay()
    logger.info("calendar_sweep_queued", task_id=async_result.id)
    return CronTriggerResponse(queued=True, task_id=async_result.id)
