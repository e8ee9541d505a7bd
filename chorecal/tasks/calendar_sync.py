"""
Calendar Sync Tasks
Celery tasks for background Google Calendar syncs.

Task edits call ``trigger_calendar_sync`` and move on; the sync runs on the
``calendar`` queue. The beat-scheduled ``sync_all_calendars`` sweep is the
backstop for any sync that was dropped or failed.
"""
import asyncio
import logging
from typing import Optional, Union
from uuid import UUID

from chorecal.celery_app import SYNC_SOFT_TIME_LIMIT, SYNC_TIME_LIMIT, BaseTaskWithRetry, celery_app
from chorecal.core.sentry import capture_exception
from chorecal.database import close_db, get_async_session
from chorecal.schemas.sync import SyncResult
from chorecal.services.calendar_sync import CalendarSyncService

logger = logging.getLogger(__name__)


# =============================================================================
# Per-user Sync
# =============================================================================


@celery_app.task(
    queue="calendar",
    soft_time_limit=SYNC_SOFT_TIME_LIMIT,
    time_limit=SYNC_TIME_LIMIT,
)
def sync_user_calendar_task(user_id: str) -> dict:
    """
    Sync one user's tasks to Google Calendar.

    Failures are logged and recorded on the integration row; they are not
    retried here because the scheduled sweep picks the user up again.

    Args:
        user_id: UUID of the user.

    Returns:
        The SyncResult as a dictionary.
    """
    try:
        result = asyncio.run(_sync_user_calendar_async(user_id))
    except Exception as e:
        logger.exception(f"Calendar sync crashed for user {user_id}")
        capture_exception(e, user_id=user_id, extra={"task": "sync_user_calendar_task"})
        result = SyncResult(success=False, error=str(e), user_id=user_id)

    if not result.success:
        logger.error(f"Calendar sync failed for user {user_id}: {result.error}")
    return result.model_dump()


async def _sync_user_calendar_async(user_id: str) -> SyncResult:
    try:
        async with get_async_session() as session:
            return await CalendarSyncService(session).sync_user_calendar(user_id)
    finally:
        await close_db()


# =============================================================================
# Scheduled Sweep
# =============================================================================


@celery_app.task(
    base=BaseTaskWithRetry,
    queue="calendar",
    soft_time_limit=3600,
    time_limit=3900,
)
def sync_all_calendars() -> dict:
    """
    Sync every user with task-to-calendar sync enabled.

    Runs on the Celery Beat schedule and from the cron endpoint.

    Returns:
        Dictionary with sweep statistics.
    """
    results = asyncio.run(_sync_all_calendars_async())

    summary = {
        "total": len(results),
        "successful": sum(1 for r in results if r.success and not r.skipped),
        "failed": sum(1 for r in results if not r.success),
        "skipped": sum(1 for r in results if r.skipped),
        "errors": [
            {"user_id": r.user_id, "error": r.error} for r in results if not r.success
        ],
    }
    logger.info(
        f"Calendar sync sweep: total={summary['total']}, successful={summary['successful']}, "
        f"failed={summary['failed']}, skipped={summary['skipped']}"
    )
    return summary


async def _sync_all_calendars_async() -> list[SyncResult]:
    try:
        async with get_async_session() as session:
            return await CalendarSyncService(session).sync_all_due_users()
    finally:
        await close_db()


# =============================================================================
# Fire-and-forget Trigger
# =============================================================================


def trigger_calendar_sync(user_id: Union[str, UUID]) -> Optional[str]:
    """
    Queue a background sync for a user without waiting for it.

    Enqueue failures are logged and swallowed so a broker outage never fails
    the task edit that triggered the sync.

    Returns:
        The Celery task id, or None if the sync could not be queued.
    """
    try:
        async_result = sync_user_calendar_task.delay(str(user_id))
    except Exception as e:
        logger.warning(f"Could not queue calendar sync for user {user_id}: {e}")
        return None

    logger.debug(f"Queued calendar sync for user {user_id} as {async_result.id}")
    return async_result.id
