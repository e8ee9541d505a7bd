"""
ChoreCal Celery Application Configuration

Configures the Celery queue that runs calendar syncs in the background: the
fire-and-forget syncs triggered by task edits and the scheduled batch sweep.
"""

import logging
from datetime import timedelta
from typing import Any

from celery import Celery, Task
from celery.signals import worker_process_init
from kombu import Exchange, Queue

from chorecal.core.config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# Queue Definitions
# =============================================================================

default_exchange = Exchange("default", type="direct")

TASK_QUEUES = (
    # Calendar queue: per-user syncs and the batch sweep
    Queue("calendar", exchange=default_exchange, routing_key="calendar"),
    Queue("default", exchange=default_exchange, routing_key="default"),
)

TASK_ROUTES = {
    "chorecal.tasks.calendar_sync.sync_user_calendar_task": {"queue": "calendar"},
    "chorecal.tasks.calendar_sync.sync_all_calendars": {"queue": "calendar"},
}

# Celery limits sit above the in-process sync deadline so the sync reports its
# own timeout before the worker kills it.
SYNC_SOFT_TIME_LIMIT = int(settings.calendar_sync_timeout_seconds) + 15
SYNC_TIME_LIMIT = SYNC_SOFT_TIME_LIMIT + 30


# =============================================================================
# Celery Application
# =============================================================================

def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Configured Celery application instance.
    """
    app = Celery(
        "chorecal",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
        include=["chorecal.tasks.calendar_sync"],
    )

    app.conf.update(
        # =============
        # Serialization
        # =============
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",

        # =======
        # Queues
        # =======
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="default",
        task_default_exchange="default",
        task_default_routing_key="default",

        # ===========
        # Time Limits
        # ===========
        task_soft_time_limit=300,
        task_time_limit=600,

        # =============
        # Retry Policy
        # =============
        task_default_retry_delay=10,
        task_max_retries=3,

        # ==========
        # Concurrency
        # ==========
        worker_concurrency=4,
        worker_prefetch_multiplier=1,

        # ===========
        # Result Backend
        # ===========
        result_expires=86400,

        # ==========
        # Task Track
        # ==========
        task_track_started=True,
        task_acks_late=True,
        task_reject_on_worker_lost=True,

        # ========
        # Timezone
        # ========
        timezone="UTC",
        enable_utc=True,

        # ===========
        # Broker Settings
        # ===========
        broker_connection_retry_on_startup=True,

        # ==========
        # Beat Schedule
        # ==========
        beat_schedule={
            "sync-all-calendars": {
                "task": "chorecal.tasks.calendar_sync.sync_all_calendars",
                "schedule": timedelta(minutes=settings.calendar_batch_interval_minutes),
                "options": {"queue": "calendar"},
            },
        },
    )

    return app


celery_app = create_celery_app()


# =============================================================================
# Custom Task Base Class with Retry Policy
# =============================================================================

class BaseTaskWithRetry(Task):
    """
    Base task class with exponential backoff retry policy.

    Implements:
        - 3 retry attempts
        - Exponential backoff
        - Maximum delay of 5 minutes
    """

    autoretry_for = (Exception,)
    max_retries = 3
    retry_backoff = True
    retry_backoff_max = 300
    retry_jitter = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Log task failure."""
        logger.error(
            f"Task {self.name}[{task_id}] failed after {self.request.retries} retries: {exc}",
            exc_info=True,
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """Log task retry."""
        logger.warning(
            f"Task {self.name}[{task_id}] retrying (attempt {self.request.retries + 1}/{self.max_retries}): {exc}"
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


# =============================================================================
# Worker Hooks
# =============================================================================

@worker_process_init.connect
def init_worker_process(**kwargs: Any) -> None:
    """Configure logging and error tracking in each worker process."""
    from chorecal.core.logging import configure_logging
    from chorecal.core.sentry import init_sentry

    configure_logging()
    init_sentry("worker")

