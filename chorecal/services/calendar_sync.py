"""
Calendar Sync Service
Runs a user's task-to-calendar sync end to end and records the outcome.
"""
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from chorecal.core.config import settings
from chorecal.core.exceptions import (
    AuthError,
    CalendarSyncError,
    ConfigError,
    NotConnectedError,
)
from chorecal.core.sentry import capture_exception
from chorecal.models import CalendarIntegration, User
from chorecal.schemas.sync import ExternalEvent, RemoteEvent, SyncResult, SyncWindow
from chorecal.services.calendar_resolver import CalendarResolver
from chorecal.services.credential_store import CredentialStore
from chorecal.services.event_mapper import EventMapper
from chorecal.services.google_calendar import (
    CalendarProvider,
    GoogleCalendarClient,
    GoogleOAuthClient,
)
from chorecal.services.reconciler import Reconciler
from chorecal.services.task_source import TaskSource
from chorecal.services.token_manager import DEFAULT_EXPIRES_IN, TokenManager
from chorecal.utils.clock import Clock, utc_now

logger = structlog.get_logger(__name__)

CalendarFactory = Callable[[str], CalendarProvider]
UserId = Union[str, uuid.UUID]

EXTERNAL_EVENTS_MAX_RESULTS = 250


class CalendarSyncService:
    """
    Orchestrates token refresh, calendar resolution and reconciliation.

    Stages run strictly in sequence; a failing stage stops the run. Every
    attempt on an enabled integration records last_sync_at, status and error.
    """

    def __init__(
        self,
        session: AsyncSession,
        oauth_client: Optional[GoogleOAuthClient] = None,
        calendar_factory: Optional[CalendarFactory] = None,
        clock: Clock = utc_now,
        timeout: Optional[float] = None,
    ):
        self.session = session
        self.clock = clock
        self.oauth_client = oauth_client or GoogleOAuthClient()
        self.calendar_factory = calendar_factory or GoogleCalendarClient
        self.timeout = timeout if timeout is not None else settings.calendar_sync_timeout_seconds
        self.store = CredentialStore(session, clock)
        self.task_source = TaskSource(session)
        self.token_manager = TokenManager(self.store, self.oauth_client, clock)
        self.mapper = EventMapper(clock=clock)

    def sync_window(self) -> SyncWindow:
        now = self.clock()
        span = timedelta(days=settings.calendar_sync_window_days)
        return SyncWindow(start=now - span, end=now + span)

    async def _run(self, integration: CalendarIntegration) -> tuple[SyncResult, str]:
        integration = await self.token_manager.ensure_valid_access_token(integration)
        provider = self.calendar_factory(integration.access_token)
        try:
            calendar_name = integration.calendar_name or settings.default_calendar_name
            calendar_id = await CalendarResolver(provider).resolve_calendar(calendar_name)
            tasks = await self.task_source.load_tasks_for_user(integration.user_id)
            result = await Reconciler(provider, self.mapper).reconcile(
                calendar_id, tasks, self.sync_window()
            )
            return result, calendar_id
        finally:
            await provider.aclose()

    async def sync_user_calendar(self, user_id: UserId) -> SyncResult:
        """
        Sync one user's assigned tasks to their Google Calendar.

        A missing integration or disabled sync is a successful no-op that makes
        no network calls and writes nothing.
        """
        user_key = str(user_id)
        integration = await self.store.get_integration(user_id)
        if (
            integration is None
            or not integration.sync_enabled
            or not integration.sync_tasks_to_calendar
        ):
            logger.debug("calendar_sync_skipped", user_id=user_key)
            return SyncResult(success=True, synced_count=0, skipped=True, user_id=user_key)

        started = self.clock()
        calendar_id: Optional[str] = None
        try:
            result, calendar_id = await asyncio.wait_for(
                self._run(integration), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            # Rollback expires loaded rows; reload before recording the outcome.
            await self.session.rollback()
            integration = await self.store.get_integration(user_id)
            result = SyncResult(success=False, error=f"Sync timed out after {self.timeout:g}s")
        except CalendarSyncError as e:
            result = SyncResult(success=False, error=str(e))
        except Exception as e:
            await self.session.rollback()
            integration = await self.store.get_integration(user_id)
            logger.exception("calendar_sync_unexpected_error", user_id=user_key)
            capture_exception(e, user_id=user_key, extra={"stage": "sync_user_calendar"})
            result = SyncResult(success=False, error=str(e) or e.__class__.__name__)

        if integration is not None:
            await self.store.record_sync_result(
                integration,
                success=result.success,
                error=result.error,
                calendar_id=calendar_id if result.success else None,
            )

        result.user_id = user_key
        elapsed = (self.clock() - started).total_seconds()
        if result.success:
            logger.info(
                "calendar_sync_completed",
                user_id=user_key,
                synced_count=result.synced_count,
                deleted_count=result.deleted_count,
                failed_count=result.failed_count,
                duration_seconds=round(elapsed, 3),
            )
        else:
            logger.error("calendar_sync_failed", user_id=user_key, error=result.error)
        return result

    async def sync_all_due_users(self) -> list[SyncResult]:
        """
        Sync every Google integration with sync and task push enabled.

        Users are processed one at a time; a failure for one never stops the
        sweep.
        """
        integrations = await self.store.list_active_integrations()
        user_ids = [integration.user_id for integration in integrations]
        results: list[SyncResult] = []

        for user_id in user_ids:
            try:
                result = await self.sync_user_calendar(user_id)
            except Exception as e:
                await self.session.rollback()
                logger.exception("calendar_sync_crashed", user_id=str(user_id))
                capture_exception(e, user_id=str(user_id), extra={"stage": "batch_sync"})
                result = SyncResult(success=False, error=str(e), user_id=str(user_id))
            results.append(result)

        logger.info(
            "calendar_sync_batch_completed",
            total=len(results),
            successful=sum(1 for r in results if r.success and not r.skipped),
            failed=sum(1 for r in results if not r.success),
            skipped=sum(1 for r in results if r.skipped),
        )
        return results

    async def fetch_external_events(
        self, user_id: UserId, start: datetime, end: datetime
    ) -> list[ExternalEvent]:
        """
        Read the user's own primary-calendar events in a range.

        Returns an empty list when calendar-to-app sync is turned off. Events
        created by the sync engine are excluded.

        Raises:
            NotConnectedError: The user has no Google Calendar integration.
            ConfigError: Google client credentials are not configured.
            AuthError: The access token could not be refreshed.
            ProviderError: Listing events failed.
        """
        integration = await self.store.get_integration(user_id)
        if integration is None:
            raise NotConnectedError("Calendar integration not found")
        if not integration.sync_enabled or not integration.sync_calendar_to_tasks:
            return []

        integration = await self.token_manager.ensure_valid_access_token(integration)
        provider = self.calendar_factory(integration.access_token)
        try:
            items = await provider.list_events(
                "primary",
                time_min=start.isoformat(),
                time_max=end.isoformat(),
                single_events=True,
                order_by="startTime",
                max_results=EXTERNAL_EVENTS_MAX_RESULTS,
                paginate=False,
            )
        finally:
            await provider.aclose()

        return [
            ExternalEvent.from_api(item)
            for item in items
            if not RemoteEvent.from_api(item).is_managed
        ]

    async def check_connection(self, integration: CalendarIntegration) -> bool:
        """True when the integration holds a usable access token, refreshing if needed."""
        try:
            await self.token_manager.ensure_valid_access_token(integration)
        except (AuthError, ConfigError) as e:
            logger.info("calendar_connection_invalid", user_id=str(integration.user_id), error=str(e))
            return False
        return True

    async def connect(self, user_id: UserId, code: str) -> CalendarIntegration:
        """
        Complete the OAuth flow: exchange the code and store the credential.

        Raises:
            NotConnectedError: The user does not exist.
            ConfigError: Google client credentials are not configured.
            AuthError: The code exchange failed.
        """
        user_uuid = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
        user = await self.session.get(User, user_uuid)
        if user is None:
            raise NotConnectedError("User not found")

        tokens = await self.oauth_client.exchange_code(code)
        email = await self.oauth_client.get_user_email(tokens["access_token"])
        expires_in = tokens.get("expires_in") or DEFAULT_EXPIRES_IN

        integration = await self.store.upsert_integration(
            user_id=user_uuid,
            organization_id=user.organization_id,
            email=email,
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            token_expiry=self.clock() + timedelta(seconds=int(expires_in)),
            calendar_name=settings.default_calendar_name,
        )
        logger.info("calendar_connected", user_id=str(user_uuid), email=email)
        return integration
