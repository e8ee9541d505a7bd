"""
Reconciler
Makes the managed events on a calendar match the current task projection.

Only events carrying the ownership tag are ever listed, updated or deleted.
Each managed event is overwritten unconditionally with freshly built content,
so repeated passes over an unchanged task set converge on the same calendar
state at the cost of one update call per task.
"""
from typing import Iterable

import structlog

from chorecal.core.exceptions import InvalidTaskError, ProviderError
from chorecal.schemas.sync import (
    MANAGED_PROPERTY,
    MANAGED_VALUE,
    RemoteEvent,
    SyncResult,
    SyncWindow,
    TaskProjection,
)
from chorecal.services.event_mapper import EventMapper
from chorecal.services.google_calendar import CalendarProvider

logger = structlog.get_logger(__name__)

MAX_RESULTS_PER_PAGE = 2500


class Reconciler:
    """Diffs tasks against tagged events and applies the changes sequentially."""

    def __init__(self, provider: CalendarProvider, mapper: EventMapper):
        self.provider = provider
        self.mapper = mapper

    async def _list_managed(
        self, calendar_id: str, window: SyncWindow
    ) -> tuple[dict[str, RemoteEvent], list[RemoteEvent]]:
        items = await self.provider.list_events(
            calendar_id,
            time_min=window.start.isoformat(),
            time_max=window.end.isoformat(),
            private_extended_property=f"{MANAGED_PROPERTY}={MANAGED_VALUE}",
            max_results=MAX_RESULTS_PER_PAGE,
        )

        managed: dict[str, RemoteEvent] = {}
        duplicates: list[RemoteEvent] = []
        for item in items:
            event = RemoteEvent.from_api(item)
            if not event.is_managed or not event.task_id:
                continue
            if event.task_id in managed:
                duplicates.append(event)
            else:
                managed[event.task_id] = event
        return managed, duplicates

    async def _delete(self, calendar_id: str, event: RemoteEvent) -> bool:
        try:
            await self.provider.delete_event(calendar_id, event.event_id)
        except ProviderError as e:
            if e.is_gone:
                return True
            logger.warning(
                "calendar_event_delete_failed",
                calendar_id=calendar_id,
                event_id=event.event_id,
                task_id=event.task_id,
                error=str(e),
            )
            return False
        return True

    async def reconcile(
        self,
        calendar_id: str,
        tasks: Iterable[TaskProjection],
        window: SyncWindow,
    ) -> SyncResult:
        """
        Create, update and delete managed events so they mirror ``tasks``.

        Per-task failures are logged and counted; they never abort the pass.
        Only a failure to list the existing managed events fails the result,
        in which case nothing is written.
        """
        try:
            managed, duplicates = await self._list_managed(calendar_id, window)
        except ProviderError as e:
            logger.error("calendar_events_list_failed", calendar_id=calendar_id, error=str(e))
            return SyncResult(success=False, error=str(e))

        created = updated = deleted = failed = 0
        current_ids: set[str] = set()

        for task in tasks:
            if task.id in current_ids:
                continue
            current_ids.add(task.id)

            try:
                body = self.mapper.to_event(task).to_api()
                existing = managed.get(task.id)
                if existing is not None:
                    try:
                        await self.provider.update_event(calendar_id, existing.event_id, body)
                        updated += 1
                        continue
                    except ProviderError as e:
                        if not e.is_gone:
                            raise
                        logger.info(
                            "calendar_event_missing_recreating",
                            task_id=task.id,
                            event_id=existing.event_id,
                        )
                await self.provider.insert_event(calendar_id, body)
                created += 1
            except (ProviderError, InvalidTaskError) as e:
                failed += 1
                logger.warning(
                    "calendar_task_sync_failed",
                    calendar_id=calendar_id,
                    task_id=task.id,
                    error=str(e),
                )

        stale = [event for task_id, event in managed.items() if task_id not in current_ids]
        for event in stale + duplicates:
            if await self._delete(calendar_id, event):
                deleted += 1

        logger.info(
            "calendar_reconciled",
            calendar_id=calendar_id,
            created=created,
            updated=updated,
            deleted=deleted,
            failed=failed,
        )
        return SyncResult(
            success=True,
            synced_count=created + updated,
            created_count=created,
            updated_count=updated,
            deleted_count=deleted,
            failed_count=failed,
        )
