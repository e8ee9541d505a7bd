"""
Credential Store
Data access for per-user calendar integration rows.

Every write is a single-row UPDATE (or INSERT/DELETE) committed immediately, so
concurrent writers resolve last-write-wins at row level.
"""
import uuid
from datetime import datetime
from typing import Any, Optional, Union

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from chorecal.models import CalendarIntegration, SyncStatus
from chorecal.utils.clock import Clock, ensure_utc, utc_now

logger = structlog.get_logger(__name__)

GOOGLE_PROVIDER = "google"

UserId = Union[str, uuid.UUID]

SETTINGS_FIELDS = ("sync_tasks_to_calendar", "sync_calendar_to_tasks", "calendar_name")


def _as_uuid(value: UserId) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class CredentialStore:
    """Reads and writes CalendarIntegration rows."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self.session = session
        self.clock = clock

    @staticmethod
    def _normalize(integration: Optional[CalendarIntegration]) -> Optional[CalendarIntegration]:
        # SQLite hands back naive timestamps; everything downstream compares aware UTC.
        if integration is not None:
            for attr in ("token_expiry", "last_sync_at"):
                value = getattr(integration, attr)
                if value is not None and value.tzinfo is None:
                    set_committed_value(integration, attr, ensure_utc(value))
        return integration

    async def get_integration(
        self, user_id: UserId, provider: str = GOOGLE_PROVIDER
    ) -> Optional[CalendarIntegration]:
        result = await self.session.execute(
            select(CalendarIntegration).where(
                CalendarIntegration.user_id == _as_uuid(user_id),
                CalendarIntegration.provider == provider,
            )
        )
        return self._normalize(result.scalar_one_or_none())

    async def list_active_integrations(
        self, provider: str = GOOGLE_PROVIDER
    ) -> list[CalendarIntegration]:
        """Integrations with sync and task push both enabled."""
        result = await self.session.execute(
            select(CalendarIntegration)
            .where(
                CalendarIntegration.provider == provider,
                CalendarIntegration.sync_enabled.is_(True),
                CalendarIntegration.sync_tasks_to_calendar.is_(True),
            )
            .order_by(CalendarIntegration.created_at)
        )
        return [self._normalize(row) for row in result.scalars().all()]

    async def update_tokens(
        self,
        integration: CalendarIntegration,
        access_token: str,
        token_expiry: datetime,
    ) -> None:
        """Replace the access token and its expiry together. The refresh token is untouched."""
        await self.session.execute(
            update(CalendarIntegration)
            .where(CalendarIntegration.id == integration.id)
            .values(
                access_token=access_token,
                token_expiry=token_expiry,
                updated_at=self.clock(),
            )
        )
        await self.session.commit()
        set_committed_value(integration, "access_token", access_token)
        set_committed_value(integration, "token_expiry", ensure_utc(token_expiry))

    async def record_sync_result(
        self,
        integration: CalendarIntegration,
        success: bool,
        error: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> None:
        now = self.clock()
        values: dict[str, Any] = {
            "last_sync_at": now,
            "last_sync_status": (SyncStatus.SUCCESS if success else SyncStatus.ERROR).value,
            "last_sync_error": None if success else error,
            "updated_at": now,
        }
        if calendar_id:
            values["calendar_id"] = calendar_id

        await self.session.execute(
            update(CalendarIntegration)
            .where(CalendarIntegration.id == integration.id)
            .values(**values)
        )
        await self.session.commit()
        for key, value in values.items():
            set_committed_value(integration, key, value)

    async def update_settings(
        self, integration: CalendarIntegration, **changes: Any
    ) -> CalendarIntegration:
        """Apply a partial settings update. Unknown or None fields are ignored."""
        values = {k: v for k, v in changes.items() if k in SETTINGS_FIELDS and v is not None}
        if not values:
            return integration

        await self.session.execute(
            update(CalendarIntegration)
            .where(CalendarIntegration.id == integration.id)
            .values(updated_at=self.clock(), **values)
        )
        await self.session.commit()
        for key, value in values.items():
            set_committed_value(integration, key, value)
        logger.info("calendar_settings_updated", user_id=str(integration.user_id), fields=list(values))
        return integration

    async def upsert_integration(
        self,
        user_id: UserId,
        organization_id: Optional[UserId],
        email: Optional[str],
        access_token: str,
        refresh_token: Optional[str],
        token_expiry: datetime,
        calendar_name: str,
        provider: str = GOOGLE_PROVIDER,
    ) -> CalendarIntegration:
        """
        Store the credential from an OAuth callback.

        Re-authorizing keeps the stored refresh token when Google does not
        return a new one.
        """
        integration = await self.get_integration(user_id, provider)
        now = self.clock()

        if integration is None:
            integration = CalendarIntegration(
                user_id=_as_uuid(user_id),
                organization_id=_as_uuid(organization_id) if organization_id else None,
                provider=provider,
                email=email,
                access_token=access_token,
                refresh_token=refresh_token,
                token_expiry=token_expiry,
                sync_enabled=True,
                sync_tasks_to_calendar=True,
                sync_calendar_to_tasks=False,
                calendar_name=calendar_name,
                last_sync_status=SyncStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            self.session.add(integration)
        else:
            integration.email = email or integration.email
            integration.access_token = access_token
            if refresh_token:
                integration.refresh_token = refresh_token
            integration.token_expiry = token_expiry
            integration.sync_enabled = True
            integration.last_sync_status = SyncStatus.PENDING.value
            integration.last_sync_error = None
            integration.updated_at = now

        await self.session.commit()
        logger.info("calendar_integration_stored", user_id=str(user_id), provider=provider)
        return integration

    async def delete_integration(self, user_id: UserId, provider: str = GOOGLE_PROVIDER) -> bool:
        result = await self.session.execute(
            delete(CalendarIntegration).where(
                CalendarIntegration.user_id == _as_uuid(user_id),
                CalendarIntegration.provider == provider,
            )
        )
        await self.session.commit()
        return result.rowcount > 0
