"""
Token Lifecycle Manager
Keeps a user's Google access token valid for the duration of a sync.
"""
from datetime import timedelta
from typing import Optional

import structlog

from chorecal.core.config import settings
from chorecal.core.exceptions import AuthError
from chorecal.models import CalendarIntegration
from chorecal.services.credential_store import CredentialStore
from chorecal.services.google_calendar import GoogleOAuthClient
from chorecal.utils.clock import Clock, ensure_utc, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_EXPIRES_IN = 3600


class TokenManager:
    """Refreshes access tokens that are expired or about to expire."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: Optional[GoogleOAuthClient] = None,
        clock: Clock = utc_now,
        refresh_margin: Optional[timedelta] = None,
    ):
        self.store = store
        self.oauth_client = oauth_client or GoogleOAuthClient()
        self.clock = clock
        self.refresh_margin = (
            refresh_margin
            if refresh_margin is not None
            else timedelta(seconds=settings.token_refresh_margin_seconds)
        )

    def needs_refresh(self, integration: CalendarIntegration) -> bool:
        expiry = ensure_utc(integration.token_expiry)
        if expiry is None:
            return True
        return expiry - self.clock() <= self.refresh_margin

    async def ensure_valid_access_token(
        self, integration: CalendarIntegration
    ) -> CalendarIntegration:
        """
        Return the integration with an access token usable right now.

        A token expiring beyond the safety margin is returned as is, with no
        write. Otherwise the refresh token is exchanged and the new access
        token and expiry are persisted in a single update.

        Raises:
            ConfigError: Google client credentials are not configured.
            AuthError: The token could not be refreshed.
        """
        if not self.needs_refresh(integration):
            return integration

        user_id = str(integration.user_id)
        if not integration.refresh_token:
            logger.warning("calendar_token_refresh_unavailable", user_id=user_id)
            raise AuthError("No refresh token stored; reconnect Google Calendar")

        logger.info("calendar_token_refreshing", user_id=user_id)
        tokens = await self.oauth_client.refresh_access_token(integration.refresh_token)

        expires_in = tokens.get("expires_in") or DEFAULT_EXPIRES_IN
        expiry = self.clock() + timedelta(seconds=int(expires_in))
        await self.store.update_tokens(integration, tokens["access_token"], expiry)

        logger.info("calendar_token_refreshed", user_id=user_id, expires_at=expiry.isoformat())
        return integration
