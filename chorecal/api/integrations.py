"""
Calendar Integration API Endpoints
Google Calendar OAuth, settings and sync.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt

from chorecal.api.deps import ALGORITHM, AsyncSessionDep, CurrentUser
from chorecal.core.config import settings
from chorecal.core.exceptions import (
    AuthError,
    ConfigError,
    NotConnectedError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from chorecal.schemas.integrations import (
    ExternalEventsResponse,
    IntegrationSettings,
    IntegrationStatusResponse,
    SyncResponse,
    UpdateIntegrationRequest,
    UpdateIntegrationResponse,
)
from chorecal.services.calendar_sync import CalendarSyncService
from chorecal.services.google_calendar import GoogleOAuthClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/integrations/google-calendar", tags=["Google Calendar"])

DEFAULT_RETURN_URL = "/settings?tab=integrations"
STATE_TTL = timedelta(minutes=10)
STATE_TYPE = "calendar_oauth"


# =============================================================================
# OAuth State
# =============================================================================


def create_state(user_id: str, return_url: str) -> str:
    """Signed, short-lived OAuth state carrying the user and where to return."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "return_url": return_url,
        "type": STATE_TYPE,
        "iat": now,
        "exp": now + STATE_TTL,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def verify_state(state: str) -> Optional[tuple[str, str]]:
    """Return (user_id, return_url) for a valid state, None otherwise."""
    try:
        claims = jwt.decode(state, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if claims.get("type") != STATE_TYPE or not claims.get("sub"):
        return None
    return claims["sub"], _safe_return_url(claims.get("return_url"))


def _safe_return_url(return_url: Optional[str]) -> str:
    # Only same-site paths; anything else could be an open redirect.
    if not return_url or not return_url.startswith("/") or return_url.startswith("//"):
        return DEFAULT_RETURN_URL
    return return_url


def _app_redirect(path: str, **params: str) -> RedirectResponse:
    # Appends to any existing query and keeps the fragment last.
    scheme, netloc, url_path, query, fragment = urlsplit(f"{settings.app_url.rstrip('/')}{path}")
    query = "&".join(part for part in (query, urlencode(params)) if part)
    return RedirectResponse(
        url=urlunsplit((scheme, netloc, url_path, query, fragment)),
        status_code=status.HTTP_302_FOUND,
    )


def _settings_error(code: str) -> RedirectResponse:
    return _app_redirect(DEFAULT_RETURN_URL, error=code)


# =============================================================================
# OAuth Flow
# =============================================================================


@router.get(
    "/connect",
    summary="Connect Google Calendar",
    description="Redirect to the Google consent screen.",
)
async def connect_google_calendar(
    current_user: CurrentUser,
    return_url: Optional[str] = Query(None, alias="returnUrl"),
) -> RedirectResponse:
    """
    Start the Google OAuth flow.

    Requests offline access with a forced consent prompt so Google issues a
    refresh token.
    """
    oauth = GoogleOAuthClient()
    state = create_state(str(current_user.id), _safe_return_url(return_url))
    try:
        auth_url = oauth.build_authorization_url(state)
    except ConfigError:
        logger.error("google_oauth_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google Calendar integration not configured",
        )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/callback",
    summary="Google OAuth callback",
    description="Exchange the authorization code and store the credential.",
)
async def google_oauth_callback(
    db: AsyncSessionDep,
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="Signed state from /connect"),
    error: Optional[str] = Query(None, description="Error reported by Google"),
) -> RedirectResponse:
    """
    Handle the Google OAuth redirect.

    Always redirects back to the app: to the return URL with
    ``success=calendar_connected``, or to the settings page with an
    ``error`` code.
    """
    if error:
        logger.warning("google_oauth_denied", error=error)
        return _settings_error("oauth_failed")
    if not code or not state:
        return _settings_error("invalid_callback")

    verified = verify_state(state)
    if verified is None:
        return _settings_error("unauthorized")
    user_id, return_url = verified

    try:
        await CalendarSyncService(db).connect(user_id, code)
    except NotConnectedError:
        return _settings_error("user_not_found")
    except ConfigError:
        return _settings_error("not_configured")
    except AuthError:
        return _settings_error("token_exchange_failed")
    except Exception:
        logger.exception("google_oauth_storage_failed", user_id=user_id)
        await db.rollback()
        return _settings_error("storage_failed")

    return _app_redirect(return_url, success="calendar_connected")


# =============================================================================
# Integration Settings
# =============================================================================


@router.get(
    "",
    response_model=IntegrationStatusResponse,
    summary="Get Google Calendar status",
)
async def get_integration_status(
    current_user: CurrentUser,
    db: AsyncSessionDep,
) -> IntegrationStatusResponse:
    """
    Connection status and settings for the current user.

    An expired access token is refreshed here; ``connected`` is false when
    that fails.
    """
    service = CalendarSyncService(db)
    integration = await service.store.get_integration(current_user.id)
    if integration is None:
        return IntegrationStatusResponse(connected=False, integration=None)

    connected = await service.check_connection(integration)
    return IntegrationStatusResponse(
        connected=connected,
        integration=IntegrationSettings.model_validate(integration),
    )


@router.patch(
    "",
    response_model=UpdateIntegrationResponse,
    summary="Update Google Calendar settings",
)
async def update_integration(
    request: UpdateIntegrationRequest,
    current_user: CurrentUser,
    db: AsyncSessionDep,
) -> UpdateIntegrationResponse:
    """Update sync direction flags and the calendar name."""
    service = CalendarSyncService(db)
    integration = await service.store.get_integration(current_user.id)
    if integration is None:
        raise NotFoundError("Calendar integration")

    integration = await service.store.update_settings(
        integration, **request.model_dump(exclude_unset=True)
    )
    return UpdateIntegrationResponse(
        success=True,
        integration=IntegrationSettings.model_validate(integration),
    )


@router.delete(
    "",
    summary="Disconnect Google Calendar",
)
async def disconnect_google_calendar(
    current_user: CurrentUser,
    db: AsyncSessionDep,
) -> dict:
    """
    Remove the stored credential.

    Events already on the calendar are left in place.
    """
    service = CalendarSyncService(db)
    deleted = await service.store.delete_integration(current_user.id)
    if not deleted:
        raise NotFoundError("Calendar integration")

    logger.info("calendar_disconnected", user_id=str(current_user.id))
    return {"success": True, "message": "Google Calendar disconnected"}


# =============================================================================
# Sync
# =============================================================================


@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Sync tasks to Google Calendar",
)
async def sync_now(
    current_user: CurrentUser,
    db: AsyncSessionDep,
) -> SyncResponse:
    """Run the current user's sync inline and report the outcome."""
    result = await CalendarSyncService(db).sync_user_calendar(current_user.id)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.error or "Sync failed",
        )

    message = (
        "Calendar sync is disabled"
        if result.skipped
        else f"Synced {result.synced_count} tasks to Google Calendar"
    )
    return SyncResponse(
        success=True,
        synced_count=result.synced_count,
        deleted_count=result.deleted_count,
        failed_count=result.failed_count,
        message=message,
    )


@router.get(
    "/events",
    response_model=ExternalEventsResponse,
    summary="List Google Calendar events",
)
async def list_calendar_events(
    current_user: CurrentUser,
    db: AsyncSessionDep,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
) -> ExternalEventsResponse:
    """
    Events from the user's primary calendar, excluding synced tasks.

    Defaults to the next seven days.
    """
    start = start_date or datetime.now(timezone.utc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    end = end_date or start + timedelta(days=7)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    if end <= start:
        raise ValidationError("endDate must be after startDate")

    try:
        events = await CalendarSyncService(db).fetch_external_events(current_user.id, start, end)
    except NotConnectedError:
        raise NotFoundError("Calendar integration")
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except (ConfigError, ProviderError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return ExternalEventsResponse(events=events, count=len(events))
