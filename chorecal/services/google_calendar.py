"""
Google Calendar Service
HTTP clients for the Google OAuth2 and Calendar v3 APIs.

``GoogleCalendarClient`` is bound to one access token and exposes only the
calendar operations the sync engine needs. ``GoogleOAuthClient`` holds the
application credentials and performs the OAuth exchanges.
"""
from typing import Any, Optional, Protocol
from urllib.parse import quote, urlencode

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from chorecal.core.config import settings
from chorecal.core.exceptions import AuthError, ConfigError, ProviderError

logger = structlog.get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)

_transport_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSPORT_ERRORS),
    reraise=True,
)


class CalendarProvider(Protocol):
    """The calendar operations the sync engine relies on."""

    async def list_calendars(self) -> list[dict[str, Any]]: ...

    async def insert_calendar(
        self, summary: str, description: str, time_zone: str
    ) -> dict[str, Any]: ...

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: str,
        time_max: str,
        private_extended_property: Optional[str] = None,
        single_events: bool = False,
        order_by: Optional[str] = None,
        max_results: int = 2500,
        paginate: bool = True,
    ) -> list[dict[str, Any]]: ...

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]: ...

    async def update_event(
        self, calendar_id: str, event_id: str, body: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def delete_event(self, calendar_id: str, event_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _error_message(response: httpx.Response) -> str:
    try:
        error = response.json().get("error")
    except ValueError:
        return response.text[:200]
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return str(error) if error else response.text[:200]


class GoogleCalendarClient:
    """Calendar v3 client authenticated with a single access token."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.google_api_timeout_seconds),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "GoogleCalendarClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @_transport_retry
    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        return await self.http_client.request(
            method,
            f"{GOOGLE_CALENDAR_API}{path}",
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        try:
            response = await self._send(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.warning("google_calendar_transport_error", method=method, path=path, error=str(e))
            raise ProviderError(f"Google Calendar request failed: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "google_calendar_api_error",
                method=method,
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise ProviderError(
                f"Google Calendar API error {response.status_code}: {message}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(
                "google_calendar_invalid_response",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ProviderError(
                f"Google Calendar returned an invalid response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(
                "Google Calendar returned an unexpected response body",
                status_code=response.status_code,
            )
        return data

    async def list_calendars(self) -> list[dict[str, Any]]:
        """List every calendar on the user's calendar list."""
        calendars: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params = {"pageToken": page_token} if page_token else None
            data = await self._request("GET", "/users/me/calendarList", params=params)
            calendars.extend(data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return calendars

    async def insert_calendar(
        self, summary: str, description: str, time_zone: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/calendars",
            json={"summary": summary, "description": description, "timeZone": time_zone},
        )

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: str,
        time_max: str,
        private_extended_property: Optional[str] = None,
        single_events: bool = False,
        order_by: Optional[str] = None,
        max_results: int = 2500,
        paginate: bool = True,
    ) -> list[dict[str, Any]]:
        """
        List events in a time range.

        Args:
            calendar_id: Calendar to read, or "primary".
            time_min: RFC 3339 lower bound.
            time_max: RFC 3339 upper bound.
            private_extended_property: "key=value" filter on private properties.
            single_events: Expand recurring events into instances.
            order_by: "startTime" requires single_events.
            max_results: Page size.
            paginate: Follow nextPageToken until exhausted.
        """
        params: dict[str, Any] = {
            "timeMin": time_min,
            "timeMax": time_max,
            "maxResults": max_results,
        }
        if private_extended_property:
            params["privateExtendedProperty"] = private_extended_property
        if single_events:
            params["singleEvents"] = "true"
        if order_by:
            params["orderBy"] = order_by

        events: list[dict[str, Any]] = []
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        while True:
            data = await self._request("GET", path, params=params)
            events.extend(data.get("items", []))
            page_token = data.get("nextPageToken")
            if not paginate or not page_token:
                return events
            params["pageToken"] = page_token

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", f"/calendars/{quote(calendar_id, safe='')}/events", json=body
        )

    async def update_event(
        self, calendar_id: str, event_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PUT",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            json=body,
        )

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._request(
            "DELETE",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
        )


class GoogleOAuthClient:
    """OAuth2 flows for the Google application credentials."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = settings.google_client_id if client_id is None else client_id
        self.client_secret = (
            settings.google_client_secret if client_secret is None else client_secret
        )
        self.redirect_uri = redirect_uri or settings.google_redirect_uri
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_config(self) -> None:
        if not self.is_configured:
            raise ConfigError("Google OAuth client id/secret are not configured")

    def build_authorization_url(self, state: str) -> str:
        """Google consent screen URL requesting offline access."""
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(OAUTH_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    @_transport_retry
    async def _post_token(self, data: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(GOOGLE_TOKEN_URL, data=data)
        async with httpx.AsyncClient(timeout=settings.google_api_timeout_seconds) as client:
            return await client.post(GOOGLE_TOKEN_URL, data=data)

    async def _token_request(self, data: dict[str, str], grant: str) -> dict[str, Any]:
        self._require_config()
        payload = {"client_id": self.client_id, "client_secret": self.client_secret, **data}
        try:
            response = await self._post_token(payload)
        except httpx.HTTPError as e:
            logger.warning("google_token_transport_error", grant=grant, error=str(e))
            raise AuthError(f"Token {grant} failed: {e}") from e

        if response.status_code != 200:
            logger.warning(
                "google_token_request_failed",
                grant=grant,
                status_code=response.status_code,
                error=_error_message(response),
            )
            raise AuthError(f"Token {grant} failed: {response.status_code}")

        try:
            tokens = response.json()
        except ValueError as e:
            logger.warning("google_token_invalid_response", grant=grant)
            raise AuthError(f"Token {grant} returned an invalid response") from e
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise AuthError(f"Token {grant} response did not include an access token")
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns:
            The token response; contains access_token and usually expires_in.

        Raises:
            ConfigError: Application credentials are missing.
            AuthError: The exchange failed.
        """
        return await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}, "refresh"
        )

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens."""
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            "exchange",
        )

    async def get_user_email(self, access_token: str) -> Optional[str]:
        """Email address of the Google account, or None if unavailable."""
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            else:
                async with httpx.AsyncClient(
                    timeout=settings.google_api_timeout_seconds
                ) as client:
                    response = await client.get(
                        GOOGLE_USERINFO_URL,
                        headers={"Authorization": f"Bearer {access_token}"},
                    )
        except httpx.HTTPError as e:
            logger.warning("google_userinfo_failed", error=str(e))
            return None

        if response.status_code != 200:
            logger.warning("google_userinfo_failed", status_code=response.status_code)
            return None
        try:
            return response.json().get("email")
        except (ValueError, AttributeError):
            logger.warning("google_userinfo_invalid_response")
            return None
