"""
Tests for the Google Calendar and OAuth HTTP clients.
Requests are served by httpx.MockTransport; nothing leaves the process.
"""
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from chorecal.core.exceptions import AuthError, ConfigError, ProviderError
from chorecal.services.google_calendar import (
    GOOGLE_TOKEN_URL,
    GoogleCalendarClient,
    GoogleOAuthClient,
)


def client_for(handler) -> GoogleCalendarClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleCalendarClient("access-123", http_client=http_client)


def oauth_for(handler, **kwargs) -> GoogleOAuthClient:
    kwargs.setdefault("client_id", "client-id")
    kwargs.setdefault("client_secret", "client-secret")
    kwargs.setdefault("redirect_uri", "https://app.test/api/integrations/google-calendar/callback")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleOAuthClient(http_client=http_client, **kwargs)


class TestGoogleCalendarClient:
    """Tests for the Calendar v3 client."""

    @pytest.mark.asyncio
    async def test_list_calendars_follows_pages(self):
        """All pages of the calendar list are returned."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if "pageToken" not in request.url.params:
                return httpx.Response(200, json={"items": [{"id": "a"}], "nextPageToken": "p2"})
            return httpx.Response(200, json={"items": [{"id": "b"}]})

        calendars = await client_for(handler).list_calendars()

        assert [c["id"] for c in calendars] == ["a", "b"]
        assert seen[0].headers["Authorization"] == "Bearer access-123"
        assert seen[1].url.params["pageToken"] == "p2"

    @pytest.mark.asyncio
    async def test_list_events_query_parameters(self):
        """Filters are passed through and the calendar id is escaped."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [{"id": "e1"}], "nextPageToken": "more"})

        events = await client_for(handler).list_events(
            "family#chores@group.calendar.google.com",
            time_min="2026-06-01T00:00:00+00:00",
            time_max="2026-07-01T00:00:00+00:00",
            private_extended_property="synced=true",
            max_results=2500,
            paginate=False,
        )

        assert [e["id"] for e in events] == ["e1"]
        assert len(seen) == 1
        request = seen[0]
        assert "/calendars/family%23chores%40group.calendar.google.com/events" in request.url.raw_path.decode()
        assert request.url.params["privateExtendedProperty"] == "synced=true"
        assert request.url.params["maxResults"] == "2500"
        assert "singleEvents" not in request.url.params

    @pytest.mark.asyncio
    async def test_http_error_maps_to_provider_error(self):
        """Non-2xx responses raise ProviderError carrying the status code."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(410, json={"error": {"code": 410, "message": "Resource has been deleted"}})

        with pytest.raises(ProviderError) as exc_info:
            await client_for(handler).delete_event("primary", "evt1")

        assert exc_info.value.status_code == 410
        assert exc_info.value.is_gone is True
        assert "Resource has been deleted" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_delete_returns_nothing_on_204(self):
        """An empty 204 body is accepted."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            return httpx.Response(204)

        assert await client_for(handler).delete_event("primary", "evt1") is None

    @pytest.mark.asyncio
    async def test_update_sends_body(self):
        """Updates PUT the full event body."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "evt1", "summary": "Dishes"})

        body = {"summary": "Dishes"}
        result = await client_for(handler).update_event("cal", "evt1", body)

        assert result["id"] == "evt1"
        assert seen[0].method == "PUT"
        assert seen[0].url.path.endswith("/calendars/cal/events/evt1")

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_provider_error(self):
        """Network failures are retried, then surface as ProviderError."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await client_for(handler).list_calendars()

        assert exc_info.value.status_code is None
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_non_json_success_maps_to_provider_error(self):
        """A 2xx HTML page from a proxy surfaces as ProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text="<html>proxy error</html>", headers={"Content-Type": "text/html"}
            )

        with pytest.raises(ProviderError) as exc_info:
            await client_for(handler).insert_event("primary", {"summary": "Dishes"})

        assert exc_info.value.status_code == 200
        assert "invalid response" in str(exc_info.value)


class TestGoogleOAuthClient:
    """Tests for the OAuth token endpoints."""

    def test_authorization_url(self):
        """The consent URL asks for offline access and carries the state."""
        oauth = GoogleOAuthClient(
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="https://app.test/cb",
        )

        url = urlparse(oauth.build_authorization_url("state-token"))
        params = parse_qs(url.query)

        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["state"] == ["state-token"]
        assert params["redirect_uri"] == ["https://app.test/cb"]
        assert "https://www.googleapis.com/auth/calendar" in params["scope"][0].split()

    def test_authorization_url_requires_config(self):
        oauth = GoogleOAuthClient(client_id="", client_secret="")
        with pytest.raises(ConfigError):
            oauth.build_authorization_url("state")

    @pytest.mark.asyncio
    async def test_refresh_access_token(self):
        """The refresh grant posts the stored refresh token."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "new", "expires_in": 3599})

        tokens = await oauth_for(handler).refresh_access_token("refresh-1")

        assert tokens["access_token"] == "new"
        assert str(seen[0].url) == GOOGLE_TOKEN_URL
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        assert form["client_id"] == ["client-id"]

    @pytest.mark.asyncio
    async def test_refresh_rejected_raises_auth_error(self):
        """A revoked refresh token surfaces as AuthError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(AuthError):
            await oauth_for(handler).refresh_access_token("revoked")

    @pytest.mark.asyncio
    async def test_missing_access_token_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(AuthError):
            await oauth_for(handler).exchange_code("code")

    @pytest.mark.asyncio
    async def test_non_json_token_response_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>captive portal</html>")

        with pytest.raises(AuthError):
            await oauth_for(handler).refresh_access_token("refresh-1")

    @pytest.mark.asyncio
    async def test_unconfigured_makes_no_request(self):
        """Missing credentials fail with ConfigError before any request."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(ConfigError):
            await oauth_for(handler, client_id="").refresh_access_token("refresh-1")
        assert seen == []

    @pytest.mark.asyncio
    async def test_exchange_code(self):
        """The authorization code grant includes the redirect URI."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"access_token": "a", "refresh_token": "r", "expires_in": 3600},
            )

        tokens = await oauth_for(handler).exchange_code("code-1")

        assert tokens["refresh_token"] == "r"
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["code-1"]
        assert form["redirect_uri"] == ["https://app.test/api/integrations/google-calendar/callback"]

    @pytest.mark.asyncio
    async def test_user_email_failure_returns_none(self):
        """Userinfo errors are not fatal."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "unauthorized"})

        assert await oauth_for(handler).get_user_email("token") is None
