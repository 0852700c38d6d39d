#!/usr/bin/env python3
"""
Tests for the Google Calendar and Gmail tools.

The Google APIs are served by an httpx.MockTransport; no network access.
"""

import base64
import json

import httpx
import pytest

from portfolio_mcp.errors import ConfigurationError, UpstreamError
from portfolio_mcp.google_client import CALENDAR_API, GMAIL_API, TOKEN_URL, GoogleClient


def b64url(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def base_url(request):
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


class FakeGoogle:
    """Routes requests by method and URL and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        url = base_url(request)
        route = self.routes.get((request.method, url))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        status, body = route
        return httpx.Response(status, json=body)

    def calls_to(self, url):
        return [r for r in self.requests if base_url(r) == url]


TOKEN_ROUTE = {("POST", TOKEN_URL): (200, {"access_token": "tok-1", "expires_in": 3600})}


@pytest.fixture
def google(ctx):
    def install(routes):
        fake = FakeGoogle({**TOKEN_ROUTE, **routes})
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        ctx.google = GoogleClient(http, "client-id", "client-secret", "refresh-token")
        return fake
    return install


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_unconfigured_names_missing_variables(self, ctx, registry):
        with pytest.raises(ConfigurationError) as excinfo:
            await registry.invoke(ctx, "list_calendar_events", {})
        message = str(excinfo.value)
        assert "GOOGLE_CLIENT_ID" in message
        assert "GOOGLE_REFRESH_TOKEN" in message

    @pytest.mark.asyncio
    async def test_token_refresh_failure(self, ctx, registry, google):
        fake = google({("POST", TOKEN_URL): (400, {"error": "invalid_grant"})})
        with pytest.raises(UpstreamError, match="HTTP 400"):
            await registry.invoke(ctx, "search_emails", {})
        assert len(fake.requests) == 1


class TestCalendar:
    """Calendar event listing and creation."""

    EVENTS_URL = f"{CALENDAR_API}/calendars/primary/events"

    @pytest.mark.asyncio
    async def test_list_events(self, ctx, registry, google):
        fake = google({
            ("GET", self.EVENTS_URL): (200, {"items": [
                {
                    "id": "e1",
                    "summary": "DTIQ sync",
                    "start": {"dateTime": "2026-10-20T15:00:00Z"},
                    "end": {"dateTime": "2026-10-20T15:30:00Z"},
                    "attendees": [{"email": "ops@dtiq.test"}, {"displayName": "Room"}],
                    "htmlLink": "https://calendar.test/e1",
                },
                {"id": "e2", "summary": "Offsite", "start": {"date": "2026-10-22"}, "end": {"date": "2026-10-23"}},
            ]}),
        })

        result = await registry.invoke(ctx, "list_calendar_events", {"days_ahead": 3})
        await registry.invoke(ctx, "list_calendar_events", {})

        assert result["count"] == 2
        assert result["events"][0]["attendees"] == ["ops@dtiq.test"]
        assert result["events"][0]["html_link"] == "https://calendar.test/e1"
        assert result["events"][1]["start"] == "2026-10-22"

        # the access token is cached between calls
        assert len(fake.calls_to(TOKEN_URL)) == 1
        listing = fake.calls_to(self.EVENTS_URL)[0]
        assert listing.headers["Authorization"] == "Bearer tok-1"
        assert listing.url.params["singleEvents"] == "true"
        assert listing.url.params["orderBy"] == "startTime"

    @pytest.mark.asyncio
    async def test_create_all_day_event_with_attendees(self, ctx, registry, google):
        fake = google({
            ("POST", self.EVENTS_URL): (200, {
                "id": "new1",
                "summary": "Pilot review",
                "start": {"date": "2026-10-20"},
                "end": {"date": "2026-10-21"},
                "htmlLink": "https://calendar.test/new1",
            }),
        })

        result = await registry.invoke(ctx, "create_calendar_event", {
            "summary": "Pilot review",
            "start": "2026-10-20",
            "end": "2026-10-21",
            "attendees": ["ops@dtiq.test"],
        })

        assert result["success"] is True
        assert result["event"]["id"] == "new1"
        request = fake.calls_to(self.EVENTS_URL)[0]
        body = json.loads(request.content)
        assert body["start"] == {"date": "2026-10-20"}
        assert body["attendees"] == [{"email": "ops@dtiq.test"}]
        assert request.url.params["sendUpdates"] == "all"

    @pytest.mark.asyncio
    async def test_create_timed_event_with_timezone(self, ctx, registry, google):
        fake = google({("POST", self.EVENTS_URL): (200, {"id": "new2"})})

        await registry.invoke(ctx, "create_calendar_event", {
            "summary": "Call",
            "start": "2026-10-20T10:00:00",
            "end": "2026-10-20T10:30:00",
            "timezone": "America/New_York",
        })

        request = fake.calls_to(self.EVENTS_URL)[0]
        body = json.loads(request.content)
        assert body["start"] == {"dateTime": "2026-10-20T10:00:00", "timeZone": "America/New_York"}
        assert "sendUpdates" not in request.url.params


class TestGmail:
    """Mailbox search and message reads."""

    @pytest.mark.asyncio
    async def test_search(self, ctx, registry, google):
        fake = google({
            ("GET", f"{GMAIL_API}/messages"): (200, {"messages": [{"id": "m1", "threadId": "t1"}]}),
            ("GET", f"{GMAIL_API}/messages/m1"): (200, {
                "id": "m1",
                "threadId": "t1",
                "snippet": "Tom &amp; Jerry",
                "payload": {"headers": [
                    {"name": "From", "value": "ops@dtiq.test"},
                    {"name": "Subject", "value": "API keys"},
                ]},
            }),
        })

        result = await registry.invoke(ctx, "search_emails", {"query": "from:dtiq.test", "max_results": 5})

        assert result["count"] == 1
        message = result["messages"][0]
        assert message["from"] == "ops@dtiq.test"
        assert message["subject"] == "API keys"
        assert message["snippet"] == "Tom & Jerry"
        listing = fake.calls_to(f"{GMAIL_API}/messages")[0]
        assert listing.url.params["q"] == "from:dtiq.test"
        assert listing.url.params["maxResults"] == "5"

    @pytest.mark.asyncio
    async def test_empty_search(self, ctx, registry, google):
        google({("GET", f"{GMAIL_API}/messages"): (200, {"resultSizeEstimate": 0})})
        assert await registry.invoke(ctx, "search_emails", {}) == {"count": 0, "messages": []}

    @pytest.mark.asyncio
    async def test_get_plain_text_body(self, ctx, registry, google):
        google({
            ("GET", f"{GMAIL_API}/messages/m1"): (200, {
                "id": "m1",
                "labelIds": ["INBOX"],
                "payload": {
                    "mimeType": "multipart/alternative",
                    "headers": [{"name": "Subject", "value": "Hi"}],
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": b64url("Plain body")}},
                        {"mimeType": "text/html", "body": {"data": b64url("<p>HTML body</p>")}},
                    ],
                },
            }),
        })

        message = await registry.invoke(ctx, "get_email", {"message_id": "m1"})

        assert message["body"] == "Plain body"
        assert message["subject"] == "Hi"
        assert message["labels"] == ["INBOX"]
        assert message["truncated"] is False

    @pytest.mark.asyncio
    async def test_get_html_only_body(self, ctx, registry, google):
        google({
            ("GET", f"{GMAIL_API}/messages/m2"): (200, {
                "id": "m2",
                "payload": {
                    "mimeType": "text/html",
                    "body": {"data": b64url("<style>p {}</style><p>Hello<br>World &amp; all</p>")},
                },
            }),
        })

        message = await registry.invoke(ctx, "get_email", {"message_id": "m2"})

        assert message["body"] == "Hello\nWorld & all"

    @pytest.mark.asyncio
    async def test_api_error(self, ctx, registry, google):
        google({("GET", f"{GMAIL_API}/messages/gone"): (404, {"error": "not found"})})
        with pytest.raises(UpstreamError, match="HTTP 404"):
            await registry.invoke(ctx, "get_email", {"message_id": "gone"})
