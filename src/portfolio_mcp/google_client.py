"""
Google Calendar and Gmail access via the REST APIs.

Authenticates with an OAuth refresh token (GOOGLE_CLIENT_ID,
GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN). Access tokens are cached until
shortly before they expire.
"""

import base64
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from html import unescape
from typing import Any, Dict, List, Optional

import httpx

from portfolio_mcp.errors import ConfigurationError, RequestTimeoutError, UpstreamError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

REQUEST_TIMEOUT = 20  # seconds
MAX_BODY_CHARS = 50_000
METADATA_HEADERS = ["From", "To", "Subject", "Date"]


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def _strip_html(html: str) -> str:
    text = re.sub(r"(?is)<(script|style).*?</\1>", "", html)
    text = re.sub(r"(?i)<br\s*/?>|</p>|</div>", "\n", text)
    text = re.sub(r"<[^>]+>", "", text)
    text = unescape(text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def _find_part(payload: Dict[str, Any], mime_type: str) -> Optional[str]:
    """Depth-first search of a Gmail payload for a body of the given type."""
    if payload.get("mimeType") == mime_type:
        data = payload.get("body", {}).get("data")
        if data:
            return _decode_base64url(data)
    for part in payload.get("parts", []) or []:
        found = _find_part(part, mime_type)
        if found:
            return found
    return None


def _headers(payload: Dict[str, Any]) -> Dict[str, str]:
    return {
        h.get("name", "").lower(): h.get("value", "")
        for h in payload.get("headers", []) or []
    }


def _time_field(value: str, timezone_name: Optional[str]) -> Dict[str, str]:
    """Calendar start/end object; bare YYYY-MM-DD dates become all-day events."""
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return {"date": value}
    field = {"dateTime": value}
    if timezone_name:
        field["timeZone"] = timezone_name
    return field


class GoogleClient:
    """Minimal Calendar + Gmail client over an injected httpx.AsyncClient."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: Optional[str],
        client_secret: Optional[str],
        refresh_token: Optional[str],
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def require_configured(self):
        if not self.is_configured:
            missing = [
                name for name, value in (
                    ("GOOGLE_CLIENT_ID", self.client_id),
                    ("GOOGLE_CLIENT_SECRET", self.client_secret),
                    ("GOOGLE_REFRESH_TOKEN", self.refresh_token),
                ) if not value
            ]
            raise ConfigurationError(
                f"Google not configured. Set {', '.join(missing)} environment variables."
            )

    async def _access(self) -> str:
        self.require_configured()
        if self._access_token and time.monotonic() < self._expires_at:
            return self._access_token

        data = await self._send(
            "POST",
            TOKEN_URL,
            step="refresh Google access token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        token = data.get("access_token")
        if not token:
            raise UpstreamError("Google token response did not include an access token")
        self._access_token = token
        # Refresh a minute early
        self._expires_at = time.monotonic() + max(int(data.get("expires_in", 3600)) - 60, 0)
        logger.info("Refreshed Google access token")
        return token

    async def _send(self, method: str, url: str, step: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.http.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{step} timed out after {REQUEST_TIMEOUT}s", step=step) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"{step} failed: {e}", step=step) from e

        if response.status_code >= 400:
            logger.warning(f"Google API error during '{step}': HTTP {response.status_code}")
            raise UpstreamError(
                f"{step} failed: HTTP {response.status_code} {response.text[:200]}",
                step=step,
            )
        return response.json() if response.content else {}

    async def _api(self, method: str, url: str, step: str, **kwargs) -> Dict[str, Any]:
        token = await self._access()
        headers = {"Authorization": f"Bearer {token}"}
        return await self._send(method, url, step, headers=headers, **kwargs)

    # Calendar

    async def list_events(
        self,
        days_ahead: int = 7,
        max_results: int = 20,
        calendar_id: str = "primary",
    ) -> List[Dict[str, Any]]:
        """List upcoming events from now until days_ahead days from now."""
        now = datetime.now(timezone.utc)
        data = await self._api(
            "GET",
            f"{CALENDAR_API}/calendars/{calendar_id}/events",
            step="list calendar events",
            params={
                "timeMin": now.isoformat(),
                "timeMax": (now + timedelta(days=days_ahead)).isoformat(),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        events = []
        for item in data.get("items", []):
            start = item.get("start", {})
            end = item.get("end", {})
            events.append({
                "id": item.get("id"),
                "summary": item.get("summary"),
                "description": item.get("description"),
                "location": item.get("location"),
                "start": start.get("dateTime") or start.get("date"),
                "end": end.get("dateTime") or end.get("date"),
                "attendees": [a.get("email") for a in item.get("attendees", []) if a.get("email")],
                "html_link": item.get("htmlLink"),
            })
        return events

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        description: Optional[str] = None,
        location: Optional[str] = None,
        attendees: Optional[List[str]] = None,
        timezone_name: Optional[str] = None,
        calendar_id: str = "primary",
    ) -> Dict[str, Any]:
        """Create an event; attendees receive invitations."""
        body: Dict[str, Any] = {
            "summary": summary,
            "start": _time_field(start, timezone_name),
            "end": _time_field(end, timezone_name),
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if attendees:
            body["attendees"] = [{"email": email} for email in attendees]

        created = await self._api(
            "POST",
            f"{CALENDAR_API}/calendars/{calendar_id}/events",
            step="create calendar event",
            params={"sendUpdates": "all"} if attendees else None,
            json=body,
        )
        logger.info(f"Created calendar event {created.get('id')}: {summary}")
        return {
            "id": created.get("id"),
            "summary": created.get("summary"),
            "start": created.get("start"),
            "end": created.get("end"),
            "html_link": created.get("htmlLink"),
        }

    # Gmail

    async def search_messages(self, query: str = "", max_results: int = 10) -> List[Dict[str, Any]]:
        """Search the mailbox with Gmail query syntax and return message summaries."""
        params: Dict[str, Any] = {"maxResults": max_results}
        if query:
            params["q"] = query
        listing = await self._api("GET", f"{GMAIL_API}/messages", step="search mail", params=params)

        messages = []
        for ref in listing.get("messages", []) or []:
            message = await self._api(
                "GET",
                f"{GMAIL_API}/messages/{ref['id']}",
                step=f"read mail {ref['id']}",
                params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
            )
            headers = _headers(message.get("payload", {}))
            messages.append({
                "id": message.get("id"),
                "thread_id": message.get("threadId"),
                "from": headers.get("from"),
                "to": headers.get("to"),
                "subject": headers.get("subject"),
                "date": headers.get("date"),
                "snippet": unescape(message.get("snippet", "")),
            })
        return messages

    async def get_message(self, message_id: str) -> Dict[str, Any]:
        """Fetch one message with its plain-text body."""
        message = await self._api(
            "GET",
            f"{GMAIL_API}/messages/{message_id}",
            step=f"read mail {message_id}",
            params={"format": "full"},
        )
        payload = message.get("payload", {})
        headers = _headers(payload)

        body = _find_part(payload, "text/plain")
        if body is None:
            html = _find_part(payload, "text/html")
            body = _strip_html(html) if html else ""

        truncated = len(body) > MAX_BODY_CHARS
        if truncated:
            body = body[:MAX_BODY_CHARS] + f"\n\n[... truncated, showing first {MAX_BODY_CHARS} characters]"

        return {
            "id": message.get("id"),
            "thread_id": message.get("threadId"),
            "from": headers.get("from"),
            "to": headers.get("to"),
            "subject": headers.get("subject"),
            "date": headers.get("date"),
            "labels": message.get("labelIds", []),
            "body": body,
            "truncated": truncated,
        }
