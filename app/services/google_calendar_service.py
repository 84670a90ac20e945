"""
Google Calendar Service
Thin REST wrapper over the Calendar v3 API, authenticated as one user
"""
import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..config import GOOGLE_HTTP_TIMEOUT
from ..errors import RemoteApiError
from ..models import User
from ..utils.datetime_utils import format_rfc3339
from .token_provider import TokenProvider

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
PRIMARY_CALENDAR = "primary"
MAX_RESULTS = 250


def get_google_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Dependency for routes that talk to Google; None uses the default network transport"""
    return None


def _error_message(response: httpx.Response) -> Optional[str]:
    """Google wraps errors as {"error": {"code": ..., "message": ...}}"""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return body.get("error_description") or error
    return None


class GoogleCalendarClient:
    """Calendar API calls for a single user; every call attaches a fresh bearer token"""

    def __init__(
        self,
        token_provider: TokenProvider,
        user: User,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: str = GOOGLE_CALENDAR_API,
    ):
        self.token_provider = token_provider
        self.user = user
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        access_token = await self.token_provider.get_access_token(self.user)

        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=GOOGLE_HTTP_TIMEOUT
            ) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Google Calendar {method} {path} unreachable: {str(e)}")
            raise RemoteApiError(503, f"Google Calendar unreachable: {str(e)}") from e

        if response.status_code < 200 or response.status_code >= 300:
            message = _error_message(response)
            logger.error(
                f"❌ Google Calendar {method} {path} failed: HTTP {response.status_code} {message or ''}"
            )
            raise RemoteApiError(response.status_code, message)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _events_path(calendar_id: str, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def list_calendars(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/users/me/calendarList")
        return (data or {}).get("items", [])

    async def list_events(
        self,
        calendar_id: str = PRIMARY_CALENDAR,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        max_results: int = MAX_RESULTS,
    ) -> list[dict[str, Any]]:
        """Single page of expanded (singleEvents) events ordered by start time"""
        params: dict[str, Any] = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(max_results),
        }
        if time_min is not None:
            params["timeMin"] = format_rfc3339(time_min)
        if time_max is not None:
            params["timeMax"] = format_rfc3339(time_max)

        data = await self._request("GET", self._events_path(calendar_id), params=params)
        return (data or {}).get("items", [])

    async def create_event(
        self, event: dict[str, Any], calendar_id: str = PRIMARY_CALENDAR
    ) -> dict[str, Any]:
        created = await self._request("POST", self._events_path(calendar_id), json=event)
        logger.info(f"✅ Google Calendar event created: {created.get('id')}")
        return created

    async def update_event(
        self, event_id: str, event: dict[str, Any], calendar_id: str = PRIMARY_CALENDAR
    ) -> dict[str, Any]:
        """PATCH semantics: only the supplied fields change"""
        updated = await self._request("PATCH", self._events_path(calendar_id, event_id), json=event)
        logger.info(f"✅ Google Calendar event updated: {event_id}")
        return updated

    async def delete_event(self, event_id: str, calendar_id: str = PRIMARY_CALENDAR) -> None:
        await self._request("DELETE", self._events_path(calendar_id, event_id))
        logger.info(f"✅ Google Calendar event deleted: {event_id}")
