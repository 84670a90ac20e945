"""
Mapping between local events and Google Calendar event resources

The round trip is lossy: attendees, reminders, colors, extended properties
and every recurrence line after the first are dropped on import, and
confirmed status is implicit on export.
"""
from datetime import date, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..utils.datetime_utils import (
    format_calendar_date,
    format_rfc3339,
    parse_calendar_date,
    parse_rfc3339,
)

DEFAULT_TIMEZONE = "UTC"
UNTITLED_EVENT = "Untitled Event"


def _parse_boundary(boundary: dict[str, Any]):
    if boundary.get("dateTime"):
        return parse_rfc3339(boundary["dateTime"])
    return parse_calendar_date(boundary["date"])


def _event_zone(event: Any) -> ZoneInfo:
    try:
        return ZoneInfo(event.timezone or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def google_status_to_local(status: Any) -> str:
    if status == "cancelled":
        return "cancelled"
    if status == "tentative":
        return "tentative"
    return "confirmed"


def google_event_to_local(google_event: dict[str, Any], user_id: int) -> dict[str, Any]:
    """Column values for a local Event built from a Google event resource"""
    start = google_event.get("start") or {}
    end = google_event.get("end") or {}
    recurrence = google_event.get("recurrence") or []

    return {
        "user_id": user_id,
        "google_event_id": google_event["id"],
        "title": google_event.get("summary") or UNTITLED_EVENT,
        "description": google_event.get("description"),
        "location": google_event.get("location"),
        "start_time": _parse_boundary(start),
        "end_time": _parse_boundary(end),
        # All-day means a date with no time component
        "is_all_day": not start.get("dateTime"),
        "timezone": start.get("timeZone") or DEFAULT_TIMEZONE,
        "status": google_status_to_local(google_event.get("status")),
        "recurrence": recurrence[0] if recurrence else None,
    }


def local_event_to_google(event: Any) -> dict[str, Any]:
    """Google event resource for a local event (usable for insert and patch)"""
    google_event: dict[str, Any] = {"summary": event.title}
    if event.description is not None:
        google_event["description"] = event.description
    if event.location is not None:
        google_event["location"] = event.location

    if event.is_all_day:
        # Dates as the user saw them, not as UTC
        zone = _event_zone(event)
        start_date = format_calendar_date(event.start_time, zone)
        end_date = format_calendar_date(event.end_time, zone)
        # Google's all-day end date is exclusive
        if end_date <= start_date:
            end_date = (date.fromisoformat(start_date) + timedelta(days=1)).isoformat()
        google_event["start"] = {"date": start_date}
        google_event["end"] = {"date": end_date}
    else:
        tz = event.timezone or DEFAULT_TIMEZONE
        google_event["start"] = {"dateTime": format_rfc3339(event.start_time), "timeZone": tz}
        google_event["end"] = {"dateTime": format_rfc3339(event.end_time), "timeZone": tz}

    if event.status in ("cancelled", "tentative"):
        google_event["status"] = event.status

    if event.recurrence:
        google_event["recurrence"] = [event.recurrence]

    return google_event
