"""
Datetime helpers shared by the event store and the Google mapping

- utcnow: timezone-aware "now"
- ensure_utc: treat naive values (as read back from SQLite) as UTC
- to_utc: normalize an instant to UTC before storing it
- parse_rfc3339 / format_rfc3339: Google Calendar dateTime strings
- parse_calendar_date / format_calendar_date: Google all-day "date" strings
"""

from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return an aware datetime; naive values are assumed to be UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Same instant expressed in UTC; stored timestamps are always UTC"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(timezone.utc)


def parse_rfc3339(value: str) -> datetime:
    """Parse '2024-01-10T09:00:00Z' / '2024-01-10T09:00:00-05:00' into an aware UTC datetime"""
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(value))


def format_rfc3339(dt: datetime) -> str:
    """Format an instant for Google; UTC instants use the 'Z' suffix"""
    dt = ensure_utc(dt)
    if dt.utcoffset().total_seconds() == 0:
        return dt.strftime("%Y-%m-%dT%H:%M:%SZ")
    return dt.isoformat(timespec="seconds")


def parse_calendar_date(value: str) -> datetime:
    """An all-day 'YYYY-MM-DD' becomes midnight UTC of that date"""
    return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)


def format_calendar_date(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """Calendar date of an instant in tz (UTC by default), no time component"""
    return to_utc(dt).astimezone(tz or timezone.utc).date().isoformat()
