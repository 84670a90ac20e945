"""Event domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, field_validator, model_validator

from ...utils.datetime_utils import ensure_utc

EventStatus = Literal["confirmed", "tentative", "cancelled"]
EventType = Literal["meeting", "task", "reminder", "other"]


def validate_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Event title is required")
    return v


def validate_recurrence(v: Optional[str]) -> Optional[str]:
    """A single RFC 5545 line such as 'RRULE:FREQ=WEEKLY;BYDAY=MO'"""
    if v is None:
        return v
    v = v.strip()
    if not v:
        return None
    if "\n" in v or "\r" in v:
        raise ValueError("Recurrence must be a single rule line")
    return v


def validate_timezone(v: Optional[str]) -> Optional[str]:
    if not v:
        return None
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {v}") from e
    return v


class EventCreate(BaseModel):
    """Schema for creating a new event"""

    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    timezone: Optional[str] = None
    is_all_day: bool = False
    event_type: EventType = "meeting"
    status: EventStatus = "confirmed"
    recurrence: Optional[str] = None

    _title = field_validator("title")(validate_title)
    _recurrence = field_validator("recurrence")(validate_recurrence)
    _timezone = field_validator("timezone")(validate_timezone)

    @model_validator(mode="after")
    def check_time_range(self):
        if ensure_utc(self.end_time) <= ensure_utc(self.start_time):
            raise ValueError("End time must be after start time")
        return self


class EventUpdate(BaseModel):
    """Schema for a partial update; expected_updated_at enables optimistic concurrency"""

    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    is_all_day: Optional[bool] = None
    event_type: Optional[EventType] = None
    status: Optional[EventStatus] = None
    recurrence: Optional[str] = None
    expected_updated_at: Optional[datetime] = None

    _title = field_validator("title")(validate_title)
    _recurrence = field_validator("recurrence")(validate_recurrence)
    _timezone = field_validator("timezone")(validate_timezone)


class EventResponse(BaseModel):
    """Schema for event response"""

    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    timezone: Optional[str] = None
    is_all_day: bool
    event_type: str
    status: str
    recurrence: Optional[str] = None
    google_event_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    class Config:
        from_attributes = True


class EventMutationResponse(BaseModel):
    """Saved event plus non-fatal problems (e.g. Google push failed)"""

    event: EventResponse
    warnings: list[str] = []
