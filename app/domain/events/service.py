"""Event service - Business logic for local calendar events"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import AppError, ConflictError, InvalidEventError, NotFoundError, PersistenceError
from ...models import Event, User
from ...services.sync_service import CalendarSyncService
from ...utils.datetime_utils import ensure_utc, to_utc, utcnow
from .repository import EventRepository
from .schemas import EventCreate, EventUpdate

logger = logging.getLogger(__name__)

MAX_UPCOMING = 100


class EventService:
    """Service layer for event business logic"""

    def __init__(self, db: Session, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.db = db
        self.repo = EventRepository()
        self.transport = transport

    def list_events(
        self, user: User, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[Event]:
        start, end = to_utc(start), to_utc(end)
        if start and end and end <= start:
            raise InvalidEventError("end must be after start")
        return self.repo.get_events_in_range(self.db, user.id, start, end, include_cancelled=True)

    def get_upcoming_events(self, user: User, limit: int = 10) -> list[Event]:
        limit = max(1, min(limit, MAX_UPCOMING))
        return self.repo.get_upcoming(self.db, user.id, utcnow(), limit)

    def get_event(self, event_id: int, user: User) -> Event:
        event = self.repo.get_event_by_id(self.db, event_id, user.id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def create_event(self, data: EventCreate, user: User) -> Event:
        values = data.model_dump()
        values["start_time"] = to_utc(data.start_time)
        values["end_time"] = to_utc(data.end_time)
        values["timezone"] = data.timezone or user.timezone or "UTC"

        try:
            event = self.repo.create_event(self.db, user.id, **values)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create event for user {user.id}: {str(e)}")
            raise PersistenceError(f"Failed to create event: {str(e)}") from e

        logger.info(f"✅ Event {event.id} created for user {user.id}")
        return event

    async def update_event(self, event_id: int, data: EventUpdate, user: User) -> tuple[Event, list[str]]:
        """
        Apply a partial update. When expected_updated_at is given and the row
        has changed since, nothing is written. Linked events are pushed to
        Google afterwards; a failed push is reported as a warning.
        """
        event = self.get_event(event_id, user)

        if data.expected_updated_at is not None:
            current = ensure_utc(event.updated_at)
            if current != to_utc(data.expected_updated_at):
                raise ConflictError("Event was modified by another request. Reload and try again.")

        updates = data.model_dump(exclude_unset=True, exclude={"expected_updated_at"})
        for field in ("start_time", "end_time"):
            if field in updates:
                if updates[field] is None:
                    raise InvalidEventError(f"{field} cannot be cleared")
                updates[field] = to_utc(updates[field])
        for field in ("title", "is_all_day", "event_type", "status"):
            if field in updates and updates[field] is None:
                raise InvalidEventError(f"{field} cannot be cleared")

        start = updates.get("start_time", ensure_utc(event.start_time))
        end = updates.get("end_time", ensure_utc(event.end_time))
        if end <= start:
            raise InvalidEventError("End time must be after start time")

        try:
            event = self.repo.update_event(self.db, event, **updates)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to update event: {str(e)}") from e

        warnings: list[str] = []
        if event.google_event_id:
            try:
                await CalendarSyncService(self.db, user, transport=self.transport).push_event(event)
            except AppError as e:
                logger.warning(f"⚠️ Event {event.id} saved locally but Google update failed: {e.message}")
                warnings.append(f"Saved locally, but Google Calendar update failed: {e.message}")

        logger.info(f"✅ Event {event.id} updated for user {user.id}")
        return event, warnings

    async def delete_event(self, event_id: int, user: User) -> None:
        """Delete from Google (best effort) and locally"""
        await CalendarSyncService(self.db, user, transport=self.transport).delete_event_everywhere(event_id)
