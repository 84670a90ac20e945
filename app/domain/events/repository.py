"""Event repository - Database operations for events"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Event


class EventRepository:
    """Repository for event database operations"""

    @staticmethod
    def get_events_in_range(
        db: Session,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_cancelled: bool = False,
    ) -> list[Event]:
        """Events overlapping [start, end), ordered by start time"""
        query = db.query(Event).filter(Event.user_id == user_id)
        if start is not None:
            query = query.filter(Event.end_time > start)
        if end is not None:
            query = query.filter(Event.start_time < end)
        if not include_cancelled:
            query = query.filter(Event.status != "cancelled")
        return query.order_by(Event.start_time.asc(), Event.id.asc()).all()

    @staticmethod
    def get_upcoming(db: Session, user_id: int, now: datetime, limit: int) -> list[Event]:
        return (
            db.query(Event)
            .filter(
                Event.user_id == user_id,
                Event.status != "cancelled",
                Event.end_time > now,
            )
            .order_by(Event.start_time.asc(), Event.id.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_event_by_id(db: Session, event_id: int, user_id: int) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id, Event.user_id == user_id).first()

    @staticmethod
    def create_event(db: Session, user_id: int, **event_data) -> Event:
        event = Event(user_id=user_id, **event_data)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def update_event(db: Session, event: Event, **updates) -> Event:
        """Apply the given fields; None clears nullable columns"""
        for key, value in updates.items():
            if hasattr(event, key):
                setattr(event, key, value)
        db.commit()
        db.refresh(event)
        return event
