"""
Event Sharing Service
Tokenized RSVP links and attendee responses
"""
import logging
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..config import FRONTEND_URL
from ..errors import InvalidLinkError, NotFoundError, PersistenceError
from ..models import Event, EventAttendee, User
from ..security_utils import generate_secure_token
from ..utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = ("accepted", "declined", "maybe")


def build_rsvp_url(token: str, base_url: str = FRONTEND_URL) -> str:
    return f"{base_url.rstrip('/')}/rsvp/{token}"


def generate_public_event_link(event_id: int, base_url: str = FRONTEND_URL) -> str:
    """View-only link, no RSVP"""
    return f"{base_url.rstrip('/')}/event/{event_id}"


def _display_zone(event: Event):
    try:
        return ZoneInfo(event.timezone) if event.timezone else ZoneInfo("UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _format_time(value) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def format_event_for_sharing(event: Event) -> dict[str, str]:
    """Title and message body used when sharing an event (Messenger, copy/paste)"""
    zone = _display_zone(event)
    start = ensure_utc(event.start_time).astimezone(zone)
    end = ensure_utc(event.end_time).astimezone(zone)

    date_str = f"{start.strftime('%A, %B')} {start.day}, {start.year}"
    lines = [f"📅 {date_str}", f"⏰ {_format_time(start)} - {_format_time(end)}"]
    if event.location:
        lines.append(f"📍 {event.location}")

    description = "\n".join(lines)
    if event.description:
        description += f"\n\n{event.description}"
    description += "\n\nClick to RSVP!"

    return {"title": f"📌 {event.title}", "description": description}


class EventSharingService:
    """Share links and RSVP responses"""

    def __init__(self, db: Session, base_url: str = FRONTEND_URL):
        self.db = db
        self.base_url = base_url

    def get_owned_event(self, event_id: int, user: User) -> Event:
        event = self.db.query(Event).filter(Event.id == event_id, Event.user_id == user.id).first()
        if not event:
            raise NotFoundError("Event not found")
        return event

    def _find_attendee(self, event_id: int, email: str) -> Optional[EventAttendee]:
        return (
            self.db.query(EventAttendee)
            .filter(EventAttendee.event_id == event_id, EventAttendee.email == email)
            .first()
        )

    def generate_share_link(
        self, event: Event, attendee_email: str, attendee_name: Optional[str] = None
    ) -> tuple[str, EventAttendee]:
        """
        Upsert the attendee keyed by (event, email) and return its RSVP link.
        Calling this twice for the same email returns the same attendee and token.
        """
        email = attendee_email.strip().lower()
        attendee = self._find_attendee(event.id, email)

        try:
            if attendee:
                if attendee_name:
                    attendee.name = attendee_name
                self.db.commit()
            else:
                attendee = EventAttendee(
                    event_id=event.id,
                    email=email,
                    name=attendee_name or email,
                    rsvp_status="pending",
                    rsvp_token=generate_secure_token(),
                )
                self.db.add(attendee)
                self.db.commit()
                logger.info(f"✅ Attendee created for event {event.id}")
        except IntegrityError:
            # Concurrent request created the same (event, email) row
            self.db.rollback()
            attendee = self._find_attendee(event.id, email)
            if not attendee:
                raise PersistenceError("Failed to generate share link")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to upsert attendee: {str(e)}")
            raise PersistenceError("Failed to generate share link") from e

        self.db.refresh(attendee)
        return build_rsvp_url(attendee.rsvp_token, self.base_url), attendee

    def get_event_attendees(self, event: Event) -> list[EventAttendee]:
        return (
            self.db.query(EventAttendee)
            .filter(EventAttendee.event_id == event.id)
            .order_by(EventAttendee.created_at.asc(), EventAttendee.id.asc())
            .all()
        )

    def resolve_by_token(self, token: str) -> tuple[Event, EventAttendee]:
        """Event and attendee for a public RSVP link"""
        attendee = (
            self.db.query(EventAttendee)
            .options(joinedload(EventAttendee.event))
            .filter(EventAttendee.rsvp_token == token)
            .first()
        )
        if not attendee or not attendee.event:
            raise InvalidLinkError()
        return attendee.event, attendee

    def submit_rsvp(self, token: str, status: str, comment: Optional[str] = None) -> EventAttendee:
        """Record a response; resubmitting overwrites the previous one"""
        if status not in RESPONSE_STATUSES:
            raise ValueError(f"Invalid RSVP status: {status}")

        attendee = self.db.query(EventAttendee).filter(EventAttendee.rsvp_token == token).first()
        if not attendee:
            raise InvalidLinkError()

        attendee.rsvp_status = status
        attendee.response_comment = comment
        attendee.responded_at = utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update RSVP: {str(e)}")
            raise PersistenceError("Failed to update RSVP") from e

        self.db.refresh(attendee)
        logger.info(f"📨 RSVP {status} recorded for event {attendee.event_id}")
        return attendee

    @staticmethod
    def attendee_summary(attendee: EventAttendee) -> dict[str, Any]:
        return {
            "id": attendee.id,
            "email": attendee.email,
            "name": attendee.name,
            "rsvp_status": attendee.rsvp_status,
            "response_comment": attendee.response_comment,
            "responded_at": ensure_utc(attendee.responded_at),
        }
