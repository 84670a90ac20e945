from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .utils.datetime_utils import utcnow

EVENT_STATUSES = ("confirmed", "tentative", "cancelled")
EVENT_TYPES = ("meeting", "task", "reminder", "other")
RSVP_STATUSES = ("pending", "accepted", "declined", "maybe")
NOTIFICATION_CHANNELS = ("email", "messenger", "both")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Subject claim of the identity provider's session token
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    events = relationship("Event", back_populates="user", cascade="all, delete-orphan")


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_events_end_after_start"),
        UniqueConstraint("user_id", "google_event_id", name="uq_events_user_google_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(500), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. "America/New_York"
    is_all_day = Column(Boolean, default=False, nullable=False)
    event_type = Column(String(20), default="meeting", nullable=False)
    status = Column(String(20), default="confirmed", nullable=False)  # confirmed, tentative, cancelled
    recurrence = Column(Text, nullable=True)  # single RRULE line

    # Linked Google Calendar event (primary calendar)
    google_event_id = Column(String(1024), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="events")
    attendees = relationship(
        "EventAttendee",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventAttendee.created_at",
    )


class EventAttendee(Base):
    __tablename__ = "event_attendees"
    __table_args__ = (UniqueConstraint("event_id", "email", name="uq_event_attendees_event_email"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)

    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    notification_channel = Column(String(20), default="email", nullable=False)  # email, messenger, both

    rsvp_status = Column(String(20), default="pending", nullable=False)  # pending, accepted, declined, maybe
    # Sole credential for the public RSVP page
    rsvp_token = Column(String(128), unique=True, index=True, nullable=False)
    response_comment = Column(Text, nullable=True)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    event = relationship("Event", back_populates="attendees")
