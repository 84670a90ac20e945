"""
Public RSVP Routes
The token in the URL is the only credential; no account required
"""

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..config import RSVP_RATE_LIMIT, RSVP_RATE_WINDOW
from ..database import get_db
from ..rate_limiter import create_rate_limiter
from ..services.event_sharing import EventSharingService
from ..utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rsvp", tags=["RSVP"])

rsvp_rate_limit = create_rate_limiter(RSVP_RATE_LIMIT, RSVP_RATE_WINDOW, "rsvp")


class RSVPRequest(BaseModel):
    status: Literal["accepted", "declined", "maybe"]
    comment: Optional[str] = Field(None, max_length=2000)


class PublicEventResponse(BaseModel):
    """Only what an invitee needs to see"""

    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    timezone: Optional[str] = None
    is_all_day: bool
    status: str


class PublicAttendeeResponse(BaseModel):
    name: Optional[str] = None
    email: str
    rsvp_status: str
    response_comment: Optional[str] = None
    responded_at: Optional[datetime] = None


class RSVPPageResponse(BaseModel):
    event: PublicEventResponse
    attendee: PublicAttendeeResponse


def _page(event, attendee) -> RSVPPageResponse:
    return RSVPPageResponse(
        event=PublicEventResponse(
            id=event.id,
            title=event.title,
            description=event.description,
            location=event.location,
            start_time=ensure_utc(event.start_time),
            end_time=ensure_utc(event.end_time),
            timezone=event.timezone,
            is_all_day=event.is_all_day,
            status=event.status,
        ),
        attendee=PublicAttendeeResponse(
            name=attendee.name,
            email=attendee.email,
            rsvp_status=attendee.rsvp_status,
            response_comment=attendee.response_comment,
            responded_at=ensure_utc(attendee.responded_at),
        ),
    )


@router.get("/{token}", response_model=RSVPPageResponse, dependencies=[Depends(rsvp_rate_limit)])
async def get_rsvp(token: str, db: Session = Depends(get_db)):
    """Event and current response for an RSVP link"""
    event, attendee = EventSharingService(db).resolve_by_token(token)
    return _page(event, attendee)


@router.post("/{token}", response_model=RSVPPageResponse, dependencies=[Depends(rsvp_rate_limit)])
async def submit_rsvp(token: str, data: RSVPRequest, db: Session = Depends(get_db)):
    """Record the invitee's response; resubmitting replaces it"""
    service = EventSharingService(db)
    attendee = service.submit_rsvp(token, data.status, data.comment)
    return _page(attendee.event, attendee)
