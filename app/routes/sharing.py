"""
Event Sharing Routes
Owner-side share links, attendee lists and Messenger sharing
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import FACEBOOK_APP_ID
from ..database import get_db
from ..models import User
from ..services.event_sharing import (
    EventSharingService,
    format_event_for_sharing,
    generate_public_event_link,
)
from ..services.facebook_service import (
    FacebookNotConfiguredError,
    build_messenger_send_url,
    require_facebook_app_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Sharing"])


class ShareRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class AttendeeResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    rsvp_status: str
    response_comment: Optional[str] = None
    responded_at: Optional[datetime] = None


class ShareResponse(BaseModel):
    share_url: str
    attendee: AttendeeResponse


def get_sharing_service(db: Session = Depends(get_db)) -> EventSharingService:
    return EventSharingService(db)


@router.post("/{event_id}/share", response_model=ShareResponse)
async def share_event(
    event_id: int,
    data: ShareRequest,
    current_user: User = Depends(get_current_user),
    service: EventSharingService = Depends(get_sharing_service),
):
    """Create (or reuse) the attendee's RSVP link"""
    event = service.get_owned_event(event_id, current_user)
    share_url, attendee = service.generate_share_link(event, data.email, data.name)
    return ShareResponse(share_url=share_url, attendee=service.attendee_summary(attendee))


@router.get("/{event_id}/attendees", response_model=list[AttendeeResponse])
async def list_attendees(
    event_id: int,
    current_user: User = Depends(get_current_user),
    service: EventSharingService = Depends(get_sharing_service),
):
    event = service.get_owned_event(event_id, current_user)
    return [service.attendee_summary(a) for a in service.get_event_attendees(event)]


@router.get("/{event_id}/public-link")
async def get_public_link(
    event_id: int,
    current_user: User = Depends(get_current_user),
    service: EventSharingService = Depends(get_sharing_service),
):
    """View-only link to the event (no RSVP)"""
    event = service.get_owned_event(event_id, current_user)
    return {"url": generate_public_event_link(event.id, service.base_url)}


@router.post("/{event_id}/share/messenger")
async def share_via_messenger(
    event_id: int,
    data: ShareRequest,
    current_user: User = Depends(get_current_user),
    service: EventSharingService = Depends(get_sharing_service),
):
    """RSVP link wrapped in a Facebook Send Dialog URL, plus the share text"""
    event = service.get_owned_event(event_id, current_user)
    try:
        app_id = require_facebook_app_id(FACEBOOK_APP_ID)
    except FacebookNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    share_url, attendee = service.generate_share_link(event, data.email, data.name)
    dialog_url = build_messenger_send_url(share_url, app_id=app_id)

    logger.info(f"💬 Messenger share prepared for event {event.id}")
    return {
        "dialog_url": dialog_url,
        "share_url": share_url,
        "attendee": service.attendee_summary(attendee),
        **format_event_for_sharing(event),
    }
