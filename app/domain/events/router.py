"""Event router - FastAPI endpoints for local calendar events"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.google_calendar_service import get_google_transport
from .schemas import EventCreate, EventMutationResponse, EventResponse, EventUpdate
from .service import EventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


def get_event_service(
    db: Session = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
) -> EventService:
    """Dependency injection for EventService"""
    return EventService(db, transport=transport)


@router.get("", response_model=list[EventResponse])
async def list_events(
    start: Optional[datetime] = Query(None, description="Only events ending after this instant"),
    end: Optional[datetime] = Query(None, description="Only events starting before this instant"),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Events overlapping a time window, ordered by start time"""
    return service.list_events(current_user, start, end)


@router.get("/upcoming", response_model=list[EventResponse])
async def upcoming_events(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    return service.get_upcoming_events(current_user, limit)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    return service.get_event(event_id, current_user)


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    data: EventCreate,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Create a local event; it reaches Google on the next sync or explicit export"""
    return service.create_event(data, current_user)


@router.patch("/{event_id}", response_model=EventMutationResponse)
async def update_event(
    event_id: int,
    data: EventUpdate,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Update an event; send expected_updated_at to reject concurrent edits with 409"""
    event, warnings = await service.update_event(event_id, data, current_user)
    return EventMutationResponse(event=EventResponse.model_validate(event), warnings=warnings)


@router.delete("/{event_id}")
async def delete_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service),
):
    """Delete an event locally and from Google Calendar when linked"""
    await service.delete_event(event_id, current_user)
    return {"message": "Event deleted successfully"}
