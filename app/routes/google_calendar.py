"""
Google Calendar Integration Routes
Handles OAuth connection and calendar syncing
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

import httpx
from arq import create_pool
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI
from ..database import get_db
from ..domain.events.schemas import EventResponse
from ..models import User
from ..security_utils import generate_oauth_state, verify_oauth_state
from ..services.google_calendar_service import GoogleCalendarClient, get_google_transport
from ..services.sync_service import CalendarSyncService, SyncResult
from ..services.token_provider import GOOGLE_CALENDAR_SCOPES, TokenProvider
from ..utils.datetime_utils import ensure_utc
from ..worker import SYNC_JOB_NAME, get_redis_settings, sync_job_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"


class OAuthCallbackRequest(BaseModel):
    code: str
    state: str


class ImportRequest(BaseModel):
    time_min: Optional[datetime] = None
    time_max: Optional[datetime] = None


def get_token_provider(
    db: Session = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
) -> TokenProvider:
    return TokenProvider(db, transport=transport)


def get_sync_service(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
) -> CalendarSyncService:
    return CalendarSyncService(db, current_user, transport=transport)


# ============================================================================
# CONNECTION
# ============================================================================


@router.get("/status")
async def get_google_calendar_status(
    current_user: User = Depends(get_current_user),
    tokens: TokenProvider = Depends(get_token_provider),
):
    """Get Google Calendar connection status"""
    account = tokens.find_google_account(current_user.id)
    if not account or not account.access_token:
        return {"connected": False, "scope": None, "expires_at": None, "is_primary": None}

    return {
        "connected": True,
        "scope": account.scope,
        "expires_at": ensure_utc(account.expires_at),
        "is_primary": account.is_primary,
    }


@router.get("/connect")
async def initiate_google_calendar_oauth(current_user: User = Depends(get_current_user)):
    """Initiate Google Calendar OAuth flow"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": generate_oauth_state({"user_id": current_user.id}),
    }

    logger.info(f"Google Calendar OAuth initiated for user {current_user.id}")
    return {"authorization_url": f"{GOOGLE_AUTH_URL}?{urlencode(params)}"}


@router.post("/callback")
async def handle_google_calendar_callback(
    data: OAuthCallbackRequest,
    current_user: User = Depends(get_current_user),
    tokens: TokenProvider = Depends(get_token_provider),
):
    """Exchange the authorization code and store the user's Google tokens"""
    state = verify_oauth_state(data.state)
    if not state or state.get("user_id") != current_user.id:
        logger.warning(f"⚠️ Rejected OAuth callback with invalid state for user {current_user.id}")
        raise HTTPException(status_code=400, detail="Invalid or expired OAuth state")

    token_response = await tokens.exchange_authorization_code(data.code)
    account = tokens.store_google_tokens(current_user, token_response)

    return {
        "success": True,
        "message": "Google Calendar connected successfully",
        "expires_at": ensure_utc(account.expires_at),
    }


# ============================================================================
# CALENDARS & SYNC
# ============================================================================


@router.get("/calendars")
async def list_google_calendars(
    current_user: User = Depends(get_current_user),
    tokens: TokenProvider = Depends(get_token_provider),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_google_transport),
):
    """Calendars visible to the connected Google account"""
    client = GoogleCalendarClient(tokens, current_user, transport=transport)
    return {"calendars": await client.list_calendars()}


@router.post("/sync", response_model=SyncResult)
async def sync_google_calendar(service: CalendarSyncService = Depends(get_sync_service)):
    """Import from Google, then export local-only events"""
    return await service.sync_all_events()


@router.post("/sync/import", response_model=SyncResult)
async def import_google_events(
    data: Optional[ImportRequest] = None,
    service: CalendarSyncService = Depends(get_sync_service),
):
    """Import phase only; the window defaults to now onwards"""
    data = data or ImportRequest()
    return await service.import_google_events(data.time_min, data.time_max)


@router.post("/sync/background")
async def queue_google_calendar_sync(current_user: User = Depends(get_current_user)):
    """Queue a sync on the ARQ worker; at most one job per user at a time"""
    job_id = sync_job_id(current_user.id)
    try:
        pool = await asyncio.wait_for(create_pool(get_redis_settings()), timeout=20.0)
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.error(f"❌ Failed to connect to job queue: {str(e)}")
        raise HTTPException(status_code=503, detail="Background sync is temporarily unavailable") from e

    try:
        job = await pool.enqueue_job(SYNC_JOB_NAME, current_user.id, _job_id=job_id)
    finally:
        await pool.close()

    if job is None:
        logger.info(f"⏭️ Sync job {job_id} already queued or recently finished")
        return {"queued": False, "jobId": job_id}

    logger.info(f"📋 Calendar sync job queued: {job_id}")
    return {"queued": True, "jobId": job.job_id}


@router.post("/events/{event_id}/export", response_model=EventResponse)
async def export_event_to_google(
    event_id: int,
    service: CalendarSyncService = Depends(get_sync_service),
):
    """Create or update the Google copy of a single event"""
    return await service.export_event_to_google(event_id)
