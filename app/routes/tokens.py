"""
Google token functions
Hand the browser a usable Google access token for the signed-in user
"""

import logging

from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..models import User
from ..services.token_provider import TokenProvider
from .google_calendar import get_token_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["Token Functions"])


@router.get("/get-google-token")
async def get_google_token(
    current_user: User = Depends(get_current_user),
    tokens: TokenProvider = Depends(get_token_provider),
):
    """Stored Google tokens as-is; 404 when no Google account is connected"""
    return tokens.get_token_payload(current_user)


@router.get("/refresh-google-token")
async def refresh_google_token(
    current_user: User = Depends(get_current_user),
    tokens: TokenProvider = Depends(get_token_provider),
):
    """Cached access token when more than the refresh margin from expiry, otherwise a refreshed one"""
    payload = await tokens.get_fresh_token_payload(current_user)
    logger.info(f"🔑 Google token served for user {current_user.id}")
    return payload
