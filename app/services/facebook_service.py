"""
Facebook sharing
Builds Send Dialog (Messenger) and Share Dialog URLs; the dialog itself runs in the browser
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from ..config import FACEBOOK_APP_ID, FRONTEND_URL

logger = logging.getLogger(__name__)

FACEBOOK_DIALOG_BASE = "https://www.facebook.com/dialog"


class FacebookNotConfiguredError(RuntimeError):
    pass


def require_facebook_app_id(app_id: Optional[str] = FACEBOOK_APP_ID) -> str:
    if not app_id:
        logger.warning("⚠️ Facebook sharing requested but FACEBOOK_APP_ID is not set")
        raise FacebookNotConfiguredError("Facebook App ID not configured")
    return app_id


def build_messenger_send_url(
    link: str,
    app_id: Optional[str] = FACEBOOK_APP_ID,
    redirect_uri: Optional[str] = None,
) -> str:
    """Send Dialog: the user picks Messenger recipients for the link"""
    params = {
        "app_id": require_facebook_app_id(app_id),
        "link": link,
        "redirect_uri": redirect_uri or f"{FRONTEND_URL.rstrip('/')}/dashboard",
    }
    return f"{FACEBOOK_DIALOG_BASE}/send?{urlencode(params)}"


def build_share_url(
    href: str,
    quote: Optional[str] = None,
    app_id: Optional[str] = FACEBOOK_APP_ID,
    redirect_uri: Optional[str] = None,
) -> str:
    """Share Dialog: post the link to the user's feed"""
    params = {
        "app_id": require_facebook_app_id(app_id),
        "display": "popup",
        "href": href,
        "redirect_uri": redirect_uri or f"{FRONTEND_URL.rstrip('/')}/dashboard",
    }
    if quote:
        params["quote"] = quote
    return f"{FACEBOOK_DIALOG_BASE}/share?{urlencode(params)}"
