"""
Google OAuth Token Provider
Resolves a valid Google access token for a user, refreshing when it is about to expire
"""
import asyncio
import logging
import weakref
from datetime import timedelta
from typing import Any, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_HTTP_TIMEOUT,
    GOOGLE_REDIRECT_URI,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from ..errors import (
    AuthError,
    NotConnectedError,
    OAuthExchangeError,
    PersistenceError,
    RefreshFailedError,
)
from ..models import User
from ..models_connected_account import ConnectedAccount
from ..security_utils import decrypt_token, encrypt_token
from ..utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_PROVIDER = "google"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
DEFAULT_EXPIRES_IN = 3600

# One refresh at a time per connected account (per process), dropped when unused
_refresh_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def _refresh_lock(account_id: int) -> asyncio.Lock:
    lock = _refresh_locks.get(account_id)
    if lock is None:
        lock = _refresh_locks[account_id] = asyncio.Lock()
    return lock


def _error_description(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error_description") or body.get("error")
    return None


class TokenProvider:
    """Token lifecycle for the (user, google) connected account"""

    def __init__(
        self,
        db: Session,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        refresh_margin: timedelta = timedelta(seconds=TOKEN_REFRESH_MARGIN_SECONDS),
    ):
        self.db = db
        self.transport = transport
        self.refresh_margin = refresh_margin

    # ------------------------------------------------------------------
    # Account lookup
    # ------------------------------------------------------------------

    def find_google_account(self, user_id: int) -> Optional[ConnectedAccount]:
        """Most recently updated google row; duplicates are tolerated"""
        return (
            self.db.query(ConnectedAccount)
            .filter(
                ConnectedAccount.user_id == user_id,
                ConnectedAccount.provider == GOOGLE_PROVIDER,
            )
            .order_by(ConnectedAccount.updated_at.desc(), ConnectedAccount.id.desc())
            .first()
        )

    def get_google_account(self, user: Optional[User]) -> ConnectedAccount:
        if user is None:
            raise AuthError()

        account = self.find_google_account(user.id)
        if not account or not account.access_token:
            raise NotConnectedError()
        return account

    def needs_refresh(self, account: ConnectedAccount) -> bool:
        """Expired or within the safety margin; unknown expiry counts as valid"""
        expires_at = ensure_utc(account.expires_at)
        if expires_at is None:
            return False
        return expires_at <= utcnow() + self.refresh_margin

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    async def get_access_token(self, user: Optional[User]) -> str:
        """
        Return a usable Google access token for the user.
        Raises AuthError, NotConnectedError or RefreshFailedError.
        """
        account = self.get_google_account(user)

        if self.needs_refresh(account):
            logger.info(f"🔄 Google token for user {account.user_id} expired, refreshing...")
            return await self.refresh_access_token(account)

        return self._decrypt(account.access_token)

    async def refresh_access_token(self, account: ConnectedAccount) -> str:
        """Exchange the refresh token for a new access token and persist it"""
        async with _refresh_lock(account.id):
            # Another request may have refreshed while we waited
            self.db.refresh(account)
            if not self.needs_refresh(account):
                return self._decrypt(account.access_token)

            if not account.refresh_token:
                raise RefreshFailedError(
                    "Access token expired and no refresh token is available. "
                    "Please reconnect your Google Calendar."
                )

            refresh_token = self._decrypt(account.refresh_token)
            try:
                async with httpx.AsyncClient(
                    transport=self.transport, timeout=GOOGLE_HTTP_TIMEOUT
                ) as client:
                    response = await client.post(
                        GOOGLE_TOKEN_URL,
                        data={
                            "client_id": GOOGLE_CLIENT_ID or "",
                            "client_secret": GOOGLE_CLIENT_SECRET or "",
                            "refresh_token": refresh_token,
                            "grant_type": "refresh_token",
                        },
                    )
            except httpx.HTTPError as e:
                logger.error(f"❌ Token refresh request failed: {str(e)}")
                raise RefreshFailedError(f"Token refresh failed: {str(e)}") from e

            if response.status_code != 200:
                reason = _error_description(response) or f"HTTP {response.status_code}"
                logger.error(f"❌ Token refresh failed for user {account.user_id}: {reason}")
                raise RefreshFailedError(
                    f"Access token expired and refresh failed: {reason}. Please log in again."
                )

            tokens = response.json()
            new_access_token = tokens.get("access_token")
            if not new_access_token:
                logger.error("❌ No access token in refresh response")
                raise RefreshFailedError("Token refresh returned no access token")

            expires_in = tokens.get("expires_in") or DEFAULT_EXPIRES_IN
            account.access_token = encrypt_token(new_access_token)
            account.expires_at = utcnow() + timedelta(seconds=int(expires_in))
            if tokens.get("refresh_token"):
                account.refresh_token = encrypt_token(tokens["refresh_token"])
            self._commit("Failed to update token in database")

            logger.info(f"✅ Google token refreshed for user {account.user_id}")
            return new_access_token

    # ------------------------------------------------------------------
    # Token function payloads
    # ------------------------------------------------------------------

    def get_token_payload(self, user: Optional[User]) -> dict[str, Any]:
        """Stored token as-is (get-google-token)"""
        account = self.get_google_account(user)
        return {
            "access_token": self._decrypt(account.access_token),
            "refresh_token": self._decrypt(account.refresh_token) if account.refresh_token else None,
            "expires_at": ensure_utc(account.expires_at),
        }

    async def get_fresh_token_payload(self, user: Optional[User]) -> dict[str, Any]:
        """Cached token when comfortably valid, otherwise refreshed (refresh-google-token)"""
        if user is None:
            raise AuthError()

        account = self.find_google_account(user.id)
        if not account or not account.refresh_token:
            raise NotConnectedError("No refresh token found")

        if account.expires_at is not None and not self.needs_refresh(account):
            logger.debug("Token still valid, returning existing token")
            return {
                "access_token": self._decrypt(account.access_token),
                "expires_at": ensure_utc(account.expires_at),
            }

        access_token = await self.refresh_access_token(account)
        return {"access_token": access_token, "expires_at": ensure_utc(account.expires_at)}

    # ------------------------------------------------------------------
    # OAuth handshake
    # ------------------------------------------------------------------

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str = GOOGLE_REDIRECT_URI
    ) -> dict[str, Any]:
        """Exchange an authorization code for tokens (authorization_code grant)"""
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=GOOGLE_HTTP_TIMEOUT
            ) as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": GOOGLE_CLIENT_ID or "",
                        "client_secret": GOOGLE_CLIENT_SECRET or "",
                        "redirect_uri": redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Token exchange request failed: {str(e)}")
            raise OAuthExchangeError("Failed to exchange authorization code") from e

        if response.status_code != 200:
            reason = _error_description(response)
            logger.error(f"❌ Token exchange failed: HTTP {response.status_code} {reason or ''}")
            raise OAuthExchangeError(reason or "Failed to exchange authorization code")

        tokens = response.json()
        if not tokens.get("access_token"):
            raise OAuthExchangeError("Invalid token response")
        return tokens

    def store_google_tokens(self, user: User, tokens: dict[str, Any]) -> ConnectedAccount:
        """Upsert the user's google account row after a successful handshake"""
        expires_in = tokens.get("expires_in") or DEFAULT_EXPIRES_IN
        scope = tokens.get("scope") or " ".join(GOOGLE_CALENDAR_SCOPES)

        account = self.find_google_account(user.id)
        if account is None:
            account = ConnectedAccount(
                user_id=user.id,
                provider=GOOGLE_PROVIDER,
                provider_account_id=user.auth_uid,
            )
            self.db.add(account)

        account.access_token = encrypt_token(tokens["access_token"])
        # Google omits the refresh token on repeat consents; keep the old one then
        if tokens.get("refresh_token"):
            account.refresh_token = encrypt_token(tokens["refresh_token"])
        account.expires_at = utcnow() + timedelta(seconds=int(expires_in))
        account.scope = scope
        account.token_type = tokens.get("token_type")
        account.is_primary = True
        account.updated_at = utcnow()
        self._commit("Failed to save Google tokens")
        self.db.refresh(account)

        logger.info(f"✅ Google Calendar connected for user {user.id}")
        return account

    # ------------------------------------------------------------------

    def _decrypt(self, value: str) -> str:
        try:
            return decrypt_token(value)
        except ValueError as e:
            raise RefreshFailedError(
                "Stored Google token is unreadable. Please reconnect your Google Calendar."
            ) from e

    def _commit(self, message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ {message}: {str(e)}")
            raise PersistenceError(f"{message}: {str(e)}") from e
