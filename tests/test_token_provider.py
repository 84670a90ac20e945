"""
Token provider: cached tokens, refresh on expiry, OAuth code exchange and
the token-function payloads.
"""

import gc
from datetime import timedelta

import pytest

from app.errors import (
    AuthError,
    NotConnectedError,
    OAuthExchangeError,
    RefreshFailedError,
)
from app.security_utils import decrypt_token
from app.services import token_provider as token_provider_module
from app.utils.datetime_utils import ensure_utc, utcnow
from tests.conftest import connect_google


class TestGetAccessToken:
    async def test_valid_token_is_returned_without_refresh(self, db, user, token_provider, fake_google):
        connect_google(db, user, access_token="still-good")

        assert await token_provider.get_access_token(user) == "still-good"
        assert fake_google.token_calls() == []

    async def test_expired_token_is_refreshed_and_persisted(self, db, user, token_provider, fake_google):
        account = connect_google(db, user, expires_at=utcnow() - timedelta(minutes=1))

        token = await token_provider.get_access_token(user)

        assert token == "refreshed-1"
        db.refresh(account)
        assert decrypt_token(account.access_token) == "refreshed-1"
        assert ensure_utc(account.expires_at) > utcnow() + timedelta(minutes=50)
        assert fake_google.token_calls()[0]["grant_type"] == "refresh_token"
        assert fake_google.token_calls()[0]["refresh_token"] == "stored-refresh"

    async def test_token_inside_safety_margin_is_refreshed(self, db, user, token_provider, fake_google):
        connect_google(db, user, expires_at=utcnow() + timedelta(minutes=2))

        assert await token_provider.get_access_token(user) == "refreshed-1"

    async def test_refresh_lock_is_dropped_after_use(self, db, user, token_provider):
        account = connect_google(db, user, expires_at=utcnow() - timedelta(minutes=1))

        await token_provider.get_access_token(user)
        gc.collect()

        assert account.id not in token_provider_module._refresh_locks

    async def test_no_user_is_auth_error(self, token_provider):
        with pytest.raises(AuthError):
            await token_provider.get_access_token(None)

    async def test_no_account_is_not_connected(self, user, token_provider):
        with pytest.raises(NotConnectedError):
            await token_provider.get_access_token(user)

    async def test_expired_without_refresh_token_fails(self, db, user, token_provider):
        connect_google(db, user, refresh_token=None, expires_at=utcnow() - timedelta(minutes=1))

        with pytest.raises(RefreshFailedError):
            await token_provider.get_access_token(user)

    async def test_rejected_refresh_fails(self, db, user, token_provider, fake_google):
        connect_google(db, user, expires_at=utcnow() - timedelta(minutes=1))
        fake_google.refresh_error = (400, "Token has been expired or revoked.")

        with pytest.raises(RefreshFailedError) as exc_info:
            await token_provider.get_access_token(user)
        assert "Token has been expired or revoked." in exc_info.value.message

    async def test_most_recently_updated_account_wins(self, db, user, token_provider):
        older = connect_google(db, user, access_token="older")
        older.updated_at = utcnow() - timedelta(days=1)
        db.commit()
        connect_google(db, user, access_token="newer")

        assert await token_provider.get_access_token(user) == "newer"


class TestTokenPayloads:
    def test_get_token_payload(self, db, user, token_provider):
        connect_google(db, user)

        payload = token_provider.get_token_payload(user)

        assert payload["access_token"] == "stored-access"
        assert payload["refresh_token"] == "stored-refresh"
        assert payload["expires_at"] is not None

    async def test_fresh_payload_returns_cached_token(self, db, user, token_provider, fake_google):
        connect_google(db, user, expires_at=utcnow() + timedelta(minutes=30))

        payload = await token_provider.get_fresh_token_payload(user)

        assert payload["access_token"] == "stored-access"
        assert fake_google.token_calls() == []

    async def test_fresh_payload_refreshes_near_expiry(self, db, user, token_provider):
        connect_google(db, user, expires_at=utcnow() + timedelta(minutes=4))

        payload = await token_provider.get_fresh_token_payload(user)

        assert payload["access_token"] == "refreshed-1"

    async def test_fresh_payload_without_refresh_token(self, db, user, token_provider):
        connect_google(db, user, refresh_token=None)

        with pytest.raises(NotConnectedError):
            await token_provider.get_fresh_token_payload(user)


class TestOAuthHandshake:
    async def test_exchange_and_store(self, db, user, token_provider, fake_google):
        tokens = await token_provider.exchange_authorization_code("auth-code")
        account = token_provider.store_google_tokens(user, tokens)

        assert decrypt_token(account.access_token) == "exchanged-access"
        assert decrypt_token(account.refresh_token) == "exchanged-refresh"
        assert account.is_primary is True
        assert "calendar.events" in account.scope
        assert fake_google.token_calls()[0]["code"] == "auth-code"

    async def test_store_keeps_refresh_token_when_not_returned(self, db, user, token_provider):
        connect_google(db, user, refresh_token="original-refresh")

        account = token_provider.store_google_tokens(user, {"access_token": "second", "expires_in": 3600})

        assert decrypt_token(account.refresh_token) == "original-refresh"
        assert decrypt_token(account.access_token) == "second"

    async def test_rejected_code(self, token_provider, fake_google):
        fake_google.exchange_error = (400, "Malformed auth code.")

        with pytest.raises(OAuthExchangeError) as exc_info:
            await token_provider.exchange_authorization_code("bad-code")
        assert exc_info.value.status_code == 400
