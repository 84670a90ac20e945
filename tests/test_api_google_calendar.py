"""
Google Calendar connection, sync endpoints and token functions.
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

import app.routes.google_calendar as google_calendar_routes
from app.security_utils import decrypt_token, generate_oauth_state
from app.services.token_provider import TokenProvider
from app.utils.datetime_utils import utcnow
from tests.conftest import connect_google, google_event, make_event


class TestConnection:
    def test_status_when_not_connected(self, client, auth_headers):
        response = client.get("/google-calendar/status", headers=auth_headers)
        assert response.json()["connected"] is False

    def test_connect_then_callback(self, client, db, user, auth_headers, fake_google):
        connect = client.get("/google-calendar/connect", headers=auth_headers).json()
        params = {k: v[0] for k, v in parse_qs(urlparse(connect["authorization_url"]).query).items()}
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert "calendar.events" in params["scope"]

        response = client.post(
            "/google-calendar/callback",
            json={"code": "auth-code", "state": params["state"]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        account = TokenProvider(db).find_google_account(user.id)
        assert decrypt_token(account.access_token) == "exchanged-access"
        status = client.get("/google-calendar/status", headers=auth_headers).json()
        assert status["connected"] is True
        assert status["is_primary"] is True

    def test_callback_rejects_state_for_another_user(self, client, other_user, auth_headers, fake_google):
        state = generate_oauth_state({"user_id": other_user.id})

        response = client.post(
            "/google-calendar/callback", json={"code": "auth-code", "state": state}, headers=auth_headers
        )

        assert response.status_code == 400
        assert fake_google.token_calls() == []

    def test_callback_rejects_tampered_state(self, client, auth_headers):
        response = client.post(
            "/google-calendar/callback", json={"code": "auth-code", "state": "garbage"}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_failed_code_exchange_is_400(self, client, user, auth_headers, fake_google):
        fake_google.exchange_error = (400, "Bad Request")
        state = generate_oauth_state({"user_id": user.id})

        response = client.post(
            "/google-calendar/callback", json={"code": "bad", "state": state}, headers=auth_headers
        )

        assert response.status_code == 400


class TestCalendarsAndSync:
    def test_calendars_require_connection(self, client, auth_headers):
        response = client.get("/google-calendar/calendars", headers=auth_headers)
        assert response.status_code == 404

    def test_calendars(self, client, db, user, auth_headers):
        connect_google(db, user)
        response = client.get("/google-calendar/calendars", headers=auth_headers)
        assert response.json()["calendars"][0]["primary"] is True

    def test_sync(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user)
        fake_google.events = {"g1": google_event("g1")}
        make_event(db, user, title="Local only")

        result = client.post("/google-calendar/sync", headers=auth_headers).json()

        assert result["success"] is True
        assert result["imported"] == 1
        assert result["exported"] == 1

    def test_sync_without_connection_reports_failure(self, client, auth_headers):
        result = client.post("/google-calendar/sync", headers=auth_headers).json()

        assert result["success"] is False
        assert result["errors"][0].startswith("Sync aborted:")

    def test_import_with_window(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user)

        response = client.post(
            "/google-calendar/sync/import",
            json={"time_min": "2030-01-01T00:00:00Z", "time_max": "2030-02-01T00:00:00Z"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        params = fake_google.calls("GET")[0].url.params
        assert params["timeMin"] == "2030-01-01T00:00:00Z"
        assert params["timeMax"] == "2030-02-01T00:00:00Z"

    def test_export_single_event(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user)
        event = make_event(db, user)

        response = client.post(f"/google-calendar/events/{event.id}/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["google_event_id"] == "gcal-1"

    def test_export_remote_failure_is_502(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user)
        fake_google.failures["POST"] = (500, "Backend Error")
        event = make_event(db, user)

        response = client.post(f"/google-calendar/events/{event.id}/export", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["detail"] == "Backend Error"


class FakeJob:
    def __init__(self, job_id):
        self.job_id = job_id


class FakePool:
    """Refuses a second job with the same id, like ARQ."""

    def __init__(self):
        self.job_ids: set[str] = set()
        self.enqueued: list[tuple] = []
        self.closed = False

    async def enqueue_job(self, function, *args, _job_id=None):
        if _job_id in self.job_ids:
            return None
        self.job_ids.add(_job_id)
        self.enqueued.append((function, args))
        return FakeJob(_job_id)

    async def close(self):
        self.closed = True


class TestBackgroundSync:
    @pytest.fixture
    def pool(self, monkeypatch) -> FakePool:
        pool = FakePool()

        async def fake_create_pool(settings):
            return pool

        monkeypatch.setattr(google_calendar_routes, "create_pool", fake_create_pool)
        return pool

    def test_one_job_per_user(self, client, user, auth_headers, pool):
        first = client.post("/google-calendar/sync/background", headers=auth_headers).json()
        second = client.post("/google-calendar/sync/background", headers=auth_headers).json()

        assert first == {"queued": True, "jobId": f"calendar-sync:{user.id}"}
        assert second["queued"] is False
        assert pool.enqueued == [("sync_calendar_job", (user.id,))]
        assert pool.closed is True

    def test_queue_unavailable_is_503(self, client, auth_headers, monkeypatch):
        async def failing_create_pool(settings):
            raise OSError("Connection refused")

        monkeypatch.setattr(google_calendar_routes, "create_pool", failing_create_pool)

        response = client.post("/google-calendar/sync/background", headers=auth_headers)
        assert response.status_code == 503

    def test_job_status_of_another_user_is_404(self, client, other_user, auth_headers):
        response = client.get(f"/jobs/status/calendar-sync:{other_user.id}", headers=auth_headers)
        assert response.status_code == 404


class TestTokenFunctions:
    def test_get_google_token(self, client, db, user, auth_headers):
        connect_google(db, user)

        body = client.get("/functions/get-google-token", headers=auth_headers).json()

        assert body["access_token"] == "stored-access"
        assert body["refresh_token"] == "stored-refresh"
        assert body["expires_at"]

    def test_get_google_token_not_connected(self, client, auth_headers):
        assert client.get("/functions/get-google-token", headers=auth_headers).status_code == 404

    def test_requires_session(self, client):
        assert client.get("/functions/get-google-token").status_code == 401
        assert client.get("/functions/refresh-google-token").status_code == 401

    def test_refresh_returns_cached_token(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user, expires_at=utcnow() + timedelta(minutes=30))

        body = client.get("/functions/refresh-google-token", headers=auth_headers).json()

        assert body["access_token"] == "stored-access"
        assert fake_google.token_calls() == []

    def test_refresh_near_expiry(self, client, db, user, auth_headers):
        connect_google(db, user, expires_at=utcnow() + timedelta(minutes=1))

        body = client.get("/functions/refresh-google-token", headers=auth_headers).json()

        assert body["access_token"] == "refreshed-1"

    def test_refresh_rejected_is_401(self, client, db, user, auth_headers, fake_google):
        connect_google(db, user, expires_at=utcnow() - timedelta(minutes=1))
        fake_google.refresh_error = (400, "Token has been expired or revoked.")

        assert client.get("/functions/refresh-google-token", headers=auth_headers).status_code == 401
