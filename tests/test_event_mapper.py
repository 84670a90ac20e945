"""
Unit tests for the local <-> Google event mapping rules.
"""

from datetime import datetime, timezone

from app.models import Event
from app.services.event_mapper import (
    google_event_to_local,
    google_status_to_local,
    local_event_to_google,
)


def _local(**fields) -> Event:
    values = {
        "title": "Standup",
        "start_time": datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc),
        "end_time": datetime(2024, 1, 10, 9, 30, tzinfo=timezone.utc),
        "timezone": None,
        "is_all_day": False,
        "status": "confirmed",
        "recurrence": None,
    }
    values.update(fields)
    return Event(**values)


class TestLocalToGoogle:
    def test_timed_event_uses_utc_datetime_and_default_timezone(self):
        body = local_event_to_google(_local())

        assert body["summary"] == "Standup"
        assert body["start"] == {"dateTime": "2024-01-10T09:00:00Z", "timeZone": "UTC"}
        assert body["end"] == {"dateTime": "2024-01-10T09:30:00Z", "timeZone": "UTC"}

    def test_all_day_event_emits_date_only(self):
        """All-day events carry calendar dates with no time component."""
        body = local_event_to_google(
            _local(
                is_all_day=True,
                start_time=datetime(2024, 3, 1, tzinfo=timezone.utc),
                end_time=datetime(2024, 3, 3, tzinfo=timezone.utc),
            )
        )

        assert body["start"] == {"date": "2024-03-01"}
        assert body["end"] == {"date": "2024-03-03"}
        assert "dateTime" not in body["start"]

    def test_all_day_end_on_same_date_is_made_exclusive(self):
        body = local_event_to_google(
            _local(
                is_all_day=True,
                start_time=datetime(2024, 3, 1, tzinfo=timezone.utc),
                end_time=datetime(2024, 3, 1, 23, 59, tzinfo=timezone.utc),
            )
        )

        assert body["end"] == {"date": "2024-03-02"}

    def test_all_day_dates_follow_event_timezone(self):
        # Midnight in Tokyo is still the previous day in UTC
        body = local_event_to_google(
            _local(
                is_all_day=True,
                timezone="Asia/Tokyo",
                start_time=datetime(2024, 2, 29, 15, 0, tzinfo=timezone.utc),
                end_time=datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc),
            )
        )

        assert body["start"] == {"date": "2024-03-01"}
        assert body["end"] == {"date": "2024-03-02"}

    def test_all_day_with_unknown_timezone_falls_back_to_utc(self):
        body = local_event_to_google(
            _local(
                is_all_day=True,
                timezone="Not/AZone",
                start_time=datetime(2024, 3, 1, tzinfo=timezone.utc),
                end_time=datetime(2024, 3, 2, tzinfo=timezone.utc),
            )
        )

        assert body["start"] == {"date": "2024-03-01"}

    def test_cancelled_and_tentative_are_forwarded(self):
        assert local_event_to_google(_local(status="cancelled"))["status"] == "cancelled"
        assert local_event_to_google(_local(status="tentative"))["status"] == "tentative"

    def test_confirmed_status_is_omitted(self):
        assert "status" not in local_event_to_google(_local(status="confirmed"))

    def test_recurrence_wrapped_in_list(self):
        body = local_event_to_google(_local(recurrence="RRULE:FREQ=WEEKLY;BYDAY=WE"))
        assert body["recurrence"] == ["RRULE:FREQ=WEEKLY;BYDAY=WE"]

    def test_missing_optional_fields_are_not_sent(self):
        body = local_event_to_google(_local())
        assert "description" not in body
        assert "location" not in body
        assert "recurrence" not in body


class TestGoogleToLocal:
    def test_timed_event(self):
        values = google_event_to_local(
            {
                "id": "abc",
                "summary": "Review",
                "location": "Room 4",
                "start": {"dateTime": "2024-01-10T10:00:00-05:00", "timeZone": "America/New_York"},
                "end": {"dateTime": "2024-01-10T11:00:00-05:00", "timeZone": "America/New_York"},
            },
            user_id=7,
        )

        assert values["user_id"] == 7
        assert values["google_event_id"] == "abc"
        assert values["is_all_day"] is False
        assert values["timezone"] == "America/New_York"
        assert values["start_time"] == datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)
        assert values["status"] == "confirmed"

    def test_date_only_event_is_all_day(self):
        values = google_event_to_local(
            {"id": "holiday", "start": {"date": "2024-12-25"}, "end": {"date": "2024-12-26"}},
            user_id=1,
        )

        assert values["is_all_day"] is True
        assert values["start_time"] == datetime(2024, 12, 25, tzinfo=timezone.utc)
        assert values["title"] == "Untitled Event"
        assert values["timezone"] == "UTC"

    def test_only_first_recurrence_line_is_kept(self):
        values = google_event_to_local(
            {
                "id": "r",
                "start": {"date": "2024-01-01"},
                "end": {"date": "2024-01-02"},
                "recurrence": ["RRULE:FREQ=DAILY", "EXDATE;VALUE=DATE:20240103"],
            },
            user_id=1,
        )

        assert values["recurrence"] == "RRULE:FREQ=DAILY"

    def test_status_mapping(self):
        assert google_status_to_local("cancelled") == "cancelled"
        assert google_status_to_local("tentative") == "tentative"
        assert google_status_to_local("confirmed") == "confirmed"
        assert google_status_to_local(None) == "confirmed"


def test_all_day_flag_survives_round_trip():
    body = local_event_to_google(
        _local(
            is_all_day=True,
            start_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
            end_time=datetime(2024, 5, 2, tzinfo=timezone.utc),
        )
    )
    body["id"] = "round-trip"

    assert google_event_to_local(body, user_id=1)["is_all_day"] is True
