"""Tests for the behavioural event tracker."""
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.errors import RequestValidationError
from naybourhood.tracking import EventTracker, behavioural_data


class FakeClock:

    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def tracker():
    return EventTracker(clock=FakeClock())


class TestReceive:

    def test_pixel_event(self, tracker):
        result = tracker.receive("pixel", {"event_type": "brochure_view", "lead_email": " Sarah@Example.com "})
        assert result["success"] is True
        assert result["event_id"]
        assert len(tracker.events_for("sarah@example.com")) == 1

    def test_anonymous_pixel_not_stored(self, tracker):
        assert tracker.receive("pixel", {"event_type": "page_view"})["message"] == "Pixel event received"
        assert tracker.lookup(lead_id="anything")["events"] == []

    @pytest.mark.parametrize("kind,body", [
        ("pixel", {"lead_email": "sarah@example.com"}),
        ("email", {"event_type": "email_open"}),
        ("whatsapp", {"event_type": "message_read"}),
        ("custom", {"lead_email": "sarah@example.com"}),
    ])
    def test_missing_fields(self, tracker, kind, body):
        with pytest.raises(RequestValidationError):
            tracker.receive(kind, body)

    def test_whatsapp_keyed_by_phone(self, tracker):
        tracker.receive("whatsapp", {"event_type": "button_click", "lead_phone": "+447700900123"})
        data = tracker.lookup(phone="+447700900123")
        assert data["behaviouralData"]["whatsappClicks"] == 1

    def test_bulk_skips_anonymous(self, tracker):
        result = tracker.receive("bulk", {"events": [
            {"event_type": "email_open", "lead_email": "sarah@example.com"},
            {"event_type": "page_view"},
            "not an event",
        ]})
        assert result["processed"] == 1
        assert result["total"] == 3

    def test_bulk_needs_list(self, tracker):
        with pytest.raises(RequestValidationError):
            tracker.receive("bulk", {"events": {"event_type": "email_open"}})


class TestLookup:

    def test_needs_identifier(self, tracker):
        with pytest.raises(RequestValidationError):
            tracker.lookup()

    def test_aggregates(self, tracker):
        for event in [
            {"event_type": "brochure_view", "lead_id": "lead-1"},
            {"event_type": "time_on_site", "lead_id": "lead-1", "properties": {"duration": 4}},
            {"event_type": "time_on_site", "lead_id": "lead-1", "properties": {"duration": 6}},
            {"event_type": "click", "lead_id": "lead-1", "properties": {"target": "whatsapp"}},
            {"event_type": "click", "lead_id": "lead-1", "properties": {"target": "brochure"}},
        ]:
            tracker.receive("event", event)

        data = tracker.lookup(lead_id="LEAD-1")["behaviouralData"]
        assert data["brochureViews"] == 1
        assert data["timeOnSite"] == 10
        assert data["whatsappClicks"] == 1
        assert data["totalEvents"] == 5
        assert data["lastActivity"] == "2024-03-01T09:05:00+00:00"

    def test_no_events(self):
        assert behavioural_data([])["lastActivity"] is None


class TestLimits:

    def test_oldest_lead_dropped(self):
        tracker = EventTracker(max_leads=2)
        for email in ["a@example.com", "b@example.com", "c@example.com"]:
            tracker.receive("email", {"event_type": "email_open", "lead_email": email})
        assert tracker.events_for("a@example.com") == []
        assert len(tracker.events_for("c@example.com")) == 1

    def test_events_per_lead_capped(self):
        tracker = EventTracker(max_events_per_lead=3)
        for n in range(5):
            tracker.receive("email", {"event_type": "email_open", "lead_email": "a@example.com", "n": n})
        assert [e["n"] for e in tracker.events_for("a@example.com")] == [2, 3, 4]
