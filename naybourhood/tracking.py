"""
Behavioural tracking events.

Pixel, email and WhatsApp providers post events for a lead; the dashboard
reads them back aggregated into the behavioural counters shown on a buyer.
Events live in memory, keyed by the lead's email, phone or id.
"""

import logging
import threading
import uuid
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import RequestValidationError

logger = logging.getLogger(__name__)

MAX_EVENTS_PER_LEAD = 500
MAX_LEADS = 10000


def storage_key(identifier: str) -> str:
    return str(identifier).lower().strip()


def _identifier(event: dict) -> Optional[str]:
    return event.get("lead_email") or event.get("lead_phone") or event.get("lead_id")


def behavioural_data(events: list[dict]) -> dict:
    def count(event_type):
        return sum(1 for e in events if e.get("event_type") == event_type)

    whatsapp_clicks = sum(
        1 for e in events
        if e.get("event_type") == "button_click"
        or (e.get("event_type") == "click" and (e.get("properties") or {}).get("target") == "whatsapp")
    )
    time_on_site = sum(
        (e.get("properties") or {}).get("duration") or 0
        for e in events
        if e.get("event_type") == "time_on_site"
    )
    return {
        "brochureViews": count("brochure_view"),
        "emailOpens": count("email_open"),
        "whatsappClicks": whatsapp_clicks,
        "timeOnSite": time_on_site,
        "totalEvents": len(events),
        "lastActivity": events[-1]["received_at"] if events else None,
    }


class EventTracker:
    """Thread-safe in-memory event log. The oldest leads and events drop off past the caps."""

    def __init__(
        self,
        max_leads: int = MAX_LEADS,
        max_events_per_lead: int = MAX_EVENTS_PER_LEAD,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.max_leads = max_leads
        self.max_events_per_lead = max_events_per_lead
        self._clock = clock
        self._events: OrderedDict[str, deque] = OrderedDict()
        self._lock = threading.Lock()

    def store(self, identifier: str, event: dict) -> None:
        key = storage_key(identifier)
        stored = {**event, "received_at": self._clock().isoformat()}
        with self._lock:
            events = self._events.get(key)
            if events is None:
                events = self._events[key] = deque(maxlen=self.max_events_per_lead)
            self._events.move_to_end(key)
            events.append(stored)
            while len(self._events) > self.max_leads:
                self._events.popitem(last=False)
        logger.debug(f"Stored {event.get('event_type')} event for {key}")

    def events_for(self, identifier: str) -> list[dict]:
        with self._lock:
            return list(self._events.get(storage_key(identifier), ()))

    def lookup(self, email=None, phone=None, lead_id=None) -> dict:
        identifier = email or phone or lead_id
        if not identifier:
            raise RequestValidationError("Provide email, phone, or lead_id parameter")
        events = self.events_for(identifier)
        return {"events": events, "behaviouralData": behavioural_data(events)}

    def receive(self, kind: str, body: dict) -> dict:
        """Record an event posted to tracking-webhook/<kind>."""
        if kind == "bulk":
            return self._receive_bulk(body.get("events"))

        event_type = body.get("event_type")
        if kind == "pixel":
            if not event_type:
                raise RequestValidationError("event_type is required")
            identifier = body.get("lead_email") or body.get("lead_id")
            # Anonymous page views are acknowledged but not kept
            if identifier:
                self.store(identifier, body)
            return self._received("Pixel event received")

        if kind == "email":
            if not event_type or not body.get("lead_email"):
                raise RequestValidationError("event_type and lead_email are required")
            self.store(body["lead_email"], body)
            return self._received("Email event received")

        if kind == "whatsapp":
            if not event_type or not body.get("lead_phone"):
                raise RequestValidationError("event_type and lead_phone are required")
            self.store(body["lead_phone"], body)
            return self._received("WhatsApp event received")

        identifier = _identifier(body)
        if not identifier or not event_type:
            raise RequestValidationError("Invalid event format")
        self.store(identifier, body)
        return {"success": True, "message": "Event received"}

    def _receive_bulk(self, events) -> dict:
        if not isinstance(events, list):
            raise RequestValidationError("events must be a list")

        processed = 0
        for event in events:
            identifier = _identifier(event) if isinstance(event, dict) else None
            if identifier:
                self.store(identifier, event)
                processed += 1

        logger.info(f"Bulk tracking: processed {processed} of {len(events)} events")
        return {
            "success": True,
            "message": f"Processed {processed} events",
            "processed": processed,
            "total": len(events),
        }

    @staticmethod
    def _received(message: str) -> dict:
        return {"success": True, "message": message, "event_id": str(uuid.uuid4())}
