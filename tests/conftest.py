"""Shared fixtures: in-memory Firestore and GHL test doubles.

The Firestore double implements the subset of the google-cloud-firestore
client the repository uses (collection/document/where/limit/stream/get/
add/update/delete). The GHL double mirrors GHLClient's public methods and
records every call.
"""

from __future__ import annotations

import copy
import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import pytest

from booking_sync import config
from booking_sync.domain.ghl_sync.client import AppointmentCreateResult, GHLClient
from booking_sync.domain.ghl_sync.service import GHLSyncService


# ── In-Memory Firestore ──────────────────────────────────────────────────────


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[dict]) -> None:
        self.id = doc_id
        self._data = copy.deepcopy(data)

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, db: "FakeFirestore", collection: str, doc_id: str) -> None:
        self._db = db
        self._collection = collection
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self._db.data.get(self._collection, {}).get(self.id))

    def update(self, fields: dict) -> None:
        if self.id in self._db.failing_updates:
            raise RuntimeError(f"write rejected for {self.id}")
        docs = self._db.data.get(self._collection, {})
        if self.id not in docs:
            raise KeyError(f"No document to update: {self._collection}/{self.id}")
        docs[self.id].update(copy.deepcopy(fields))
        self._db.writes.append(("update", self._collection, self.id, copy.deepcopy(fields)))

    def delete(self) -> None:
        self._db.data.get(self._collection, {}).pop(self.id, None)
        self._db.writes.append(("delete", self._collection, self.id, None))


class FakeQuery:
    def __init__(self, db: "FakeFirestore", collection: str, filters: tuple = (), limit: Optional[int] = None):
        self._db = db
        self._collection = collection
        self._filters = filters
        self._limit = limit

    def where(self, filter=None) -> "FakeQuery":
        return FakeQuery(self._db, self._collection, self._filters + (filter,), self._limit)

    def limit(self, count: int) -> "FakeQuery":
        return FakeQuery(self._db, self._collection, self._filters, count)

    def _matches(self, data: dict) -> bool:
        for f in self._filters:
            assert f.op_string == "==", "only equality filters are supported"
            if data.get(f.field_path) != f.value:
                return False
        return True

    def stream(self):
        docs = self._db.data.get(self._collection, {})
        matching = (FakeSnapshot(doc_id, data) for doc_id, data in docs.items() if self._matches(data))
        if self._limit is not None:
            matching = itertools.islice(matching, self._limit)
        return iter(list(matching))

    def get(self) -> list[FakeSnapshot]:
        return list(self.stream())


class FakeCollection(FakeQuery):
    def document(self, doc_id: str) -> FakeDocumentReference:
        return FakeDocumentReference(self._db, self._collection, doc_id)

    def add(self, fields: dict):
        doc_id = f"{self._collection}-new-{next(self._db.ids)}"
        self._db.data.setdefault(self._collection, {})[doc_id] = copy.deepcopy(fields)
        self._db.writes.append(("add", self._collection, doc_id, copy.deepcopy(fields)))
        return None, FakeDocumentReference(self._db, self._collection, doc_id)


class FakeFirestore:
    def __init__(self, data: Optional[dict[str, dict[str, dict]]] = None) -> None:
        self.data: dict[str, dict[str, dict]] = copy.deepcopy(data or {})
        self.writes: list[tuple] = []
        self.failing_updates: set[str] = set()
        self.ids = itertools.count(1)

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def seed(self, collection: str, doc_id: str, **fields: Any) -> None:
        self.data.setdefault(collection, {})[doc_id] = fields

    def doc(self, collection: str, doc_id: str) -> Optional[dict]:
        return self.data.get(collection, {}).get(doc_id)

    def writes_for(self, doc_id: str) -> list[tuple]:
        return [w for w in self.writes if w[2] == doc_id]


# ── In-Memory GHL ────────────────────────────────────────────────────────────


class FakeGHLClient:
    """In-memory GHLClient recording contacts and appointments it creates."""

    def __init__(self) -> None:
        self.contacts: dict[str, dict] = {}
        self.appointments: dict[str, dict] = {}
        self.calendars: Optional[list[dict]] = [{"id": "cal-service", "name": "Service Calendar"}]
        self.calendar_events: dict[str, list[dict]] = {"cal-service": []}
        self.contact_appointments: dict[str, list[dict]] = {}
        self.failing_contact_names: set[str] = set()
        self.failing_appointment_contacts: set[str] = set()
        self.failing_calendars: set[str] = set()
        self.failing_contact_appointments: set[str] = set()
        self.raising_contact_names: set[str] = set()
        self.calls: list[tuple] = []
        self._ids = itertools.count(1)

    def add_contact(self, contact_id: str, **fields: Any) -> None:
        self.contacts[contact_id] = {"id": contact_id, **fields}

    async def find_or_create_contact(self, name, email="", phone="", source="Website Sync", tags=None):
        self.calls.append(("find_or_create_contact", name, email, phone, source))
        if name in self.raising_contact_names:
            raise RuntimeError("connection reset")
        for contact in self.contacts.values():
            if email and contact.get("email") == email:
                return contact["id"]
            if phone and contact.get("phone") == phone:
                return contact["id"]
        if name in self.failing_contact_names:
            return None
        contact_id = f"contact-{next(self._ids)}"
        self.contacts[contact_id] = {"id": contact_id, "name": name, "email": email, "phone": phone}
        return contact_id

    async def create_appointment(
        self, contact_id, calendar_id, title, start, notes="", status="new", to_notify=False
    ) -> AppointmentCreateResult:
        self.calls.append(("create_appointment", contact_id, calendar_id, title, start, notes, status, to_notify))
        if contact_id in self.failing_appointment_contacts:
            return AppointmentCreateResult(error="The slot you have selected is no longer available")
        appointment_id = f"appt-{next(self._ids)}"
        self.appointments[appointment_id] = {
            "id": appointment_id,
            "contactId": contact_id,
            "calendarId": calendar_id,
            "title": title,
            "startTime": start.isoformat(),
            "notes": notes,
            "appointmentStatus": status,
        }
        return AppointmentCreateResult(id=appointment_id)

    async def get_contact(self, contact_id):
        self.calls.append(("get_contact", contact_id))
        return self.contacts.get(contact_id)

    async def list_calendars(self):
        self.calls.append(("list_calendars",))
        return self.calendars

    async def list_calendar_events(self, calendar_id, start, end):
        self.calls.append(("list_calendar_events", calendar_id))
        if calendar_id in self.failing_calendars:
            return None
        return list(self.calendar_events.get(calendar_id, []))

    async def list_contact_appointments(self, contact_id, start, end):
        self.calls.append(("list_contact_appointments", contact_id))
        if contact_id in self.failing_contact_appointments:
            return None
        return list(self.contact_appointments.get(contact_id, []))

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


# ── Helpers ──────────────────────────────────────────────────────────────────


def future_date(days: int = 14) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).strftime("%Y-%m-%d")


def ghl_event(event_id: str, contact_id: str = "contact-1", days: int = 3, **fields: Any) -> dict:
    start = (datetime.now(timezone.utc) + timedelta(days=days)).replace(microsecond=0)
    event = {
        "id": event_id,
        "calendarId": "cal-service",
        "contactId": contact_id,
        "title": "Microblading - Jane Doe",
        "appointmentStatus": "confirmed",
        "startTime": start.isoformat().replace("+00:00", "Z"),
        "endTime": (start + timedelta(hours=3)).isoformat().replace("+00:00", "Z"),
        "notes": "Service: Microblading\nPrice: $450\nDeposit: Paid",
    }
    event.update(fields)
    return event


def json_response(status_code: int, payload: Any) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"content-type": "application/json"})


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def fast_sync(monkeypatch):
    """No rate-limit pauses and a deterministic environment in tests."""
    monkeypatch.setattr(config, "GHL_SYNC_DELAY_SECONDS", 0)
    monkeypatch.setattr(config, "GHL_API_KEY", "")
    monkeypatch.setattr(config, "GHL_LOCATION_ID", "")
    monkeypatch.setattr(config, "GHL_SERVICE_CALENDAR_ID", "cal-service")
    monkeypatch.setattr(config, "CRON_SECRET", None)
    monkeypatch.setattr(config, "GHL_WEBHOOK_SECRET", None)
    monkeypatch.setattr(config, "ADMIN_EMAILS", [])


@pytest.fixture
def db() -> FakeFirestore:
    store = FakeFirestore()
    store.seed("crmSettings", "gohighlevel", apiKey="test-key", locationId="loc-123")
    return store


@pytest.fixture
def ghl() -> FakeGHLClient:
    return FakeGHLClient()


@pytest.fixture
def service(db, ghl) -> GHLSyncService:
    return GHLSyncService(db, client_factory=lambda api_key, location_id: ghl)


@pytest.fixture
def make_http_service(db):
    """GHLSyncService talking to a real GHLClient over an httpx.MockTransport."""

    def _make(handler) -> GHLSyncService:
        transport = httpx.MockTransport(handler)
        return GHLSyncService(
            db,
            client_factory=lambda api_key, location_id: GHLClient(api_key, location_id, transport=transport),
        )

    return _make
